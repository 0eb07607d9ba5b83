from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select

from photobatch.clock import utcnow
from photobatch.database import get_db, get_session_factory
from photobatch.models import GenerationRecord, GenerationSession
from photobatch.schemas import (
    ReserveRequest,
    ReserveResponse,
    VariationRequest,
    VariationResponse,
    BatchRequest,
    BatchResponse,
    SlotInfo,
    GenerationInfo,
    GenerationDetail,
)
from photobatch.services import orchestrator, reservation, sessions, worker
from photobatch.services.fal import get_provider
from photobatch.services.storage import get_storage

router = APIRouter(prefix="/generate", tags=["generation"])


def _to_info(record: GenerationRecord) -> GenerationInfo:
    return GenerationInfo(
        id=record.id,
        preset_id=record.preset_id,
        style_id=record.style_id,
        status=record.status,
        is_complete=record.is_complete,
        is_free_generation=record.is_free_generation,
        image_urls=record.populated_urls,
        created_at=record.created_at,
    )


@router.post("/reserve", response_model=ReserveResponse)
async def reserve_generation(
    request: ReserveRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Spend one credit and open a session for a batch of variations.

    The client then calls ``/generate/variation`` once per index within the
    session lifetime. Answers 402 with the current balance when the user has
    no credits left.
    """
    result = await reservation.reserve(
        db,
        user_id=request.user_id,
        preset_id=request.preset_id,
        style_id=request.style_id,
        source_image_ref=request.image_url,
        expected_image_count=request.image_count,
    )

    return ReserveResponse(
        session_id=result.session_id,
        generation_id=result.generation_id,
        is_free_generation=result.is_free,
        remaining_free=result.remaining_free,
        remaining_paid=result.remaining_paid,
        image_count=result.expected_image_count,
        expires_at=result.expires_at,
    )


@router.post("/variation", response_model=VariationResponse)
async def generate_variation(
    request: VariationRequest,
    db: AsyncSession = Depends(get_db),
    provider=Depends(get_provider),
    storage=Depends(get_storage),
):
    """Generate one variation of a reserved batch. Never charges a credit."""
    result = await worker.complete_variation(
        db,
        request.session_id,
        request.variation_index,
        request.user_id,
        provider=provider,
        storage=storage,
    )

    return VariationResponse(
        variation_index=result.variation_index,
        image_url=result.image_url,
        image_id=result.image_id,
        generation_id=result.generation_id,
        completed_count=result.completed_count,
        is_last=result.is_last,
        already_completed=result.already_completed,
    )


@router.post("/batch", response_model=BatchResponse)
async def generate_batch(
    request: BatchRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    provider=Depends(get_provider),
    storage=Depends(get_storage),
):
    """
    Reserve and run a whole batch server-side.

    Failed variations are reported per slot; the batch as a whole succeeds
    as long as the reservation did.
    """
    batch = await orchestrator.generate_batch(
        session_factory,
        request.user_id,
        request.preset_id,
        request.style_id,
        request.image_url,
        provider=provider,
        storage=storage,
        image_count=request.image_count,
    )

    return BatchResponse(
        session_id=batch.reservation.session_id,
        generation_id=batch.reservation.generation_id,
        is_free_generation=batch.reservation.is_free,
        succeeded=batch.succeeded,
        slots=[
            SlotInfo(
                index=slot.index,
                status=slot.status,
                image_url=slot.image_url,
                image_id=slot.image_id,
                error_code=slot.error_code,
                error=slot.error,
                retryable=slot.retryable,
            )
            for slot in batch.slots
        ],
    )


@router.get("/history/{user_id}", response_model=list[GenerationInfo])
async def get_generation_history(
    user_id: str,
    limit: int = 20,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
):
    """Get the generation history (gallery) for a user."""
    result = await db.execute(
        select(GenerationRecord)
        .where(GenerationRecord.user_id == user_id)
        .order_by(GenerationRecord.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return [_to_info(record) for record in result.scalars().all()]


@router.get("/{generation_id}", response_model=GenerationDetail)
async def get_generation(
    generation_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get one generation record with its per-slot state."""
    # Reading a record closes its session if that session ran out
    result = await db.execute(
        select(GenerationSession.id).where(
            GenerationSession.generation_id == generation_id,
            GenerationSession.finalized_at.is_(None),
            GenerationSession.expires_at <= utcnow(),
        )
    )
    expired_session_id = result.scalar_one_or_none()
    if expired_session_id is not None:
        await sessions.finalize_session(db, expired_session_id)

    record = await sessions.get_record(db, generation_id)
    if record is None or record.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Generation {generation_id} not found."
        )

    info = _to_info(record)
    slots = list(record.image_urls or [])
    return GenerationDetail(
        **info.model_dump(),
        slots=slots,
        expected_image_count=len(slots),
    )
