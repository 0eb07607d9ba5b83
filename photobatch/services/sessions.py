"""Generation session store.

A session binds one debited credit to a batch of expected variations. All
counter changes are conditional UPDATEs on the session row; a slot write on
the generation record only happens inside the transaction that won that
update, so concurrent workers of one batch serialize on the session row.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from photobatch.clock import utcnow
from photobatch.config import get_settings
from photobatch.models import GenerationRecord, GenerationSession, Image
from photobatch.services import ledger

logger = logging.getLogger(__name__)
settings = get_settings()

# Clears one bit without relying on SQL bitwise NOT
_ALL_BITS = (1 << 31) - 1


@dataclass
class Completion:
    completed_count: int
    expected_image_count: int
    is_last: bool


def _bit(index: int) -> int:
    return 1 << index


async def create_batch(
    db: AsyncSession,
    *,
    user_id: str,
    preset_id: str,
    style_id: str,
    source_image_ref: str,
    expected_image_count: int,
    is_free: bool,
    now: datetime | None = None,
) -> tuple[GenerationRecord, GenerationSession]:
    """Stage a fresh record and its session. The caller commits."""
    now = now or utcnow()
    record = GenerationRecord(
        user_id=user_id,
        preset_id=preset_id,
        style_id=style_id,
        input_image_url=source_image_ref,
        image_urls=[None] * expected_image_count,
        is_free_generation=is_free,
        status="pending",
    )
    db.add(record)
    await db.flush()

    session = GenerationSession(
        user_id=user_id,
        preset_id=preset_id,
        style_id=style_id,
        source_image_ref=source_image_ref,
        expected_image_count=expected_image_count,
        completed_count=0,
        completed_mask=0,
        claimed_mask=0,
        is_free_generation=is_free,
        generation_id=record.id,
        created_at=now,
        expires_at=now + timedelta(seconds=settings.session_ttl_seconds),
    )
    db.add(session)
    await db.flush()
    return record, session


async def get_session(db: AsyncSession, session_id: str) -> GenerationSession | None:
    result = await db.execute(
        select(GenerationSession)
        .where(GenerationSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_record(db: AsyncSession, generation_id: str) -> GenerationRecord | None:
    result = await db.execute(
        select(GenerationRecord)
        .where(GenerationRecord.id == generation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def claim_slot(
    db: AsyncSession, session_id: str, user_id: str, index: int, now: datetime
) -> bool:
    """Mark a variation as in flight. False if taken, done, or the session is closed."""
    bit = _bit(index)
    result = await db.execute(
        update(GenerationSession)
        .where(
            GenerationSession.id == session_id,
            GenerationSession.user_id == user_id,
            GenerationSession.claimed_mask.op("&")(bit) == 0,
            GenerationSession.completed_mask.op("&")(bit) == 0,
            GenerationSession.expires_at > now,
            GenerationSession.finalized_at.is_(None),
        )
        .values(claimed_mask=GenerationSession.claimed_mask.op("|")(bit))
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    await db.commit()
    return claimed


async def release_slot(db: AsyncSession, session_id: str, index: int) -> None:
    """Drop an in-flight claim so the variation can be retried."""
    await db.execute(
        update(GenerationSession)
        .where(GenerationSession.id == session_id)
        .values(claimed_mask=GenerationSession.claimed_mask.op("&")(_ALL_BITS ^ _bit(index)))
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def record_completion(
    db: AsyncSession,
    session: GenerationSession,
    image: Image,
    now: datetime,
) -> Completion | None:
    """Count one variation, insert its image and fill its record slot.

    Runs inside the caller's transaction and does not commit. Returns None
    when the session no longer accepts this index (already completed,
    full, expired or finalized); nothing is written in that case.
    """
    index = image.image_index
    bit = _bit(index)
    result = await db.execute(
        update(GenerationSession)
        .where(
            GenerationSession.id == session.id,
            GenerationSession.completed_mask.op("&")(bit) == 0,
            GenerationSession.completed_count < GenerationSession.expected_image_count,
            GenerationSession.expires_at > now,
            GenerationSession.finalized_at.is_(None),
        )
        .values(
            completed_count=GenerationSession.completed_count + 1,
            completed_mask=GenerationSession.completed_mask.op("|")(bit),
            claimed_mask=GenerationSession.claimed_mask.op("&")(_ALL_BITS ^ bit),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None

    counts = (
        await db.execute(
            select(
                GenerationSession.completed_count,
                GenerationSession.expected_image_count,
            ).where(GenerationSession.id == session.id)
        )
    ).one()
    is_last = counts.completed_count >= counts.expected_image_count

    db.add(image)
    await db.flush()

    record = (
        await db.execute(
            select(GenerationRecord)
            .where(GenerationRecord.id == session.generation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    slots = list(record.image_urls or [])
    if len(slots) < counts.expected_image_count:
        slots.extend([None] * (counts.expected_image_count - len(slots)))
    slots[index] = image.url
    record.image_urls = slots
    record.is_complete = is_last
    record.status = "completed" if is_last else "in_progress"

    if is_last:
        await db.execute(
            update(GenerationSession)
            .where(GenerationSession.id == session.id)
            .values(finalized_at=now)
            .execution_options(synchronize_session=False)
        )

    return Completion(
        completed_count=counts.completed_count,
        expected_image_count=counts.expected_image_count,
        is_last=is_last,
    )


async def finalize_session(
    db: AsyncSession,
    session_id: str,
    *,
    now: datetime | None = None,
    refund_empty: bool | None = None,
) -> bool:
    """Close an expired session exactly once.

    The record is left ``partial`` when some slots landed and ``failed``
    when none did; an empty batch gets its credit back when refunds are on.
    Returns False if the session was not expired or was already finalized.
    """
    now = now or utcnow()
    if refund_empty is None:
        refund_empty = settings.refund_on_empty_batch

    try:
        result = await db.execute(
            update(GenerationSession)
            .where(
                GenerationSession.id == session_id,
                GenerationSession.finalized_at.is_(None),
                GenerationSession.expires_at <= now,
            )
            .values(finalized_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            return False

        row = (
            await db.execute(
                select(
                    GenerationSession.user_id,
                    GenerationSession.generation_id,
                    GenerationSession.completed_count,
                    GenerationSession.is_free_generation,
                ).where(GenerationSession.id == session_id)
            )
        ).one()

        status = "partial" if row.completed_count else "failed"
        await db.execute(
            update(GenerationRecord)
            .where(
                GenerationRecord.id == row.generation_id,
                GenerationRecord.is_complete.is_(False),
            )
            .values(status=status)
            .execution_options(synchronize_session=False)
        )

        refunded = False
        if row.completed_count == 0 and refund_empty:
            refunded = await ledger.stage_refund(
                db,
                row.user_id,
                was_free=row.is_free_generation,
                reason="empty_batch_refund",
                reference_id=session_id,
            )
            if refunded:
                await db.execute(
                    update(GenerationSession)
                    .where(GenerationSession.id == session_id)
                    .values(refunded=True)
                    .execution_options(synchronize_session=False)
                )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Finalized expired session %s: %d slot(s) filled, record %s%s",
        session_id, row.completed_count, status, ", credit refunded" if refunded else "",
    )
    return True


async def sweep_expired_sessions(
    db: AsyncSession, *, now: datetime | None = None, limit: int = 500
) -> int:
    """Finalize every expired session that is still open."""
    now = now or utcnow()
    result = await db.execute(
        select(GenerationSession.id)
        .where(
            GenerationSession.finalized_at.is_(None),
            GenerationSession.expires_at <= now,
        )
        .order_by(GenerationSession.expires_at)
        .limit(limit)
    )
    session_ids = list(result.scalars().all())
    await db.rollback()

    finalized = 0
    for session_id in session_ids:
        if await finalize_session(db, session_id, now=now):
            finalized += 1

    if finalized:
        logger.info("Session sweep finalized %d expired session(s)", finalized)
    return finalized
