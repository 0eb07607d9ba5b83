"""
Batch orchestration: one reservation followed by concurrent variations.

Each variation runs on its own database session, so the slow provider
round-trips overlap while sharing the single debit made by ``reserve``.
Per-slot failures are reported, never raised.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from photobatch.errors import GenerationError, GenerationFailedError
from photobatch.services import reservation as reservation_service
from photobatch.services.reservation import Reservation
from photobatch.services.worker import ImageProvider, ObjectStorage, complete_variation

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"

# Codes where re-issuing the same index can still succeed
RETRYABLE_CODES = {GenerationFailedError.code}


@dataclass
class SlotResult:
    index: int
    status: str
    image_url: str | None = None
    image_id: str | None = None
    error_code: str | None = None
    error: str | None = None
    retryable: bool = False


@dataclass
class BatchResult:
    reservation: Reservation
    slots: list[SlotResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for slot in self.slots if slot.status == SUCCESS)

    @property
    def failed_indices(self) -> list[int]:
        return [slot.index for slot in self.slots if slot.status == FAILED]


async def retry_slot(
    session_factory: async_sessionmaker[AsyncSession],
    session_id: str,
    index: int,
    user_id: str,
    *,
    provider: ImageProvider | None = None,
    storage: ObjectStorage | None = None,
) -> SlotResult:
    """Run one variation and fold its outcome into a slot status."""
    async with session_factory() as db:
        try:
            result = await complete_variation(
                db, session_id, index, user_id, provider=provider, storage=storage
            )
        except GenerationError as e:
            return SlotResult(
                index=index,
                status=FAILED,
                error_code=e.code,
                error=e.message,
                retryable=e.code in RETRYABLE_CODES,
            )
        except Exception as e:
            logger.exception("Variation %d of session %s crashed", index, session_id)
            return SlotResult(
                index=index,
                status=FAILED,
                error_code=GenerationFailedError.code,
                error=f"Generation failed: {e}",
                retryable=True,
            )

    return SlotResult(
        index=index,
        status=SUCCESS,
        image_url=result.image_url,
        image_id=result.image_id,
    )


async def generate_batch(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
    preset_id: str,
    style_id: str,
    source_image_ref: str,
    *,
    provider: ImageProvider | None = None,
    storage: ObjectStorage | None = None,
    image_count: int = 4,
) -> BatchResult:
    """Reserve once, then run every variation concurrently.

    Reservation errors (insufficient credits, invalid input) propagate;
    variation errors end up in the slot list.
    """
    async with session_factory() as db:
        reservation = await reservation_service.reserve(
            db, user_id, preset_id, style_id, source_image_ref, image_count
        )

    slots = await asyncio.gather(*(
        retry_slot(
            session_factory,
            reservation.session_id,
            index,
            user_id,
            provider=provider,
            storage=storage,
        )
        for index in range(reservation.expected_image_count)
    ))

    batch = BatchResult(reservation=reservation, slots=list(slots))
    if batch.failed_indices:
        logger.warning(
            "Batch %s finished with %d/%d image(s); failed slots %s",
            reservation.generation_id, batch.succeeded,
            reservation.expected_image_count, batch.failed_indices,
        )
    return batch
