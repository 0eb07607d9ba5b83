"""Reservation: one credit debit opens one generation session."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from photobatch.config import get_settings
from photobatch.errors import InsufficientCreditsError, InvalidInputError, ReservationFailedError
from photobatch.services import ledger, presets, sessions

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class Reservation:
    session_id: str
    generation_id: str
    is_free: bool
    remaining_free: int
    remaining_paid: int
    expected_image_count: int
    expires_at: datetime


async def reserve(
    db: AsyncSession,
    user_id: str,
    preset_id: str,
    style_id: str,
    source_image_ref: str,
    expected_image_count: int = 4,
) -> Reservation:
    """
    Debit one credit and open a session for a batch of variations.

    Raises:
        InvalidInputError: unknown preset/style, missing source image or a
            batch size outside 1..max_images_per_batch. Nothing is debited.
        InsufficientCreditsError: no free or paid credit left.
        ReservationFailedError: the session could not be stored; the debit
            has been refunded.
    """
    style_id = presets.normalize_style(style_id) or style_id
    if presets.lookup(preset_id, style_id) is None:
        raise InvalidInputError(f"Unknown preset or style: {preset_id}/{style_id}")
    if not source_image_ref:
        raise InvalidInputError("Missing source image")
    if not 1 <= expected_image_count <= settings.max_images_per_batch:
        raise InvalidInputError(
            f"Image count must be between 1 and {settings.max_images_per_batch}"
        )

    debit = await ledger.try_debit_one(
        db, user_id, preset_id=preset_id, style_id=style_id
    )
    if not debit.ok:
        raise InsufficientCreditsError(
            "Insufficient credits",
            remaining_free=debit.remaining_free,
            remaining_paid=debit.remaining_paid,
        )

    try:
        record, session = await sessions.create_batch(
            db,
            user_id=user_id,
            preset_id=preset_id,
            style_id=style_id,
            source_image_ref=source_image_ref,
            expected_image_count=expected_image_count,
            is_free=debit.was_free,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to open generation session for user %s; refunding", user_id)
        await ledger.refund_one(
            db, user_id, was_free=debit.was_free, reason="reservation_failed"
        )
        raise ReservationFailedError("Failed to create generation session")

    logger.info(
        "Reserved session %s (generation %s) for user %s: %s %s, %d image(s), free=%s",
        session.id, record.id, user_id, preset_id, style_id,
        expected_image_count, debit.was_free,
    )
    return Reservation(
        session_id=session.id,
        generation_id=record.id,
        is_free=debit.was_free,
        remaining_free=debit.remaining_free,
        remaining_paid=debit.remaining_paid,
        expected_image_count=expected_image_count,
        expires_at=session.expires_at,
    )
