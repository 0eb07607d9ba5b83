"""
Variation worker: generates and stores one image of a reserved batch.

The credit was spent at reservation time, so nothing here touches the
ledger. A failed variation leaves a hole in the batch and releases its
claim so the same index can be retried while the session is open.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid_extensions import uuid7

from photobatch.clock import utcnow
from photobatch.config import get_settings
from photobatch.errors import (
    DuplicateIndexError,
    ExpiredSessionError,
    GenerationFailedError,
    InvalidSessionError,
    ProviderError,
)
from photobatch.models import GenerationSession, Image
from photobatch.services import presets, sessions
from photobatch.services.fal import DONE, QUEUED, RUNNING, JobHandle, JobStatus, extract_image_url, fal_client
from photobatch.services.storage import storage as default_storage

logger = logging.getLogger(__name__)
settings = get_settings()


class ImageProvider(Protocol):
    async def submit(self, model_id: str, params: dict[str, Any]) -> JobHandle: ...

    async def poll(self, handle: JobHandle) -> JobStatus: ...

    async def download(self, url: str) -> bytes: ...


class ObjectStorage(Protocol):
    async def put_object(self, path: str, data: bytes, content_type: str = "image/jpeg") -> str: ...

    async def delete_object(self, path: str) -> bool: ...


@dataclass
class VariationResult:
    variation_index: int
    image_id: str
    image_url: str
    generation_id: str
    completed_count: int
    is_last: bool
    already_completed: bool = False


async def run_provider_job(
    provider: ImageProvider,
    model_id: str,
    params: dict[str, Any],
    *,
    poll_interval: float | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Submit a job and poll it until it is done or the timeout passes."""
    poll_interval = settings.provider_poll_interval_seconds if poll_interval is None else poll_interval
    timeout = settings.provider_timeout_seconds if timeout is None else timeout

    handle = await provider.submit(model_id, params)
    logger.debug("Queued provider request %s on %s", handle.request_id, model_id)

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        await asyncio.sleep(poll_interval)

        try:
            status = await provider.poll(handle)
        except (ProviderError, httpx.HTTPError) as e:
            logger.warning("Status check for %s failed, retrying: %s", handle.request_id, e)
            continue

        if status.status == DONE:
            return status.result_ref or {}
        if status.status not in (QUEUED, RUNNING):
            raise ProviderError(f"Unexpected status for {handle.request_id}: {status.detail}")

    raise ProviderError(f"Generation timed out after {timeout:.0f}s ({handle.request_id})")


async def _release(db: AsyncSession, session_id: str, index: int) -> None:
    try:
        await sessions.release_slot(db, session_id, index)
    except Exception:
        await db.rollback()
        # The claim lapses with the session
        logger.exception("Could not release claim on %s[%d]", session_id, index)


async def _existing_result(
    db: AsyncSession, session: GenerationSession, index: int
) -> VariationResult:
    result = await db.execute(
        select(Image).where(
            Image.generation_batch_id == session.generation_id,
            Image.image_index == index,
        )
    )
    image = result.scalar_one_or_none()
    if image is None:
        raise DuplicateIndexError(f"Variation {index} was already submitted", variation_index=index)

    return VariationResult(
        variation_index=index,
        image_id=image.id,
        image_url=image.url,
        generation_id=session.generation_id,
        completed_count=session.completed_count,
        is_last=session.completed_count >= session.expected_image_count,
        already_completed=True,
    )


async def _resolve_unavailable_slot(
    db: AsyncSession, session_id: str, index: int
) -> VariationResult:
    """Explain why a slot could not be claimed or counted."""
    session = await sessions.get_session(db, session_id)
    if session is None:
        raise InvalidSessionError("Invalid or expired session")
    if session.has_completed(index):
        return await _existing_result(db, session, index)

    now = utcnow()
    if session.is_expired(now):
        await sessions.finalize_session(db, session_id, now=now)
        raise ExpiredSessionError("Session expired", variation_index=index)
    if session.finalized_at is not None:
        raise InvalidSessionError("Session is closed")
    raise DuplicateIndexError(f"Variation {index} is already in progress", variation_index=index)


async def _generate(provider: ImageProvider, session: GenerationSession, index: int) -> bytes:
    prompt = presets.build_variation_prompt(session.preset_id, session.style_id, index)
    if prompt is None:
        raise ProviderError(f"No prompt for {session.preset_id}/{session.style_id}")

    config = presets.model_for_style(session.style_id)
    params = presets.build_model_params(config, session.source_image_ref, prompt)
    logger.info(
        "Generating variation %d for session %s (generation %s) with %s",
        index, session.id, session.generation_id, config.model_id,
    )

    result = await run_provider_job(provider, config.model_id, params)
    asset_url = extract_image_url(result)
    if not asset_url:
        raise ProviderError("Provider returned no image")

    return await provider.download(asset_url)


async def complete_variation(
    db: AsyncSession,
    session_id: str,
    variation_index: int,
    user_id: str,
    *,
    provider: ImageProvider | None = None,
    storage: ObjectStorage | None = None,
) -> VariationResult:
    """
    Generate, store and record one variation of a reserved batch.

    Calling again for an index that already completed returns the stored
    image with ``already_completed=True`` and counts nothing.

    Raises:
        InvalidSessionError: unknown session, someone else's session, or a
            session that is already closed.
        ExpiredSessionError: the session passed its expiry, including while
            this variation was being generated (the asset is discarded).
        DuplicateIndexError: index outside the batch, or the same index is
            in flight in another call.
        GenerationFailedError: provider failure, timeout or storage failure.
    """
    provider = provider or fal_client
    storage = storage or default_storage
    now = utcnow()

    session = await sessions.get_session(db, session_id)
    if session is None or session.user_id != user_id:
        raise InvalidSessionError("Invalid or expired session")

    # A rollback expires the instance, so later steps read these copies
    generation_id = session.generation_id
    preset_id = session.preset_id
    style_id = session.style_id
    is_free = session.is_free_generation

    if not 0 <= variation_index < session.expected_image_count:
        raise DuplicateIndexError(
            f"Variation index {variation_index} is outside this batch of "
            f"{session.expected_image_count}",
            variation_index=variation_index,
        )

    if session.has_completed(variation_index):
        return await _existing_result(db, session, variation_index)

    if session.is_expired(now):
        await sessions.finalize_session(db, session_id, now=now)
        raise ExpiredSessionError("Session expired", variation_index=variation_index)

    if not await sessions.claim_slot(db, session_id, user_id, variation_index, now):
        return await _resolve_unavailable_slot(db, session_id, variation_index)

    try:
        data = await _generate(provider, session, variation_index)
    except Exception as e:
        if isinstance(e, (ProviderError, httpx.HTTPError)):
            logger.warning("Variation %d of session %s failed: %s", variation_index, session_id, e)
        else:
            logger.exception("Variation %d of session %s crashed", variation_index, session_id)
        await _release(db, session_id, variation_index)
        raise GenerationFailedError(
            f"Generation failed: {e}", variation_index=variation_index
        ) from e

    image_id = str(uuid7())
    storage_path = f"generations/{user_id}/{generation_id}/{variation_index}_{image_id}.jpg"
    try:
        image_url = await storage.put_object(storage_path, data, content_type="image/jpeg")
    except Exception as e:
        logger.exception("Failed to store variation %d of session %s", variation_index, session_id)
        await _release(db, session_id, variation_index)
        raise GenerationFailedError(
            "Failed to store generated image", variation_index=variation_index
        ) from e

    image = Image(
        id=image_id,
        user_id=user_id,
        generation_batch_id=generation_id,
        url=image_url,
        storage_path=storage_path,
        preset_id=preset_id,
        style_id=style_id,
        image_index=variation_index,
        is_public=False,
        is_free_generation=is_free,
    )

    try:
        completion = await sessions.record_completion(db, session, image, utcnow())
        if completion is None:
            await db.rollback()
        else:
            await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Failed to record variation %d of session %s", variation_index, session_id)
        await storage.delete_object(storage_path)
        await _release(db, session_id, variation_index)
        raise GenerationFailedError(
            "Failed to save generated image", variation_index=variation_index
        ) from e

    if completion is None:
        await storage.delete_object(storage_path)
        await _release(db, session_id, variation_index)
        return await _resolve_unavailable_slot(db, session_id, variation_index)

    logger.info(
        "Variation %d of session %s stored as image %s (%d/%d)",
        variation_index, session_id, image_id,
        completion.completed_count, completion.expected_image_count,
    )
    return VariationResult(
        variation_index=variation_index,
        image_id=image_id,
        image_url=image_url,
        generation_id=generation_id,
        completed_count=completion.completed_count,
        is_last=completion.is_last,
    )
