import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from photobatch.database import get_db
from photobatch.models import GenerationRecord, Image
from photobatch.schemas import ImageInfo, ImageUpdateRequest
from photobatch.services.storage import get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


async def _get_owned_image(db: AsyncSession, image_id: str, user_id: str) -> Image:
    result = await db.execute(select(Image).where(Image.id == image_id))
    image = result.scalar_one_or_none()

    if image is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Image not found"
        )
    if image.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to modify this image"
        )
    return image


@router.get("/feed", response_model=list[ImageInfo])
async def get_public_feed(
    limit: int = 20,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
):
    """Publicly shared images, newest first."""
    result = await db.execute(
        select(Image)
        .where(Image.is_public.is_(True))
        .order_by(Image.created_at.desc())
        .offset(max(offset, 0))
        .limit(min(limit, 50))
    )
    return [ImageInfo.model_validate(image) for image in result.scalars().all()]


@router.patch("/{image_id}", response_model=ImageInfo)
async def update_image(
    image_id: str,
    request: ImageUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Share or unshare an image on the public feed."""
    image = await _get_owned_image(db, image_id, request.user_id)
    image.is_public = request.is_public
    await db.commit()
    await db.refresh(image)
    return ImageInfo.model_validate(image)


@router.delete("/{image_id}")
async def delete_image(
    image_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
    storage=Depends(get_storage),
):
    """
    Delete an image from the database and storage.

    The image's slot in its generation record is cleared as well. Storage
    removal is best-effort; the row goes either way.
    """
    image = await _get_owned_image(db, image_id, user_id)

    result = await db.execute(
        select(GenerationRecord)
        .where(GenerationRecord.id == image.generation_batch_id)
        .with_for_update()
    )
    record = result.scalar_one_or_none()
    if record is not None:
        slots = list(record.image_urls or [])
        if 0 <= image.image_index < len(slots) and slots[image.image_index] == image.url:
            slots[image.image_index] = None
            record.image_urls = slots

    storage_path = image.storage_path
    await db.delete(image)
    await db.commit()

    if not await storage.delete_object(storage_path):
        logger.warning("Failed to delete image %s from storage: %s", image_id, storage_path)

    return {"success": True, "message": "Image deleted successfully"}
