from datetime import datetime
from sqlalchemy import Boolean, DateTime, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from uuid_extensions import uuid7

from photobatch.clock import utcnow
from photobatch.database import Base

GENERATION_STATUSES = ("pending", "in_progress", "completed", "partial", "failed")


class GenerationRecord(Base):
    """The durable "one generation = one batch of images" row."""

    __tablename__ = "generations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid7())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    preset_id: Mapped[str] = mapped_column(String(64), nullable=False)
    style_id: Mapped[str] = mapped_column(String(64), nullable=False)
    input_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # One slot per expected variation, null until that variation lands
    image_urls: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    is_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_free_generation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    @property
    def populated_urls(self) -> list[str]:
        return [url for url in self.image_urls or [] if url]

    def __repr__(self) -> str:
        return f"<GenerationRecord(id={self.id}, user_id={self.user_id}, status={self.status})>"
