from datetime import datetime
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from uuid_extensions import uuid7

from photobatch.clock import utcnow
from photobatch.database import Base


class Image(Base):
    __tablename__ = "images"
    __table_args__ = (
        UniqueConstraint("generation_batch_id", "image_index", name="uq_images_batch_index"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid7())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # The canonical generation record this image belongs to
    generation_batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("generations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Persisted copy in storage
    url: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[str] = mapped_column(String(512), nullable=False)

    preset_id: Mapped[str] = mapped_column(String(64), nullable=False)
    style_id: Mapped[str] = mapped_column(String(64), nullable=False)
    image_index: Mapped[int] = mapped_column(Integer, nullable=False)

    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_free_generation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Image(id={self.id}, batch={self.generation_batch_id}, index={self.image_index})>"
