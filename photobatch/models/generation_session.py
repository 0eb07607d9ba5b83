from datetime import datetime
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from uuid_extensions import uuid7

from photobatch.clock import utcnow
from photobatch.database import Base


class GenerationSession(Base):
    """Short-lived reservation binding one debited credit to a batch."""

    __tablename__ = "generation_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid7())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    preset_id: Mapped[str] = mapped_column(String(64), nullable=False)
    style_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_image_ref: Mapped[str] = mapped_column(Text, nullable=False)

    expected_image_count: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    completed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Bit i set: variation i has been persisted (completed_mask) or is being
    # generated right now (claimed_mask)
    completed_mask: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    claimed_mask: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_free_generation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    generation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("generations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Set exactly once when the session becomes inert
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    refunded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    generation: Mapped["GenerationRecord"] = relationship("GenerationRecord")

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def has_completed(self, index: int) -> bool:
        return bool(self.completed_mask & (1 << index))

    def __repr__(self) -> str:
        return (
            f"<GenerationSession(id={self.id}, user_id={self.user_id}, "
            f"completed={self.completed_count}/{self.expected_image_count})>"
        )
