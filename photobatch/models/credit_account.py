from datetime import datetime
from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from photobatch.clock import utcnow
from photobatch.database import Base


class CreditAccount(Base):
    __tablename__ = "credit_accounts"
    __table_args__ = (
        CheckConstraint("free_credits >= 0", name="ck_credit_accounts_free_nonneg"),
        CheckConstraint("paid_credits >= 0", name="ck_credit_accounts_paid_nonneg"),
    )

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Promotional credits are consumed before purchased ones
    free_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    paid_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Bumped once per successful reservation
    lifetime_generations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_generation_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_preset_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_style_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<CreditAccount(user_id={self.user_id}, free={self.free_credits}, "
            f"paid={self.paid_credits})>"
        )
