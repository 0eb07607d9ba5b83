from datetime import datetime
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from uuid_extensions import uuid7

from photobatch.clock import utcnow
from photobatch.database import Base


class CreditTransaction(Base):
    """Append-only audit trail of ledger mutations."""

    __tablename__ = "credit_transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid7())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # "debit" | "refund" | "grant"
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    # "free" | "paid"
    bucket: Mapped[str] = mapped_column(String(8), nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)

    # Session id for debits/refunds, store transaction id for grants
    reference_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<CreditTransaction(id={self.id}, type={self.type}, amount={self.amount})>"
