from datetime import datetime
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from photobatch.clock import utcnow
from photobatch.database import Base


class ProcessedPurchase(Base):
    """Store transactions already credited; guards webhook redelivery."""

    __tablename__ = "processed_purchases"

    transaction_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(128), nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
