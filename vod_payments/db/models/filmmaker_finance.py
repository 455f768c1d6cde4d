from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from vod_payments.core.periods import utcnow
from vod_payments.db.base import Base
from vod_payments.db.types import UTCDateTime


class FilmmakerFinance(Base):
    """Per-filmmaker balances. Row is locked for every credit or debit."""

    __tablename__ = "filmmaker_finances"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    pending_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    available_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    withdrawn_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    total_earned: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    payout_method: Mapped[str] = mapped_column(
        String(20), server_default="momo", default="momo", nullable=False
    )
    payout_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_verified: Mapped[bool] = mapped_column(
        Boolean, server_default="false", default=False, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("pending_balance >= 0", name="non_negative_pending_balance"),
        CheckConstraint("available_balance >= 0", name="non_negative_available_balance"),
        CheckConstraint("withdrawn_balance >= 0", name="non_negative_withdrawn_balance"),
    )
