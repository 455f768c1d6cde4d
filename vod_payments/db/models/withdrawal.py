from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from vod_payments.core.enums import WithdrawalStatus, WithdrawalType
from vod_payments.core.periods import utcnow
from vod_payments.db.base import Base, JSONType
from vod_payments.db.types import UTCDateTime


class Withdrawal(Base):
    """One outbound transfer. Status lifecycle: processing → completed/failed."""

    __tablename__ = "withdrawals"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), server_default="RWF", default="RWF", nullable=False
    )
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[WithdrawalStatus] = mapped_column(
        String(20),
        server_default="pending",
        default=WithdrawalStatus.PENDING,
        nullable=False,
    )
    payment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("payments.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[WithdrawalType] = mapped_column(String(40), nullable=False)
    external_id: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, nullable=True
    )
    reference_id: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), default=utcnow, nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_withdrawal_amount"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', "
            "'cancelled', 'rejected')",
            name="valid_withdrawal_status",
        ),
        CheckConstraint(
            "type IN ('filmmaker_earning', 'admin_fee', 'subscription_admin_fee', "
            "'series_access_admin_fee', 'manual_withdrawal', 'automatic_payout')",
            name="valid_withdrawal_type",
        ),
        CheckConstraint(
            "(status = 'completed' AND completed_at IS NOT NULL) "
            "OR (status != 'completed' AND completed_at IS NULL)",
            name="completed_at_consistency",
        ),
        UniqueConstraint("payment_id", "type", name="uq_withdrawal_payment_type"),
        Index("idx_withdrawals_user_created", "user_id", "created_at"),
        Index("idx_withdrawals_status", "status"),
    )
