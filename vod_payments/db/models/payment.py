from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from vod_payments.core.enums import PaymentClass, PaymentMethod, PaymentStatus
from vod_payments.core.periods import utcnow
from vod_payments.db.base import Base, JSONType
from vod_payments.db.types import UTCDateTime


class Payment(Base):
    """Viewer charge. Status lifecycle: pending → succeeded/failed, never reverts.

    access_granted_at and ledger_applied_at mark side effects already applied,
    so a replayed transition never applies them twice.
    """

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    content_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("contents.id", ondelete="SET NULL"), nullable=True
    )
    payment_class: Mapped[PaymentClass] = mapped_column(String(30), nullable=False)
    access_period: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    subscription_plan: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), server_default="RWF", default="RWF", nullable=False
    )
    original_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    original_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), server_default="1", default=Decimal("1"), nullable=False
    )
    filmmaker_share: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    platform_share: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, nullable=True
    )
    financial_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, nullable=True
    )
    status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        server_default="pending",
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    access_granted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    ledger_applied_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_payment_amount"),
        CheckConstraint("filmmaker_share >= 0", name="non_negative_filmmaker_share"),
        CheckConstraint("platform_share >= 0", name="non_negative_platform_share"),
        CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed')",
            name="valid_payment_status",
        ),
        CheckConstraint(
            "payment_class IN ('watch', 'download', 'series_access', "
            "'subscription_upgrade', 'subscription_renewal')",
            name="valid_payment_class",
        ),
        Index("idx_payments_user_created", "user_id", "created_at"),
        Index("idx_payments_content_status", "content_id", "status"),
        Index("idx_payments_status_created", "status", "created_at"),
    )
