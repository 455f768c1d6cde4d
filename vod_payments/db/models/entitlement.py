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
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from vod_payments.core.enums import AccessType, EntitlementStatus
from vod_payments.core.periods import utcnow
from vod_payments.db.base import Base
from vod_payments.db.types import UTCDateTime


class Entitlement(Base):
    """Right of a viewer to stream or download one content item. NULL expires_at is permanent."""

    __tablename__ = "entitlements"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("contents.id", ondelete="CASCADE"), nullable=False
    )
    series_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("contents.id", ondelete="CASCADE"), nullable=True
    )
    payment_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("payments.id", ondelete="SET NULL"), nullable=True
    )
    access_type: Mapped[AccessType] = mapped_column(String(20), nullable=False)
    access_period: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    price_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    status: Mapped[EntitlementStatus] = mapped_column(
        String(20),
        server_default="active",
        default=EntitlementStatus.ACTIVE,
        nullable=False,
    )
    granted_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), default=utcnow, nullable=False
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "access_type IN ('view', 'download', 'series')", name="valid_access_type"
        ),
        CheckConstraint(
            "status IN ('active', 'expired', 'cancelled')",
            name="valid_entitlement_status",
        ),
        UniqueConstraint("payment_id", "content_id", name="uq_entitlement_payment_content"),
        Index("idx_entitlements_user_series", "user_id", "series_id"),
        Index("idx_entitlements_user_content", "user_id", "content_id"),
        Index("idx_entitlements_expires_at", "expires_at"),
    )
