from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from vod_payments.core.enums import ContentStatus, ContentType
from vod_payments.core.periods import utcnow
from vod_payments.db.base import Base, JSONType
from vod_payments.db.types import UTCDateTime


class Content(Base):
    """Catalog aggregate: a movie, a series, or an episode of a series."""

    __tablename__ = "contents"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[ContentType] = mapped_column(
        String(20), server_default="movie", default=ContentType.MOVIE, nullable=False
    )
    filmmaker_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    series_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("contents.id", ondelete="CASCADE"), nullable=True
    )
    status: Mapped[ContentStatus] = mapped_column(
        String(20),
        server_default="pending",
        default=ContentStatus.PENDING,
        nullable=False,
    )
    view_price: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    download_price: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    currency: Mapped[str] = mapped_column(
        String(3), server_default="RWF", default="RWF", nullable=False
    )
    pricing_tiers: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    season_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    episode_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_views: Mapped[int] = mapped_column(
        BigInteger, server_default="0", default=0, nullable=False
    )
    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), server_default="0", default=Decimal("0"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "content_type IN ('movie', 'series', 'episode')",
            name="valid_content_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="valid_content_status",
        ),
        Index("idx_contents_series_status", "series_id", "status"),
        Index("idx_contents_filmmaker", "filmmaker_id"),
    )
