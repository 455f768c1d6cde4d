from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from vod_payments.core.enums import UserRole
from vod_payments.core.periods import utcnow
from vod_payments.db.base import Base, JSONType
from vod_payments.db.types import UTCDateTime


class User(Base):
    """Viewer, filmmaker or admin account. Owned by the accounts service."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        String(20), server_default="viewer", default=UserRole.VIEWER, nullable=False
    )
    is_upgraded: Mapped[bool] = mapped_column(
        Boolean, server_default="false", default=False, nullable=False
    )
    subscription_plan: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    subscription_end_date: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    max_devices: Mapped[int] = mapped_column(
        Integer, server_default="1", default=1, nullable=False
    )
    active_devices: Mapped[list] = mapped_column(
        JSONType, default=list, nullable=False
    )
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
        CheckConstraint("role IN ('viewer', 'filmmaker', 'admin')", name="valid_user_role"),
    )
