from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.core.enums import AccessType, EntitlementStatus
from vod_payments.db.models import Entitlement


class EntitlementRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_entitlement(self, **fields: Any) -> Entitlement:
        entitlement = Entitlement(**fields)
        self.session.add(entitlement)
        await self.session.flush()
        return entitlement

    async def exists_for_payment(self, payment_id: str) -> bool:
        stmt = select(Entitlement.id).where(Entitlement.payment_id == payment_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_for_payment(self, payment_id: str) -> list[Entitlement]:
        stmt = select(Entitlement).where(Entitlement.payment_id == payment_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_series_access(
        self, user_id: str, series_id: str, now: datetime
    ) -> Optional[Entitlement]:
        """The viewer's live series-wide entitlement, if any."""
        stmt = (
            select(Entitlement)
            .where(Entitlement.user_id == user_id)
            .where(Entitlement.content_id == series_id)
            .where(Entitlement.access_type == AccessType.SERIES)
            .where(Entitlement.status == EntitlementStatus.ACTIVE)
            .where(or_(Entitlement.expires_at.is_(None), Entitlement.expires_at > now))
            .order_by(Entitlement.granted_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_series_episodes(
        self, user_id: str, series_id: str
    ) -> list[Entitlement]:
        stmt = (
            select(Entitlement)
            .where(Entitlement.user_id == user_id)
            .where(Entitlement.series_id == series_id)
            .where(Entitlement.access_type == AccessType.VIEW)
            .where(Entitlement.status == EntitlementStatus.ACTIVE)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_series_episodes(self, user_id: str, series_id: str) -> int:
        stmt = (
            select(func.count(func.distinct(Entitlement.content_id)))
            .where(Entitlement.user_id == user_id)
            .where(Entitlement.series_id == series_id)
            .where(Entitlement.access_type == AccessType.VIEW)
            .where(Entitlement.status == EntitlementStatus.ACTIVE)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0
