from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.core.enums import ContentStatus, ContentType
from vod_payments.db.models import Content


class ContentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, content_id: str) -> Optional[Content]:
        stmt = select(Content).where(Content.id == content_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_series(self, series_id: str) -> Optional[Content]:
        stmt = (
            select(Content)
            .where(Content.id == series_id)
            .where(Content.content_type == ContentType.SERIES)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_approved_episodes(self, series_id: str) -> list[Content]:
        stmt = (
            select(Content)
            .where(Content.series_id == series_id)
            .where(Content.content_type == ContentType.EPISODE)
            .where(Content.status == ContentStatus.APPROVED)
            .order_by(Content.season_number, Content.episode_number)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def record_sale(self, content_id: str, amount: Decimal) -> None:
        """Atomic increment of revenue and view counters."""
        stmt = (
            update(Content)
            .where(Content.id == content_id)
            .values(
                total_revenue=Content.total_revenue + amount,
                total_views=Content.total_views + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
