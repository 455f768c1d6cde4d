import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.db.models import FilmmakerFinance, User
from vod_payments.exceptions import NegativeBalanceException

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class FinanceRepository:
    """Filmmaker balances. Every mutation runs against a row locked with get_for_update."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_user(self, user_id: str) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_for_update(self, user_id: str) -> Optional[User]:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_finance(self, user_id: str) -> Optional[FilmmakerFinance]:
        stmt = select(FilmmakerFinance).where(FilmmakerFinance.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, user_id: str) -> Optional[FilmmakerFinance]:
        stmt = (
            select(FilmmakerFinance)
            .where(FilmmakerFinance.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_for_update(self, user_id: str) -> FilmmakerFinance:
        finance = await self.get_for_update(user_id)
        if finance is None:
            finance = FilmmakerFinance(user_id=user_id)
            self.session.add(finance)
            await self.session.flush()
            logger.info(
                "Created finance record user_id=%s",
                user_id,
                extra={"user_id": user_id},
            )
        return finance

    async def credit_pending(self, finance: FilmmakerFinance, amount: Decimal) -> None:
        finance.pending_balance = (finance.pending_balance or ZERO) + amount
        finance.total_earned = (finance.total_earned or ZERO) + amount
        await self.session.flush()

    async def settle_pending(self, finance: FilmmakerFinance, amount: Decimal) -> None:
        """Move a paid-out earning from pending to available, flooring pending at 0."""
        pending = finance.pending_balance or ZERO
        if amount > pending:
            logger.warning(
                "Settlement exceeds pending balance user_id=%s pending=%s amount=%s",
                finance.user_id,
                pending,
                amount,
                extra={"user_id": finance.user_id},
            )
        finance.pending_balance = max(ZERO, pending - amount)
        finance.available_balance = (finance.available_balance or ZERO) + amount
        await self.session.flush()

    async def reserve_available(self, finance: FilmmakerFinance, amount: Decimal) -> None:
        remaining = (finance.available_balance or ZERO) - amount
        if remaining < ZERO:
            raise NegativeBalanceException(finance.user_id, "available_balance", remaining)
        finance.available_balance = remaining
        await self.session.flush()

    async def release_reservation(
        self, finance: FilmmakerFinance, amount: Decimal
    ) -> None:
        finance.available_balance = (finance.available_balance or ZERO) + amount
        await self.session.flush()

    async def record_withdrawn(self, finance: FilmmakerFinance, amount: Decimal) -> None:
        finance.withdrawn_balance = (finance.withdrawn_balance or ZERO) + amount
        await self.session.flush()
