from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.core.enums import WithdrawalStatus, WithdrawalType, enum_value
from vod_payments.core.periods import utcnow
from vod_payments.db.models import Withdrawal
from vod_payments.metrics import withdrawals_total


class WithdrawalRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_withdrawal(self, **fields: Any) -> Withdrawal:
        fields.setdefault("status", WithdrawalStatus.PROCESSING)
        withdrawal = Withdrawal(**fields)
        if withdrawal.status == WithdrawalStatus.PROCESSING:
            withdrawal.processed_at = utcnow()
        self.session.add(withdrawal)
        await self.session.flush()
        return withdrawal

    async def get_by_id(self, withdrawal_id: str) -> Optional[Withdrawal]:
        stmt = select(Withdrawal).where(Withdrawal.id == withdrawal_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_payment(
        self, payment_id: str, withdrawal_type: WithdrawalType
    ) -> Optional[Withdrawal]:
        stmt = (
            select(Withdrawal)
            .where(Withdrawal.payment_id == payment_id)
            .where(Withdrawal.type == withdrawal_type)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_payment(self, payment_id: str) -> list[Withdrawal]:
        stmt = (
            select(Withdrawal)
            .where(Withdrawal.payment_id == payment_id)
            .order_by(Withdrawal.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_completed(
        self,
        withdrawal: Withdrawal,
        reference_id: Optional[str],
        metadata: Optional[dict] = None,
    ) -> Withdrawal:
        now = utcnow()
        if metadata:
            withdrawal.metadata_ = {**(withdrawal.metadata_ or {}), **metadata}
        withdrawal.status = WithdrawalStatus.COMPLETED
        withdrawal.reference_id = reference_id
        withdrawal.completed_at = now
        withdrawal.updated_at = now
        await self.session.flush()
        withdrawals_total.labels(
            type=enum_value(withdrawal.type), status="completed"
        ).inc()
        return withdrawal

    async def mark_failed(self, withdrawal: Withdrawal, reason: str) -> Withdrawal:
        withdrawal.status = WithdrawalStatus.FAILED
        withdrawal.failure_reason = reason
        withdrawal.updated_at = utcnow()
        await self.session.flush()
        withdrawals_total.labels(type=enum_value(withdrawal.type), status="failed").inc()
        return withdrawal

    async def list_by_user(
        self,
        user_id: str,
        page: int,
        limit: int,
        status: Optional[WithdrawalStatus] = None,
        withdrawal_type: Optional[WithdrawalType] = None,
    ) -> tuple[list[Withdrawal], int]:
        filters = [Withdrawal.user_id == user_id]
        if status is not None:
            filters.append(Withdrawal.status == status)
        if withdrawal_type is not None:
            filters.append(Withdrawal.type == withdrawal_type)

        count_stmt = select(func.count(Withdrawal.id)).where(*filters)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Withdrawal)
            .where(*filters)
            .order_by(Withdrawal.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def count_by_status(self, user_id: str) -> dict[str, int]:
        stmt = (
            select(Withdrawal.status, func.count(Withdrawal.id))
            .where(Withdrawal.user_id == user_id)
            .group_by(Withdrawal.status)
        )
        result = await self.session.execute(stmt)
        return {enum_value(status): count for status, count in result.all()}
