from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.core.enums import PaymentMethod, PaymentStatus
from vod_payments.core.periods import utcnow
from vod_payments.db.models import Payment


class PaymentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payment(self, **fields: Any) -> Payment:
        payment = Payment(**fields)
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.id == payment_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, payment_id: str) -> Optional[Payment]:
        """Load and row-lock the payment. Must run inside a transaction."""
        stmt = (
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_reference_id(self, reference_id: str) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.reference_id == reference_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        """Match either the gateway reference or our own payment id."""
        payment = await self.get_by_reference_id(transaction_id)
        if payment is None:
            payment = await self.get_by_id(transaction_id)
        return payment

    async def transition_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        failure_reason: Optional[str] = None,
        financial_transaction_id: Optional[str] = None,
    ) -> bool:
        """Compare-and-set pending → terminal. Returns False if another path won."""
        values: dict[str, Any] = {"status": status, "updated_at": utcnow()}
        if failure_reason is not None:
            values["failure_reason"] = failure_reason
        if financial_transaction_id is not None:
            values["financial_transaction_id"] = financial_transaction_id
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.status == PaymentStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def claim_ledger(self, payment_id: str) -> bool:
        """Compare-and-set ledger_applied_at so the ledger is applied at most once."""
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.status == PaymentStatus.SUCCEEDED)
            .where(Payment.ledger_applied_at.is_(None))
            .values(ledger_applied_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def merge_metadata(self, payment: Payment, **values: Any) -> Payment:
        metadata = dict(payment.metadata_ or {})
        metadata.update(values)
        payment.metadata_ = metadata
        await self.session.flush()
        return payment

    async def list_by_user(
        self, user_id: str, page: int, limit: int
    ) -> tuple[list[Payment], int]:
        count_stmt = select(func.count(Payment.id)).where(Payment.user_id == user_id)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def list_pending_momo(
        self, created_before: datetime, limit: int = 100
    ) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.status == PaymentStatus.PENDING)
            .where(Payment.payment_method == PaymentMethod.MOMO)
            .where(Payment.reference_id.isnot(None))
            .where(Payment.created_at <= created_before)
            .order_by(Payment.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_unsettled(self, limit: int = 100) -> list[Payment]:
        """Succeeded payments whose ledger was never applied."""
        stmt = (
            select(Payment)
            .where(Payment.status == PaymentStatus.SUCCEEDED)
            .where(Payment.ledger_applied_at.is_(None))
            .order_by(Payment.created_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_content_analytics(self, content_id: str) -> dict:
        totals_stmt = (
            select(
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount), 0),
                func.coalesce(func.sum(Payment.filmmaker_share), 0),
                func.coalesce(func.sum(Payment.platform_share), 0),
            )
            .where(Payment.content_id == content_id)
            .where(Payment.status == PaymentStatus.SUCCEEDED)
        )
        count, revenue, filmmaker_total, platform_total = (
            await self.session.execute(totals_stmt)
        ).one()

        by_method_stmt = (
            select(
                Payment.payment_method,
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount), 0),
            )
            .where(Payment.content_id == content_id)
            .where(Payment.status == PaymentStatus.SUCCEEDED)
            .group_by(Payment.payment_method)
        )
        by_method = {
            method: {"count": method_count, "amount": int(method_amount)}
            for method, method_count, method_amount in (
                await self.session.execute(by_method_stmt)
            ).all()
        }

        return {
            "count": count,
            "revenue": int(revenue),
            "filmmaker_total": Decimal(str(filmmaker_total)),
            "platform_total": Decimal(str(platform_total)),
            "by_method": by_method,
        }
