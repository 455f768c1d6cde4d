import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.core.payment_kinds import (
    PURCHASE_KINDS,
    SeriesAccess,
    payment_kind,
)
from vod_payments.db.models import Payment
from vod_payments.db.repositories import (
    ContentRepository,
    FinanceRepository,
    PaymentRepository,
)
from vod_payments.exceptions import ContentNotFoundException, SplitMismatchException

logger = logging.getLogger(__name__)


class LedgerService:
    """Applies the monetary impact of a succeeded payment exactly once.

    Must be called within a transaction: the ledger claim, the content counters
    and the filmmaker credit commit or roll back together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.payment_repo = PaymentRepository(session)
        self.content_repo = ContentRepository(session)
        self.finance_repo = FinanceRepository(session)

    async def apply(self, payment: Payment) -> bool:
        """Returns False when the ledger was already applied for this payment."""
        amount = Decimal(payment.amount)
        if payment.filmmaker_share + payment.platform_share != amount:
            raise SplitMismatchException(
                amount, payment.filmmaker_share, payment.platform_share
            )

        claimed = await self.payment_repo.claim_ledger(payment.id)
        if not claimed:
            logger.info(
                "Ledger already applied payment_id=%s",
                payment.id,
                extra={"payment_id": payment.id},
            )
            return False

        kind = payment_kind(payment)
        filmmaker_id: Optional[str] = None

        if isinstance(kind, PURCHASE_KINDS):
            content = await self.content_repo.get_by_id(kind.content_id)
            if content is None:
                raise ContentNotFoundException(kind.content_id)
            await self.content_repo.record_sale(content.id, amount)
            filmmaker_id = content.filmmaker_id
            finance = await self.finance_repo.get_or_create_for_update(filmmaker_id)
            await self.finance_repo.credit_pending(finance, payment.filmmaker_share)
        elif isinstance(kind, SeriesAccess):
            await self.content_repo.record_sale(kind.series_id, amount)

        logger.info(
            "Ledger applied payment_id=%s amount=%s filmmaker_id=%s filmmaker_share=%s",
            payment.id,
            payment.amount,
            filmmaker_id,
            payment.filmmaker_share,
            extra={"payment_id": payment.id, "user_id": filmmaker_id},
        )
        return True
