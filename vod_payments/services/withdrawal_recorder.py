import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vod_payments.core.config import Settings
from vod_payments.core.enums import (
    WithdrawalStatus,
    WithdrawalType,
    enum_value,
)
from vod_payments.core.payment_kinds import (
    PURCHASE_KINDS,
    SUBSCRIPTION_KINDS,
    SeriesAccess,
    payment_kind,
)
from vod_payments.db.models import Content, Payment, Withdrawal
from vod_payments.db.repositories import FinanceRepository, WithdrawalRepository
from vod_payments.exceptions import (
    BaseAPIException,
    InsufficientBalanceException,
    MinWithdrawalException,
    NotVerifiedException,
    PayoutUnavailableException,
    UserNotFoundException,
    WithdrawalNotFoundException,
)
from vod_payments.metrics import withdrawals_total
from vod_payments.services.gateway_client import GatewayResult, LanariPayClient
from vod_payments.services.money import quantize_money, to_decimal

logger = logging.getLogger(__name__)

NO_PAYOUT_PHONE = "Filmmaker has no payout phone configured"


@dataclass(frozen=True)
class PayoutPlan:
    """One beneficiary's share of a succeeded payment."""

    payment_id: str
    type: WithdrawalType
    user_id: Optional[str]
    amount: Decimal
    phone: Optional[str]
    external_id: str
    description: str


def plan_payouts(
    payment: Payment,
    content: Optional[Content],
    settings: Settings,
    filmmaker_phone: Optional[str] = None,
) -> list[PayoutPlan]:
    """Beneficiaries owed a disbursement for a payment, filmmaker first."""
    kind = payment_kind(payment)
    payment_class = enum_value(payment.payment_class)
    title = content.title if content is not None else payment_class
    plans: list[PayoutPlan] = []

    if isinstance(kind, PURCHASE_KINDS):
        if payment.filmmaker_share > 0 and content is not None:
            plans.append(
                PayoutPlan(
                    payment_id=payment.id,
                    type=WithdrawalType.FILMMAKER_EARNING,
                    user_id=content.filmmaker_id,
                    amount=payment.filmmaker_share,
                    phone=filmmaker_phone,
                    external_id=f"filmmaker_{payment.id}",
                    description=f"Earnings: {payment_class} - {title}",
                )
            )
        admin_type = WithdrawalType.ADMIN_FEE
    elif isinstance(kind, SeriesAccess):
        admin_type = WithdrawalType.SERIES_ACCESS_ADMIN_FEE
    elif isinstance(kind, SUBSCRIPTION_KINDS):
        admin_type = WithdrawalType.SUBSCRIPTION_ADMIN_FEE
    else:
        admin_type = WithdrawalType.ADMIN_FEE

    if payment.platform_share > 0:
        plans.append(
            PayoutPlan(
                payment_id=payment.id,
                type=admin_type,
                user_id=settings.platform_user_id,
                amount=payment.platform_share,
                phone=settings.admin_momo_number,
                external_id=f"admin_{payment.id}",
                description=f"Platform Fee: {payment_class} - {title}",
            )
        )
    return plans


class WithdrawalRecorder:
    """Records every outbound transfer around its gateway call.

    The row is committed as processing before disburse runs, and the gateway
    call itself happens outside any database transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: LanariPayClient,
        settings: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings

    async def record_payout(self, plan: PayoutPlan) -> Optional[Withdrawal]:
        """Disburse one beneficiary's share. Returns None if already recorded."""
        withdrawal = await self._open(plan)
        if withdrawal is None or withdrawal.status != WithdrawalStatus.PROCESSING:
            return withdrawal

        result = await self._disburse(withdrawal)
        return await self._close(withdrawal.id, result)

    async def _open(self, plan: PayoutPlan) -> Optional[Withdrawal]:
        fields = {
            "user_id": plan.user_id,
            "amount": plan.amount,
            "phone": plan.phone,
            "payment_id": plan.payment_id,
            "type": plan.type,
            "external_id": plan.external_id,
            "description": plan.description,
        }
        if not plan.phone:
            fields["status"] = WithdrawalStatus.FAILED
            fields["failure_reason"] = NO_PAYOUT_PHONE

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = WithdrawalRepository(session)
                    if await repo.get_for_payment(plan.payment_id, plan.type):
                        return None
                    withdrawal = await repo.create_withdrawal(**fields)
        except IntegrityError:
            logger.info(
                "Withdrawal already recorded payment_id=%s type=%s",
                plan.payment_id,
                plan.type.value,
                extra={"payment_id": plan.payment_id, "withdrawal_type": plan.type.value},
            )
            return None

        withdrawals_total.labels(
            type=plan.type.value, status=enum_value(withdrawal.status)
        ).inc()
        if withdrawal.status == WithdrawalStatus.FAILED:
            logger.warning(
                "Payout skipped payment_id=%s user_id=%s reason=%s",
                plan.payment_id,
                plan.user_id,
                NO_PAYOUT_PHONE,
                extra={
                    "payment_id": plan.payment_id,
                    "user_id": plan.user_id,
                    "withdrawal_id": withdrawal.id,
                },
            )
        return withdrawal

    async def _disburse(self, withdrawal: Withdrawal) -> GatewayResult:
        try:
            return await self.gateway.disburse(
                amount=withdrawal.amount,
                phone=withdrawal.phone,
                external_id=withdrawal.external_id,
                description=withdrawal.description or "Payout",
            )
        except PayoutUnavailableException as exc:
            logger.warning(
                "Payout endpoint not available withdrawal_id=%s",
                withdrawal.id,
                extra={"withdrawal_id": withdrawal.id, "payment_id": withdrawal.payment_id},
            )
            return GatewayResult(success=False, error=exc.message, error_code=exc.error_code)
        except BaseAPIException as exc:
            logger.error(
                "Payout could not be sent withdrawal_id=%s error=%s",
                withdrawal.id,
                exc.message,
                extra={"withdrawal_id": withdrawal.id, "payment_id": withdrawal.payment_id},
            )
            return GatewayResult(success=False, error=exc.message, error_code=exc.error_code)

    async def _close(self, withdrawal_id: str, result: GatewayResult) -> Withdrawal:
        try:
            withdrawal = await self._apply_close(withdrawal_id, result, result.reference_id)
        except IntegrityError:
            # The gateway handed back a reference another withdrawal already holds.
            logger.warning(
                "Duplicate payout reference withdrawal_id=%s reference_id=%s",
                withdrawal_id,
                result.reference_id,
                extra={"withdrawal_id": withdrawal_id, "reference_id": result.reference_id},
            )
            withdrawal = await self._apply_close(
                withdrawal_id,
                result,
                None,
                metadata={"duplicate_reference": result.reference_id},
            )

        log = logger.info if result.success else logger.warning
        log(
            "Withdrawal %s withdrawal_id=%s type=%s amount=%s",
            enum_value(withdrawal.status),
            withdrawal.id,
            enum_value(withdrawal.type),
            withdrawal.amount,
            extra={
                "withdrawal_id": withdrawal.id,
                "payment_id": withdrawal.payment_id,
                "user_id": withdrawal.user_id,
                "reference_id": withdrawal.reference_id,
            },
        )
        return withdrawal

    async def _apply_close(
        self,
        withdrawal_id: str,
        result: GatewayResult,
        reference_id: Optional[str],
        metadata: Optional[dict] = None,
    ) -> Withdrawal:
        async with self.session_factory() as session:
            async with session.begin():
                repo = WithdrawalRepository(session)
                finance_repo = FinanceRepository(session)
                withdrawal = await repo.get_by_id(withdrawal_id)
                if withdrawal is None:
                    raise WithdrawalNotFoundException(withdrawal_id)

                if result.success:
                    await repo.mark_completed(withdrawal, reference_id, metadata)
                    if withdrawal.type == WithdrawalType.FILMMAKER_EARNING and withdrawal.user_id:
                        finance = await finance_repo.get_or_create_for_update(withdrawal.user_id)
                        await finance_repo.settle_pending(finance, withdrawal.amount)
                    elif withdrawal.type == WithdrawalType.MANUAL_WITHDRAWAL:
                        finance = await finance_repo.get_or_create_for_update(withdrawal.user_id)
                        await finance_repo.record_withdrawn(finance, withdrawal.amount)
                else:
                    await repo.mark_failed(withdrawal, result.error or "Payout failed")
                    if withdrawal.type == WithdrawalType.MANUAL_WITHDRAWAL:
                        finance = await finance_repo.get_or_create_for_update(withdrawal.user_id)
                        await finance_repo.release_reservation(finance, withdrawal.amount)
        return withdrawal

    async def withdraw(
        self, user_id: str, amount, phone: Optional[str] = None
    ) -> Withdrawal:
        """Manual withdrawal of a verified filmmaker's available balance."""
        amount = quantize_money(to_decimal(amount))
        if amount < self.settings.min_withdrawal_amount:
            raise MinWithdrawalException(amount, self.settings.min_withdrawal_amount)

        async with self.session_factory() as session:
            async with session.begin():
                finance_repo = FinanceRepository(session)
                finance = await finance_repo.get_for_update(user_id)
                if finance is None:
                    raise UserNotFoundException(user_id)
                if not finance.is_verified:
                    raise NotVerifiedException(user_id)
                if finance.available_balance < amount:
                    raise InsufficientBalanceException(
                        user_id, finance.available_balance, amount
                    )
                await finance_repo.reserve_available(finance, amount)
                withdrawal = await WithdrawalRepository(session).create_withdrawal(
                    user_id=user_id,
                    amount=amount,
                    phone=phone or finance.payout_phone,
                    type=WithdrawalType.MANUAL_WITHDRAWAL,
                    external_id=f"manual_{uuid4()}",
                    description="Filmmaker withdrawal",
                )

        withdrawals_total.labels(
            type=WithdrawalType.MANUAL_WITHDRAWAL.value, status="processing"
        ).inc()
        logger.info(
            "Manual withdrawal requested withdrawal_id=%s user_id=%s amount=%s",
            withdrawal.id,
            user_id,
            amount,
            extra={"withdrawal_id": withdrawal.id, "user_id": user_id},
        )

        if not withdrawal.phone:
            return await self._close(
                withdrawal.id, GatewayResult(success=False, error=NO_PAYOUT_PHONE)
            )
        result = await self._disburse(withdrawal)
        return await self._close(withdrawal.id, result)
