import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vod_payments.core.config import Settings
from vod_payments.core.enums import (
    AccessPeriod,
    PaymentClass,
    PaymentMethod,
    PaymentStatus,
    SubscriptionPlan,
    enum_value,
)
from vod_payments.core.payment_kinds import PaymentKind, build_kind
from vod_payments.core.periods import period_duration
from vod_payments.db.models import Content, Payment
from vod_payments.db.repositories import (
    ContentRepository,
    FinanceRepository,
    PaymentRepository,
)
from vod_payments.exceptions import (
    AlreadyTerminalException,
    ContentNotFoundException,
    GatewayRejectedException,
    GatewayUnreachableException,
    InvalidAccessPeriodException,
    MisconfiguredException,
    MissingFieldException,
    NegativeBalanceException,
    NoEpisodesAvailableException,
    PaymentNotFoundException,
    SplitMismatchException,
    UserNotFoundException,
)
from vod_payments.metrics import ledger_failures_total, payments_total
from vod_payments.services.access_grantor import AccessGrantor
from vod_payments.services.card_gateway import CardIntent, StripeCardGateway
from vod_payments.services.gateway_client import LanariPayClient
from vod_payments.services.ledger_service import LedgerService
from vod_payments.services.money import (
    PURCHASE_CLASSES,
    ensure_minimum,
    exchange_rate,
    normalize_to_rwf,
    split,
    to_decimal,
    validate_phone_rw,
)
from vod_payments.services.series_pricing import resolve_tier_price
from vod_payments.services.token_signer import TokenSigner
from vod_payments.services.withdrawal_recorder import WithdrawalRecorder, plan_payouts

logger = logging.getLogger(__name__)

LANARI_PAY = "lanari_pay"
STRIPE = "stripe"

INVARIANT_ERRORS = (SplitMismatchException, NegativeBalanceException)


@dataclass
class PreparedCharge:
    """Everything validated and priced before the payment row exists."""

    kind: PaymentKind
    user_id: str
    phone: Optional[str]
    amount: int
    original_amount: Decimal
    original_currency: str
    exchange_rate: Decimal
    description: str
    content: Optional[Content] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentOutcome:
    payment: Payment
    message: str


@dataclass
class CardOutcome:
    payment: Payment
    intent: CardIntent


@dataclass
class TransitionResult:
    payment: Payment
    transitioned: bool


class PaymentOrchestrator:
    """Drives one payment through charge, terminal transition and settlement.

    Settlement runs as separate transactions in a fixed order: grant (with the
    status transition), ledger, then one payout per beneficiary. Every step is
    guarded so it can be re-run by the reconciler without double effects.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: LanariPayClient,
        settings: Settings,
        signer: Optional[TokenSigner] = None,
        card_gateway: Optional[StripeCardGateway] = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings
        self.signer = signer or TokenSigner(settings.jwt_secret, settings.api_url)
        self.card_gateway = card_gateway
        self.recorder = WithdrawalRecorder(session_factory, gateway, settings)

    # Charge entry points

    async def pay_content(
        self,
        user_id: str,
        phone: str,
        amount,
        currency: str,
        payment_class: PaymentClass,
        content_id: Optional[str],
        access_period: Optional[AccessPeriod] = None,
        description: Optional[str] = None,
    ) -> PaymentOutcome:
        """Watch or download purchase of a movie or episode."""
        if not content_id:
            raise MissingFieldException("movieId")
        phone = validate_phone_rw(phone)
        rate = exchange_rate(currency)
        amount_rwf = normalize_to_rwf(amount, currency)
        ensure_minimum(amount_rwf)
        kind = build_kind(
            payment_class,
            content_id,
            enum_value(access_period) if access_period else None,
        )
        self.gateway.ensure_configured()
        self.signer.ensure_configured()

        content = await self._load_content(content_id)
        prepared = PreparedCharge(
            kind=kind,
            user_id=user_id,
            phone=phone,
            amount=amount_rwf,
            original_amount=to_decimal(amount),
            original_currency=currency.upper(),
            exchange_rate=rate,
            description=description
            or f"{enum_value(kind.payment_class).capitalize()} {content.title}",
            content=content,
        )
        return await self._execute(prepared)

    async def pay_series(
        self,
        user_id: str,
        phone: str,
        series_id: Optional[str],
        access_period: AccessPeriod,
        amount=None,
        currency: str = "RWF",
    ) -> PaymentOutcome:
        """Series-wide access. The published tier price is charged, never the client amount."""
        if not series_id:
            raise MissingFieldException("seriesId")
        phone = validate_phone_rw(phone)
        period = enum_value(access_period)
        if period_duration(period) is None:
            raise InvalidAccessPeriodException(period)
        self.gateway.ensure_configured()

        async with self.session_factory() as session:
            content_repo = ContentRepository(session)
            series = await content_repo.get_series(series_id)
            if series is None:
                raise ContentNotFoundException(series_id)
            episodes = await content_repo.list_approved_episodes(series_id)
        if not episodes:
            raise NoEpisodesAvailableException(series_id)

        tier_price = resolve_tier_price(series, episodes, period)
        series_currency = (series.currency or "RWF").upper()
        amount_rwf = normalize_to_rwf(tier_price, series_currency)
        metadata: dict[str, Any] = {
            "tier_price": str(tier_price),
            "episode_count": len(episodes),
        }
        if amount is not None:
            requested_rwf = normalize_to_rwf(amount, currency)
            metadata["requested_amount"] = str(amount)
            if requested_rwf != amount_rwf:
                logger.warning(
                    "Series price mismatch series_id=%s period=%s requested=%s tier=%s",
                    series_id,
                    period,
                    requested_rwf,
                    amount_rwf,
                    extra={"user_id": user_id, "series_id": series_id},
                )
        ensure_minimum(amount_rwf)

        prepared = PreparedCharge(
            kind=build_kind(PaymentClass.SERIES_ACCESS, series_id, period),
            user_id=user_id,
            phone=phone,
            amount=amount_rwf,
            original_amount=tier_price,
            original_currency=series_currency,
            exchange_rate=exchange_rate(series_currency),
            description=f"Series Access {series.title} {period}",
            content=series,
            metadata=metadata,
        )
        return await self._execute(prepared)

    async def pay_subscription(
        self,
        user_id: str,
        phone: str,
        amount,
        currency: str,
        plan: SubscriptionPlan,
        payment_class: PaymentClass = PaymentClass.SUBSCRIPTION_UPGRADE,
        access_period: AccessPeriod = AccessPeriod.DAYS_30,
    ) -> PaymentOutcome:
        phone = validate_phone_rw(phone)
        rate = exchange_rate(currency)
        amount_rwf = normalize_to_rwf(amount, currency)
        ensure_minimum(amount_rwf)
        self.gateway.ensure_configured()

        kind = build_kind(
            payment_class, access_period=enum_value(access_period), plan=enum_value(plan)
        )
        prepared = PreparedCharge(
            kind=kind,
            user_id=user_id,
            phone=phone,
            amount=amount_rwf,
            original_amount=to_decimal(amount),
            original_currency=currency.upper(),
            exchange_rate=rate,
            description=f"Subscription {enum_value(plan)} {enum_value(access_period)}",
        )
        return await self._execute(prepared)

    async def pay_card(
        self,
        user_id: str,
        amount,
        currency: str,
        payment_class: PaymentClass,
        content_id: Optional[str],
        email: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CardOutcome:
        """Create a Stripe PaymentIntent and a pending payment awaiting confirmation."""
        if self.card_gateway is None:
            raise MisconfiguredException("STRIPE_SECRET_KEY")
        if not content_id:
            raise MissingFieldException("movieId")
        self.card_gateway.ensure_configured()
        self.signer.ensure_configured()
        rate = exchange_rate(currency)
        amount_rwf = normalize_to_rwf(amount, currency)
        ensure_minimum(amount_rwf)

        content = await self._load_content(content_id)
        kind = build_kind(payment_class, content_id)
        description = (
            description or f"{enum_value(kind.payment_class).capitalize()}: {content.title}"
        )
        intent = await self.card_gateway.create_intent(
            amount=to_decimal(amount),
            currency=currency,
            description=description,
            metadata={
                "user_id": user_id,
                "movie_id": content.id,
                "type": enum_value(kind.payment_class),
                "filmmaker_id": content.filmmaker_id,
            },
            receipt_email=email,
        )

        prepared = PreparedCharge(
            kind=kind,
            user_id=user_id,
            phone=None,
            amount=amount_rwf,
            original_amount=to_decimal(amount),
            original_currency=currency.upper(),
            exchange_rate=rate,
            description=description,
            content=content,
        )
        payment = await self._create_payment(
            prepared,
            payment_method=PaymentMethod.CARD,
            provider=STRIPE,
            stripe_payment_intent_id=intent.id,
        )
        return CardOutcome(payment=payment, intent=intent)

    async def confirm(
        self, payment_id: str, status: PaymentStatus, reason: Optional[str] = None
    ) -> Payment:
        """Manual terminal transition, used for card payments and admin overrides."""
        async with self.session_factory() as session:
            payment = await PaymentRepository(session).get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise AlreadyTerminalException(payment_id, enum_value(payment.status))

        result = await self.apply_terminal_transition(payment_id, status, reason=reason)
        if not result.transitioned:
            raise AlreadyTerminalException(payment_id, enum_value(result.payment.status))
        return result.payment

    # Charge execution

    async def _load_content(self, content_id: str) -> Content:
        async with self.session_factory() as session:
            content = await ContentRepository(session).get_by_id(content_id)
        if content is None:
            raise ContentNotFoundException(content_id)
        return content

    async def _create_payment(
        self,
        prepared: PreparedCharge,
        payment_method: PaymentMethod,
        provider: str,
        stripe_payment_intent_id: Optional[str] = None,
    ) -> Payment:
        kind = prepared.kind
        filmmaker_share, platform_share = split(
            prepared.amount, kind.payment_class, self.settings.filmmaker_share_percentage
        )
        content = prepared.content
        metadata = {
            "description": prepared.description,
            **prepared.metadata,
        }
        if content is not None:
            metadata.update(
                content_title=content.title,
                content_type=enum_value(content.content_type),
                series_id=content.series_id,
                filmmaker_id=content.filmmaker_id,
            )

        async with self.session_factory() as session:
            async with session.begin():
                if await FinanceRepository(session).get_user(prepared.user_id) is None:
                    raise UserNotFoundException(prepared.user_id)
                payment = await PaymentRepository(session).create_payment(
                    user_id=prepared.user_id,
                    content_id=content.id if content is not None else None,
                    payment_class=kind.payment_class,
                    access_period=(
                        enum_value(kind.access_period)
                        if hasattr(kind, "access_period")
                        else None
                    ),
                    subscription_plan=(
                        enum_value(kind.plan) if hasattr(kind, "plan") else None
                    ),
                    amount=prepared.amount,
                    currency="RWF",
                    original_amount=prepared.original_amount,
                    original_currency=prepared.original_currency,
                    exchange_rate=prepared.exchange_rate,
                    filmmaker_share=filmmaker_share,
                    platform_share=platform_share,
                    payment_method=payment_method,
                    provider=provider,
                    phone=prepared.phone,
                    stripe_payment_intent_id=stripe_payment_intent_id,
                    status=PaymentStatus.PENDING,
                    metadata_=metadata,
                )

        payments_total.labels(
            payment_class=enum_value(kind.payment_class), status="pending"
        ).inc()
        logger.info(
            "Payment created payment_id=%s payment_class=%s amount=%s provider=%s",
            payment.id,
            enum_value(kind.payment_class),
            payment.amount,
            provider,
            extra={
                "payment_id": payment.id,
                "user_id": payment.user_id,
                "payment_class": enum_value(kind.payment_class),
            },
        )
        return payment

    async def _execute(self, prepared: PreparedCharge) -> PaymentOutcome:
        payment = await self._create_payment(
            prepared, payment_method=PaymentMethod.MOMO, provider=LANARI_PAY
        )
        # The charge is issued from here on; a client disconnect must not cancel settlement.
        return await asyncio.shield(self._charge_and_settle(payment, prepared))

    async def _charge_and_settle(
        self, payment: Payment, prepared: PreparedCharge
    ) -> PaymentOutcome:
        result = await self.gateway.charge(
            amount=payment.amount,
            phone=prepared.phone,
            user_id=payment.user_id,
            description=prepared.description,
            currency="RWF",
        )
        await self._store_gateway_reply(
            payment.id, result.reference_id, result.gateway_status
        )

        if not result.success:
            reason = result.error or "Payment initiation failed"
            await self.apply_terminal_transition(
                payment.id, PaymentStatus.FAILED, reason=reason
            )
            if result.retryable:
                raise GatewayUnreachableException(reason, payment.id)
            raise GatewayRejectedException(reason, payment.id)

        if result.is_successful:
            transition = await self.apply_terminal_transition(
                payment.id,
                PaymentStatus.SUCCEEDED,
                financial_transaction_id=result.financial_transaction_id,
            )
            return PaymentOutcome(payment=transition.payment, message="Payment successful")

        async with self.session_factory() as session:
            payment = await PaymentRepository(session).get_by_id(payment.id)
        return PaymentOutcome(
            payment=payment,
            message="Payment initiated. Please approve the request on your phone",
        )

    async def _store_gateway_reply(
        self, payment_id: str, reference_id: Optional[str], gateway_status
    ) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                repo = PaymentRepository(session)
                payment = await repo.get_for_update(payment_id)
                if reference_id:
                    payment.reference_id = reference_id
                await repo.merge_metadata(
                    payment, gateway_status=enum_value(gateway_status) if gateway_status else None
                )

    # Terminal transition and settlement

    async def apply_terminal_transition(
        self,
        payment_id: str,
        status: PaymentStatus,
        reason: Optional[str] = None,
        financial_transaction_id: Optional[str] = None,
    ) -> TransitionResult:
        """Single place where a payment leaves pending, whoever observed the outcome.

        Charge reply, webhook, poll and manual confirm all call this. A caller that
        finds the payment already terminal gets transitioned=False and changes nothing.
        """
        try:
            transitioned = await self._transition(
                payment_id, status, reason, financial_transaction_id, grant=True
            )
        except (PaymentNotFoundException, *INVARIANT_ERRORS):
            raise
        except Exception as exc:
            if status != PaymentStatus.SUCCEEDED:
                raise
            logger.error(
                "Access grant failed, recording transition without it payment_id=%s",
                payment_id,
                exc_info=True,
                extra={"payment_id": payment_id},
            )
            transitioned = await self._transition(
                payment_id,
                status,
                reason,
                financial_transaction_id,
                grant=False,
                grant_error=str(exc),
            )

        if transitioned and status == PaymentStatus.SUCCEEDED:
            await self.settle(payment_id)

        async with self.session_factory() as session:
            payment = await PaymentRepository(session).get_by_id(payment_id)
        return TransitionResult(payment=payment, transitioned=transitioned)

    async def _transition(
        self,
        payment_id: str,
        status: PaymentStatus,
        reason: Optional[str],
        financial_transaction_id: Optional[str],
        grant: bool,
        grant_error: Optional[str] = None,
    ) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                repo = PaymentRepository(session)
                payment = await repo.get_for_update(payment_id)
                if payment is None:
                    raise PaymentNotFoundException(payment_id)
                if payment.status != PaymentStatus.PENDING:
                    logger.info(
                        "Payment already terminal payment_id=%s status=%s",
                        payment_id,
                        enum_value(payment.status),
                        extra={"payment_id": payment_id},
                    )
                    return False

                if not await repo.transition_status(
                    payment_id, status, reason, financial_transaction_id
                ):
                    return False
                payment = await repo.get_for_update(payment_id)

                if status == PaymentStatus.SUCCEEDED:
                    if grant:
                        await self._grant(session, payment)
                    elif grant_error:
                        await repo.merge_metadata(payment, grant_error=grant_error)

        payment_class = enum_value(payment.payment_class)
        payments_total.labels(payment_class=payment_class, status=enum_value(status)).inc()
        logger.info(
            "Payment %s payment_id=%s reference_id=%s",
            enum_value(status),
            payment_id,
            payment.reference_id,
            extra={
                "payment_id": payment_id,
                "reference_id": payment.reference_id,
                "user_id": payment.user_id,
                "payment_class": payment_class,
            },
        )
        return True

    async def _grant(self, session: AsyncSession, payment: Payment) -> None:
        await AccessGrantor(session).grant(payment)
        if payment.payment_class not in PURCHASE_CLASSES:
            return
        metadata = payment.metadata_ or {}
        urls = self.signer.urls_for_payment(
            payment.payment_class,
            payment_id=payment.id,
            user_id=payment.user_id,
            movie_id=payment.content_id,
            content_type=metadata.get("content_type"),
            series_id=metadata.get("series_id"),
            access_period=payment.access_period,
        )
        await PaymentRepository(session).merge_metadata(
            payment,
            signed_urls=[
                {"op": url.op, "url": url.url, "expires_at": url.expires_at.isoformat()}
                for url in urls
            ],
        )

    async def settle(self, payment_id: str) -> Optional[Payment]:
        """Apply whatever side effects a succeeded payment is still missing.

        Safe to call any number of times: grant, ledger and payouts each carry
        their own idempotency guard.
        """
        async with self.session_factory() as session:
            payment = await PaymentRepository(session).get_by_id(payment_id)
        if payment is None or payment.status != PaymentStatus.SUCCEEDED:
            return payment

        if payment.access_granted_at is None:
            await self._repair_grant(payment_id)

        ledger_ready = payment.ledger_applied_at is not None or await self._apply_ledger(
            payment_id
        )
        if ledger_ready:
            await self._dispatch_payouts(payment_id)

        async with self.session_factory() as session:
            return await PaymentRepository(session).get_by_id(payment_id)

    async def _repair_grant(self, payment_id: str) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    payment = await PaymentRepository(session).get_for_update(payment_id)
                    if payment.access_granted_at is None:
                        await self._grant(session, payment)
        except Exception as exc:
            logger.error(
                "Access grant repair failed payment_id=%s",
                payment_id,
                exc_info=True,
                extra={"payment_id": payment_id},
            )
            await self._record_error(payment_id, "grant_error", str(exc))

    async def _apply_ledger(self, payment_id: str) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    payment = await PaymentRepository(session).get_for_update(payment_id)
                    await LedgerService(session).apply(payment)
            return True
        except Exception as exc:
            ledger_failures_total.inc()
            logger.error(
                "Ledger update failed payment_id=%s",
                payment_id,
                exc_info=True,
                extra={"payment_id": payment_id},
            )
            await self._record_error(payment_id, "ledger_error", str(exc))
            if isinstance(exc, INVARIANT_ERRORS):
                raise
            return False

    async def _dispatch_payouts(self, payment_id: str) -> None:
        async with self.session_factory() as session:
            payment = await PaymentRepository(session).get_by_id(payment_id)
            content = None
            filmmaker_phone = None
            if payment.content_id:
                content = await ContentRepository(session).get_by_id(payment.content_id)
            if content is not None and payment.payment_class in PURCHASE_CLASSES:
                finance = await FinanceRepository(session).get_finance(content.filmmaker_id)
                filmmaker_phone = finance.payout_phone if finance else None

        for plan in plan_payouts(payment, content, self.settings, filmmaker_phone):
            try:
                await self.recorder.record_payout(plan)
            except Exception:
                logger.error(
                    "Payout failed payment_id=%s type=%s",
                    payment_id,
                    plan.type.value,
                    exc_info=True,
                    extra={"payment_id": payment_id, "user_id": plan.user_id},
                )

    async def _record_error(self, payment_id: str, key: str, message: str) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                repo = PaymentRepository(session)
                payment = await repo.get_for_update(payment_id)
                if payment is not None:
                    await repo.merge_metadata(payment, **{key: message})
