import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.core.enums import (
    AccessType,
    SubscriptionPlan,
    enum_value,
)
from vod_payments.core.payment_kinds import (
    Download,
    PaymentKind,
    SeriesAccess,
    SubscriptionRenewal,
    Watch,
    payment_kind,
)
from vod_payments.core.periods import calculate_expiry, period_duration, utcnow
from vod_payments.db.models import Entitlement, Payment
from vod_payments.db.repositories import (
    ContentRepository,
    EntitlementRepository,
    FinanceRepository,
)
from vod_payments.exceptions import ContentNotFoundException, UserNotFoundException

logger = logging.getLogger(__name__)

WATCH_MINIMUM = timedelta(hours=48)
DEFAULT_SUBSCRIPTION_PERIOD = timedelta(days=30)

PLAN_MAX_DEVICES = {
    SubscriptionPlan.BASIC: 1,
    SubscriptionPlan.PRO: 4,
    SubscriptionPlan.ENTERPRISE: 10,
}


@dataclass
class GrantOutcome:
    entitlements: list[Entitlement] = field(default_factory=list)
    expires_at: Optional[datetime] = None
    already_granted: bool = False


def _later(first: Optional[datetime], second: Optional[datetime]) -> Optional[datetime]:
    """Later of two expiries where None means permanent."""
    if first is None or second is None:
        return None
    return max(first, second)


class AccessGrantor:
    """Creates entitlements for a succeeded payment.

    Runs inside the caller's transaction, together with the status transition.
    Invoking it twice for the same payment is a no-op.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.entitlement_repo = EntitlementRepository(session)
        self.content_repo = ContentRepository(session)
        self.finance_repo = FinanceRepository(session)

    async def grant(self, payment: Payment, now: Optional[datetime] = None) -> GrantOutcome:
        if payment.access_granted_at is not None or await self.entitlement_repo.exists_for_payment(
            payment.id
        ):
            return GrantOutcome(expires_at=payment.expires_at, already_granted=True)

        now = now or utcnow()
        kind = payment_kind(payment)

        if isinstance(kind, Watch):
            outcome = await self._grant_watch(payment, kind, now)
        elif isinstance(kind, Download):
            outcome = await self._grant_download(payment, kind, now)
        elif isinstance(kind, SeriesAccess):
            outcome = await self._grant_series(payment, kind, now)
        else:
            outcome = await self._grant_subscription(payment, kind, now)

        payment.access_granted_at = now
        payment.expires_at = outcome.expires_at
        await self.session.flush()

        logger.info(
            "Access granted payment_id=%s payment_class=%s entitlements=%s",
            payment.id,
            enum_value(payment.payment_class),
            len(outcome.entitlements),
            extra={
                "payment_id": payment.id,
                "user_id": payment.user_id,
                "payment_class": enum_value(payment.payment_class),
            },
        )
        return outcome

    async def _grant_watch(self, payment: Payment, kind: Watch, now: datetime) -> GrantOutcome:
        content = await self.content_repo.get_by_id(kind.content_id)
        if content is None:
            raise ContentNotFoundException(kind.content_id)
        period_expiry = calculate_expiry(kind.access_period, now)
        expires_at = max(now + WATCH_MINIMUM, period_expiry or now)
        entitlement = await self.entitlement_repo.create_entitlement(
            user_id=payment.user_id,
            content_id=content.id,
            series_id=content.series_id,
            payment_id=payment.id,
            access_type=AccessType.VIEW,
            access_period=enum_value(kind.access_period),
            price_paid=payment.amount,
            granted_at=now,
            expires_at=expires_at,
        )
        return GrantOutcome(entitlements=[entitlement], expires_at=expires_at)

    async def _grant_download(
        self, payment: Payment, kind: Download, now: datetime
    ) -> GrantOutcome:
        content = await self.content_repo.get_by_id(kind.content_id)
        if content is None:
            raise ContentNotFoundException(kind.content_id)
        entitlement = await self.entitlement_repo.create_entitlement(
            user_id=payment.user_id,
            content_id=content.id,
            series_id=content.series_id,
            payment_id=payment.id,
            access_type=AccessType.DOWNLOAD,
            price_paid=payment.amount,
            granted_at=now,
            expires_at=None,
        )
        return GrantOutcome(entitlements=[entitlement], expires_at=None)

    async def _grant_series(
        self, payment: Payment, kind: SeriesAccess, now: datetime
    ) -> GrantOutcome:
        series = await self.content_repo.get_series(kind.series_id)
        if series is None:
            raise ContentNotFoundException(kind.series_id)

        period = enum_value(kind.access_period)
        expires_at = calculate_expiry(kind.access_period, now)
        entitlements: list[Entitlement] = []

        existing = await self.entitlement_repo.get_active_series_access(
            payment.user_id, series.id, now
        )
        if existing is not None:
            expires_at = _later(existing.expires_at, expires_at)
            existing.expires_at = expires_at
            existing.access_period = period
            logger.info(
                "Extended series access payment_id=%s series_id=%s",
                payment.id,
                series.id,
                extra={"payment_id": payment.id, "user_id": payment.user_id},
            )
        else:
            entitlements.append(
                await self.entitlement_repo.create_entitlement(
                    user_id=payment.user_id,
                    content_id=series.id,
                    series_id=series.id,
                    payment_id=payment.id,
                    access_type=AccessType.SERIES,
                    access_period=period,
                    price_paid=payment.amount,
                    granted_at=now,
                    expires_at=expires_at,
                )
            )

        held = {
            entitlement.content_id: entitlement
            for entitlement in await self.entitlement_repo.list_series_episodes(
                payment.user_id, series.id
            )
        }
        for episode in await self.content_repo.list_approved_episodes(series.id):
            current = held.get(episode.id)
            if current is not None:
                current.expires_at = _later(current.expires_at, expires_at)
                continue
            entitlements.append(
                await self.entitlement_repo.create_entitlement(
                    user_id=payment.user_id,
                    content_id=episode.id,
                    series_id=series.id,
                    payment_id=payment.id,
                    access_type=AccessType.VIEW,
                    access_period=period,
                    granted_at=now,
                    expires_at=expires_at,
                )
            )

        await self.session.flush()
        return GrantOutcome(entitlements=entitlements, expires_at=expires_at)

    async def _grant_subscription(
        self, payment: Payment, kind: PaymentKind, now: datetime
    ) -> GrantOutcome:
        user = await self.finance_repo.get_user_for_update(payment.user_id)
        if user is None:
            raise UserNotFoundException(payment.user_id)

        duration = period_duration(kind.access_period) or DEFAULT_SUBSCRIPTION_PERIOD
        if isinstance(kind, SubscriptionRenewal) and user.subscription_end_date:
            start = max(now, user.subscription_end_date)
        else:
            start = now
        end_date = start + duration

        max_devices = PLAN_MAX_DEVICES[kind.plan]
        user.subscription_plan = kind.plan.value
        user.subscription_end_date = end_date
        user.is_upgraded = True
        user.max_devices = max_devices
        devices = list(user.active_devices or [])
        if len(devices) > max_devices:
            user.active_devices = devices[:max_devices]
            logger.info(
                "Truncated active devices user_id=%s kept=%s dropped=%s",
                user.id,
                max_devices,
                len(devices) - max_devices,
                extra={"user_id": user.id},
            )

        await self.session.flush()
        return GrantOutcome(expires_at=end_date)
