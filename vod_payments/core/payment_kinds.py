from dataclasses import dataclass
from typing import Optional, Union

from vod_payments.core.enums import AccessPeriod, PaymentClass, SubscriptionPlan


@dataclass(frozen=True)
class Watch:
    content_id: str
    access_period: AccessPeriod = AccessPeriod.ONE_TIME

    payment_class = PaymentClass.WATCH


@dataclass(frozen=True)
class Download:
    content_id: str

    payment_class = PaymentClass.DOWNLOAD


@dataclass(frozen=True)
class SeriesAccess:
    series_id: str
    access_period: AccessPeriod

    payment_class = PaymentClass.SERIES_ACCESS


@dataclass(frozen=True)
class SubscriptionUpgrade:
    plan: SubscriptionPlan
    access_period: AccessPeriod

    payment_class = PaymentClass.SUBSCRIPTION_UPGRADE


@dataclass(frozen=True)
class SubscriptionRenewal:
    plan: SubscriptionPlan
    access_period: AccessPeriod

    payment_class = PaymentClass.SUBSCRIPTION_RENEWAL


PaymentKind = Union[Watch, Download, SeriesAccess, SubscriptionUpgrade, SubscriptionRenewal]

PURCHASE_KINDS = (Watch, Download)
SUBSCRIPTION_KINDS = (SubscriptionUpgrade, SubscriptionRenewal)


def _period(value: Optional[str], default: AccessPeriod) -> AccessPeriod:
    return AccessPeriod(value) if value else default


def build_kind(
    payment_class: Union[PaymentClass, str],
    content_id: Optional[str] = None,
    access_period: Optional[str] = None,
    plan: Optional[str] = None,
) -> PaymentKind:
    """Build the variant for a payment class from its loose request/row fields."""
    payment_class = PaymentClass(payment_class)
    if payment_class == PaymentClass.WATCH:
        return Watch(content_id, _period(access_period, AccessPeriod.ONE_TIME))
    if payment_class == PaymentClass.DOWNLOAD:
        return Download(content_id)
    if payment_class == PaymentClass.SERIES_ACCESS:
        return SeriesAccess(content_id, _period(access_period, AccessPeriod.DAYS_30))
    if payment_class == PaymentClass.SUBSCRIPTION_UPGRADE:
        return SubscriptionUpgrade(
            SubscriptionPlan(plan or SubscriptionPlan.BASIC),
            _period(access_period, AccessPeriod.DAYS_30),
        )
    return SubscriptionRenewal(
        SubscriptionPlan(plan or SubscriptionPlan.BASIC),
        _period(access_period, AccessPeriod.DAYS_30),
    )


def payment_kind(payment) -> PaymentKind:
    return build_kind(
        payment.payment_class,
        content_id=payment.content_id,
        access_period=payment.access_period,
        plan=payment.subscription_plan,
    )
