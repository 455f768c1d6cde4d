from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vod_payments.core.enums import (
    AccessPeriod,
    PaymentClass,
    PaymentMethod,
    PaymentStatus,
    SubscriptionPlan,
)
from vod_payments.db.models import Payment
from vod_payments.schemas.common import BaseResponse, CamelModel, Pagination

PHONE_PATTERN = r"^\+?[0-9]{9,15}$"
ChargeCurrency = Literal["USD", "EUR", "GHS", "XOF", "RWF"]


class MomoPaymentRequest(CamelModel):
    amount: Decimal = Field(..., gt=0)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    user_id: str = Field(..., min_length=1)
    movie_id: Optional[str] = None
    series_id: Optional[str] = None
    currency: ChargeCurrency
    type: PaymentClass = PaymentClass.WATCH
    access_period: AccessPeriod = AccessPeriod.ONE_TIME
    plan: Optional[SubscriptionPlan] = None
    description: Optional[str] = Field(default=None, max_length=500)


class SeriesPaymentRequest(CamelModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    user_id: str = Field(..., min_length=1)
    series_id: str = Field(..., min_length=1)
    currency: ChargeCurrency = "RWF"
    access_period: AccessPeriod = AccessPeriod.DAYS_30

    @field_validator("access_period")
    @classmethod
    def _fixed_period(cls, value: AccessPeriod) -> AccessPeriod:
        if value == AccessPeriod.ONE_TIME:
            raise ValueError("series access needs a fixed access period")
        return value


class SubscriptionPaymentRequest(CamelModel):
    amount: Decimal = Field(..., gt=0)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    user_id: str = Field(..., min_length=1)
    plan: SubscriptionPlan
    type: Literal["subscription_upgrade", "subscription_renewal"] = "subscription_upgrade"
    currency: ChargeCurrency = "RWF"
    access_period: AccessPeriod = AccessPeriod.DAYS_30


class CardPaymentRequest(CamelModel):
    amount: Decimal = Field(..., gt=0)
    user_id: str = Field(..., min_length=1)
    movie_id: str = Field(..., min_length=1)
    currency: ChargeCurrency = "EUR"
    type: Literal["watch", "download"]
    email: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)


class ConfirmPaymentRequest(CamelModel):
    status: Literal["succeeded", "failed"]
    reason: Optional[str] = Field(default=None, max_length=500)


class LanariWebhookPayload(BaseModel):
    """Gateway notification body. Field names are the gateway's own."""

    transaction_id: Optional[str] = None
    reference_id: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    reason: Optional[str] = None
    financial_transaction_id: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class SignedUrlData(CamelModel):
    op: str
    url: str
    expires_at: datetime


class PaymentData(CamelModel):
    id: str
    user_id: str
    content_id: Optional[str] = None
    payment_class: PaymentClass
    access_period: Optional[AccessPeriod] = None
    subscription_plan: Optional[SubscriptionPlan] = None
    amount: int
    currency: str
    original_amount: Decimal
    original_currency: str
    exchange_rate: Decimal
    filmmaker_share: Decimal
    platform_share: Decimal
    payment_method: PaymentMethod
    provider: str
    phone: Optional[str] = None
    reference_id: Optional[str] = None
    financial_transaction_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    status: PaymentStatus
    failure_reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    signed_urls: list[SignedUrlData] = Field(default_factory=list)

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentData":
        data = cls.model_validate(payment)
        data.signed_urls = [
            SignedUrlData(**url) for url in (payment.metadata_ or {}).get("signed_urls", [])
        ]
        return data


class PaymentResponse(BaseResponse):
    data: PaymentData


class PaymentListResponse(BaseResponse):
    data: list[PaymentData]
    pagination: Pagination


class CardPaymentResponse(BaseResponse):
    data: PaymentData
    client_secret: Optional[str] = None
    payment_intent_id: str
    next_step: str = "Complete payment on frontend with clientSecret"


class WebhookResponse(BaseResponse):
    outcome: str
    payment_id: str
    status: PaymentStatus


class MovieAnalyticsData(CamelModel):
    movie_id: str
    total_payments: int
    total_revenue: int
    average_payment: Decimal
    filmmaker_total: Decimal
    platform_total: Decimal
    by_method: dict[str, dict[str, int]]


class MovieAnalyticsResponse(BaseResponse):
    data: MovieAnalyticsData
