import logging
from decimal import Decimal
from typing import Annotated, Optional

from fastapi import APIRouter, Header, Query, Request
from pydantic import ValidationError

from vod_payments.api.dependencies import OrchestratorDep, ReconcilerDep, SessionDep
from vod_payments.core.enums import PaymentClass, PaymentStatus, SubscriptionPlan, UserRole
from vod_payments.core.periods import days_remaining, utcnow
from vod_payments.db.repositories import (
    ContentRepository,
    EntitlementRepository,
    FinanceRepository,
    PaymentRepository,
)
from vod_payments.exceptions import (
    ContentNotFoundException,
    NotOwnerException,
    PaymentNotFoundException,
    ValidationException,
)
from vod_payments.schemas.common import Pagination
from vod_payments.schemas.payments import (
    CardPaymentRequest,
    CardPaymentResponse,
    ConfirmPaymentRequest,
    LanariWebhookPayload,
    MomoPaymentRequest,
    MovieAnalyticsData,
    MovieAnalyticsResponse,
    PaymentData,
    PaymentListResponse,
    PaymentResponse,
    SeriesPaymentRequest,
    SubscriptionPaymentRequest,
    WebhookResponse,
)
from vod_payments.schemas.series import (
    EpisodePrice,
    SeriesAccessData,
    SeriesAccessResponse,
    SeriesPricing,
    SeriesPricingData,
    SeriesPricingResponse,
    SeriesSummary,
)
from vod_payments.services.money import quantize_money
from vod_payments.services.payment_orchestrator import PaymentOutcome
from vod_payments.services.series_pricing import build_pricing

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_PAGE_SIZE = 100


def _payment_response(outcome: PaymentOutcome) -> PaymentResponse:
    return PaymentResponse(
        message=outcome.message, data=PaymentData.from_payment(outcome.payment)
    )


@router.post("/momo", response_model=PaymentResponse)
async def pay_with_momo(
    request: MomoPaymentRequest, orchestrator: OrchestratorDep
) -> PaymentResponse:
    if request.type == PaymentClass.SERIES_ACCESS:
        outcome = await orchestrator.pay_series(
            user_id=request.user_id,
            phone=request.phone_number,
            series_id=request.series_id or request.movie_id,
            access_period=request.access_period,
            amount=request.amount,
            currency=request.currency,
        )
    elif request.type in (
        PaymentClass.SUBSCRIPTION_UPGRADE,
        PaymentClass.SUBSCRIPTION_RENEWAL,
    ):
        outcome = await orchestrator.pay_subscription(
            user_id=request.user_id,
            phone=request.phone_number,
            amount=request.amount,
            currency=request.currency,
            plan=request.plan or SubscriptionPlan.BASIC,
            payment_class=request.type,
            access_period=request.access_period,
        )
    else:
        outcome = await orchestrator.pay_content(
            user_id=request.user_id,
            phone=request.phone_number,
            amount=request.amount,
            currency=request.currency,
            payment_class=request.type,
            content_id=request.movie_id,
            access_period=request.access_period,
            description=request.description,
        )
    return _payment_response(outcome)


@router.post("/series/momo", response_model=PaymentResponse)
async def pay_series_with_momo(
    request: SeriesPaymentRequest, orchestrator: OrchestratorDep
) -> PaymentResponse:
    outcome = await orchestrator.pay_series(
        user_id=request.user_id,
        phone=request.phone_number,
        series_id=request.series_id,
        access_period=request.access_period,
        amount=request.amount,
        currency=request.currency,
    )
    return _payment_response(outcome)


@router.post("/subscription/momo", response_model=PaymentResponse)
async def pay_subscription_with_momo(
    request: SubscriptionPaymentRequest, orchestrator: OrchestratorDep
) -> PaymentResponse:
    outcome = await orchestrator.pay_subscription(
        user_id=request.user_id,
        phone=request.phone_number,
        amount=request.amount,
        currency=request.currency,
        plan=request.plan,
        payment_class=PaymentClass(request.type),
        access_period=request.access_period,
    )
    return _payment_response(outcome)


@router.post("/stripe", response_model=CardPaymentResponse)
async def pay_with_stripe(
    request: CardPaymentRequest, orchestrator: OrchestratorDep
) -> CardPaymentResponse:
    outcome = await orchestrator.pay_card(
        user_id=request.user_id,
        amount=request.amount,
        currency=request.currency,
        payment_class=PaymentClass(request.type),
        content_id=request.movie_id,
        email=request.email,
        description=request.description,
    )
    return CardPaymentResponse(
        message="Stripe payment intent created successfully",
        data=PaymentData.from_payment(outcome.payment),
        client_secret=outcome.intent.client_secret,
        payment_intent_id=outcome.intent.id,
    )


@router.post("/webhook/lanari-pay", response_model=WebhookResponse)
async def lanari_pay_webhook(
    request: Request,
    reconciler: ReconcilerDep,
    signature: Annotated[Optional[str], Header(alias="x-lanari-signature")] = None,
) -> WebhookResponse:
    raw_body = await request.body()
    try:
        payload = LanariWebhookPayload.model_validate_json(raw_body)
    except ValidationError as exc:
        raise ValidationException(
            message="Invalid webhook payload",
            details={"errors": exc.errors(include_url=False, include_input=False)},
        ) from exc

    outcome = await reconciler.handle_webhook(
        payload.model_dump(), raw_body, signature
    )
    return WebhookResponse(
        message="Webhook processed",
        outcome=outcome.outcome,
        payment_id=outcome.payment.id,
        status=outcome.payment.status,
    )


@router.get("/status/{payment_id}", response_model=PaymentResponse)
async def get_payment_status(payment_id: str, session: SessionDep) -> PaymentResponse:
    payment = await PaymentRepository(session).get_by_id(payment_id)
    if payment is None:
        raise PaymentNotFoundException(payment_id)
    return PaymentResponse(data=PaymentData.from_payment(payment))


@router.get("/momo/status/{transaction_id}", response_model=PaymentResponse)
async def check_momo_status(
    transaction_id: str, reconciler: ReconcilerDep
) -> PaymentResponse:
    payment = await reconciler.poll(transaction_id)
    return PaymentResponse(data=PaymentData.from_payment(payment))


@router.patch("/{payment_id}/confirm", response_model=PaymentResponse)
async def confirm_payment(
    payment_id: str, request: ConfirmPaymentRequest, orchestrator: OrchestratorDep
) -> PaymentResponse:
    payment = await orchestrator.confirm(
        payment_id, PaymentStatus(request.status), reason=request.reason
    )
    return PaymentResponse(
        message=f"Payment {request.status} successfully",
        data=PaymentData.from_payment(payment),
    )


@router.get("/user/{user_id}", response_model=PaymentListResponse)
async def get_user_payments(
    user_id: str,
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
) -> PaymentListResponse:
    limit = min(limit, MAX_PAGE_SIZE)
    payments, total = await PaymentRepository(session).list_by_user(user_id, page, limit)
    return PaymentListResponse(
        data=[PaymentData.from_payment(payment) for payment in payments],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/series/{series_id}/pricing", response_model=SeriesPricingResponse)
async def get_series_pricing(series_id: str, session: SessionDep) -> SeriesPricingResponse:
    content_repo = ContentRepository(session)
    series = await content_repo.get_series(series_id)
    if series is None:
        raise ContentNotFoundException(series_id)
    episodes = await content_repo.list_approved_episodes(series_id)

    return SeriesPricingResponse(
        data=SeriesPricingData(
            series=SeriesSummary(
                id=series.id,
                title=series.title,
                total_episodes=len(episodes),
                currency=series.currency or "RWF",
            ),
            episodes=[
                EpisodePrice(
                    id=episode.id,
                    title=episode.title,
                    season_number=episode.season_number,
                    episode_number=episode.episode_number,
                    individual_price=episode.view_price,
                )
                for episode in episodes
            ],
            pricing=SeriesPricing.model_validate(build_pricing(series, episodes)),
        )
    )


@router.get(
    "/series/{series_id}/access/{user_id}", response_model=SeriesAccessResponse
)
async def get_series_access(
    series_id: str, user_id: str, session: SessionDep
) -> SeriesAccessResponse:
    if await ContentRepository(session).get_series(series_id) is None:
        raise ContentNotFoundException(series_id)

    now = utcnow()
    entitlement_repo = EntitlementRepository(session)
    access = await entitlement_repo.get_active_series_access(user_id, series_id, now)
    if access is None:
        return SeriesAccessResponse(
            data=SeriesAccessData(series_id=series_id, user_id=user_id, has_access=False)
        )

    return SeriesAccessResponse(
        data=SeriesAccessData(
            series_id=series_id,
            user_id=user_id,
            has_access=True,
            access_period=access.access_period,
            expires_at=access.expires_at,
            days_remaining=days_remaining(access.expires_at, now),
            episodes_covered=await entitlement_repo.count_series_episodes(
                user_id, series_id
            ),
        )
    )


@router.get("/movie/{movie_id}/analytics", response_model=MovieAnalyticsResponse)
async def get_movie_analytics(
    movie_id: str,
    session: SessionDep,
    requester_id: Optional[str] = Query(default=None, alias="requesterId"),
) -> MovieAnalyticsResponse:
    """Sales for one title. With requesterId, only an admin or the owner may read it."""
    content = await ContentRepository(session).get_by_id(movie_id)
    if content is None:
        raise ContentNotFoundException(movie_id)
    if requester_id is not None and requester_id != content.filmmaker_id:
        requester = await FinanceRepository(session).get_user(requester_id)
        if requester is None or requester.role != UserRole.ADMIN:
            raise NotOwnerException(requester_id, movie_id)

    analytics = await PaymentRepository(session).get_content_analytics(movie_id)
    count = analytics["count"]
    average = (
        quantize_money(Decimal(analytics["revenue"]) / count) if count else Decimal("0")
    )
    return MovieAnalyticsResponse(
        data=MovieAnalyticsData(
            movie_id=movie_id,
            total_payments=count,
            total_revenue=analytics["revenue"],
            average_payment=average,
            filmmaker_total=analytics["filmmaker_total"],
            platform_total=analytics["platform_total"],
            by_method=analytics["by_method"],
        )
    )
