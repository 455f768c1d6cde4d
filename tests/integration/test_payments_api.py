from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import AsyncClient

from vod_payments.core.enums import AccessPeriod
from vod_payments.db.models import Content, User
from vod_payments.exceptions import INSUFFICIENT_FUNDS_MESSAGE, InvalidAccessPeriodException
from vod_payments.services.payment_orchestrator import PaymentOrchestrator
from tests.utils import (
    ContentFactory,
    FakeLanariPay,
    PaymentRequestFactory,
    UserFactory,
    load_entitlements,
    load_finance,
    load_payment,
    load_withdrawals,
    money,
)


@pytest.mark.integration
class TestMomoPaymentsAPI:
    async def test_pending_charge_waits_for_approval(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
        lanari: FakeLanariPay,
    ) -> None:
        payload = PaymentRequestFactory.momo_payment(viewer.id, movie.id)

        response = await client.post("/v1/payments/momo", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Payment initiated. Please approve the request on your phone"
        data = body["data"]
        assert data["status"] == "pending"
        assert data["referenceId"] == "LP000001"
        assert data["paymentClass"] == "watch"
        assert data["amount"] == 1000
        assert money(data["filmmakerShare"]) == Decimal("700.00")
        assert money(data["platformShare"]) == Decimal("300.00")
        assert data["signedUrls"] == []

        assert len(lanari.charges) == 1
        assert lanari.charges[0]["customer_phone"] == "0788000000"
        assert await load_entitlements(data["id"]) == []
        assert await load_withdrawals(data["id"]) == []

    async def test_successful_charge_settles_immediately(
        self,
        client: AsyncClient,
        viewer: User,
        filmmaker: User,
        movie: Content,
        lanari: FakeLanariPay,
    ) -> None:
        lanari.charge_mode = "successful"
        payload = PaymentRequestFactory.momo_payment(viewer.id, movie.id)

        response = await client.post("/v1/payments/momo", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Payment successful"
        data = body["data"]
        assert data["status"] == "succeeded"
        assert data["financialTransactionId"] == "FIN-LP000001"
        assert [url["op"] for url in data["signedUrls"]] == ["stream", "hls-stream"]
        assert data["signedUrls"][0]["url"].startswith(
            f"http://test/movies/stream/{data['id']}?token="
        )

        entitlements = await load_entitlements(data["id"])
        assert len(entitlements) == 1
        assert entitlements[0].access_type == "view"

        withdrawals = await load_withdrawals(data["id"])
        assert {(w.type, w.status) for w in withdrawals} == {
            ("filmmaker_earning", "completed"),
            ("admin_fee", "completed"),
        }

        finance = await load_finance(filmmaker.id)
        assert money(finance.pending_balance) == Decimal("0.00")
        assert money(finance.available_balance) == Decimal("700.00")
        assert money(finance.total_earned) == Decimal("700.00")

    async def test_download_is_permanent(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
        lanari: FakeLanariPay,
    ) -> None:
        lanari.charge_mode = "successful"
        payload = PaymentRequestFactory.momo_payment(
            viewer.id, movie.id, amount=2500, payment_type="download"
        )

        response = await client.post("/v1/payments/momo", json=payload)

        data = response.json()["data"]
        assert data["status"] == "succeeded"
        assert data["expiresAt"] is None
        assert [url["op"] for url in data["signedUrls"]] == ["download"]

        entitlements = await load_entitlements(data["id"])
        assert entitlements[0].access_type == "download"
        assert entitlements[0].expires_at is None

    async def test_insufficient_balance_is_localized(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
        lanari: FakeLanariPay,
    ) -> None:
        lanari.charge_mode = "insufficient"
        payload = PaymentRequestFactory.momo_payment(viewer.id, movie.id)

        response = await client.post("/v1/payments/momo", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == INSUFFICIENT_FUNDS_MESSAGE
        assert body["error"]["code"] == "GATEWAY_REJECTED"

        payment = await load_payment(body["error"]["details"]["payment_id"])
        assert payment.status == "failed"
        assert payment.failure_reason == "Transaction failed. Check users Balance"

    async def test_generic_rejection(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
        lanari: FakeLanariPay,
    ) -> None:
        lanari.charge_mode = "rejected"

        response = await client.post(
            "/v1/payments/momo",
            json=PaymentRequestFactory.momo_payment(viewer.id, movie.id),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Payment initiation failed"

    @pytest.mark.parametrize("mode", ["timeout", "unavailable"])
    async def test_unreachable_gateway_is_retryable(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
        lanari: FakeLanariPay,
        mode: str,
    ) -> None:
        lanari.charge_mode = mode

        response = await client.post(
            "/v1/payments/momo",
            json=PaymentRequestFactory.momo_payment(viewer.id, movie.id),
        )

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "GATEWAY_UNREACHABLE"
        assert error["details"]["retryable"] is True

    async def test_usd_is_converted_to_rwf(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
    ) -> None:
        payload = PaymentRequestFactory.momo_payment(
            viewer.id, movie.id, amount=1, currency="USD"
        )

        response = await client.post("/v1/payments/momo", json=payload)

        data = response.json()["data"]
        assert data["amount"] == 1200
        assert data["currency"] == "RWF"
        assert Decimal(data["originalAmount"]) == Decimal("1")
        assert data["originalCurrency"] == "USD"
        assert Decimal(data["exchangeRate"]) == Decimal("1200")

    @pytest.mark.parametrize(
        "overrides,status_code,code",
        [
            ({"currency": "GHS"}, 422, "UNSUPPORTED_CURRENCY"),
            ({"currency": "NGN"}, 422, "VALIDATION_ERROR"),
            ({"phone_number": "0728123456"}, 422, "INVALID_PHONE"),
            ({"phone_number": "not-a-phone"}, 422, "VALIDATION_ERROR"),
            ({"amount": 4}, 422, "AMOUNT_TOO_LOW"),
            ({"amount": 0}, 422, "VALIDATION_ERROR"),
        ],
    )
    async def test_rejects_invalid_input(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
        lanari: FakeLanariPay,
        overrides: dict,
        status_code: int,
        code: str,
    ) -> None:
        payload = PaymentRequestFactory.momo_payment(viewer.id, movie.id, **overrides)

        response = await client.post("/v1/payments/momo", json=payload)

        assert response.status_code == status_code
        assert response.json()["error"]["code"] == code
        assert lanari.charges == []

    async def test_missing_movie_id(self, client: AsyncClient, viewer: User) -> None:
        response = await client.post(
            "/v1/payments/momo", json=PaymentRequestFactory.momo_payment(viewer.id)
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "MISSING_FIELD"

    async def test_unknown_movie(self, client: AsyncClient, viewer: User) -> None:
        response = await client.post(
            "/v1/payments/momo",
            json=PaymentRequestFactory.momo_payment(viewer.id, "missing-movie"),
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CONTENT_NOT_FOUND"

    async def test_unknown_user(
        self, client: AsyncClient, movie: Content, lanari: FakeLanariPay
    ) -> None:
        response = await client.post(
            "/v1/payments/momo",
            json=PaymentRequestFactory.momo_payment("missing-user", movie.id),
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "USER_NOT_FOUND"
        assert lanari.charges == []


@pytest.mark.integration
class TestSeriesPaymentsAPI:
    async def test_series_purchase_grants_every_episode(
        self,
        client: AsyncClient,
        viewer: User,
        series: tuple[Content, list[Content]],
        lanari: FakeLanariPay,
    ) -> None:
        series_row, episodes = series
        lanari.charge_mode = "successful"

        response = await client.post(
            "/v1/payments/series/momo",
            json=PaymentRequestFactory.series_payment(viewer.id, series_row.id),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["paymentClass"] == "series_access"
        assert data["amount"] == 2000
        assert money(data["filmmakerShare"]) == Decimal("0.00")
        assert money(data["platformShare"]) == Decimal("2000.00")

        entitlements = await load_entitlements(data["id"])
        assert len(entitlements) == len(episodes) + 1
        assert len({e.expires_at for e in entitlements}) == 1

        withdrawals = await load_withdrawals(data["id"])
        assert [w.type for w in withdrawals] == ["series_access_admin_fee"]

    async def test_generic_momo_endpoint_routes_series(
        self,
        client: AsyncClient,
        viewer: User,
        series: tuple[Content, list[Content]],
    ) -> None:
        series_row, _ = series
        payload = PaymentRequestFactory.momo_payment(
            viewer.id,
            amount=4500,
            payment_type="series_access",
            access_period="90d",
            seriesId=series_row.id,
        )

        response = await client.post("/v1/payments/momo", json=payload)

        data = response.json()["data"]
        assert data["paymentClass"] == "series_access"
        assert data["contentId"] == series_row.id
        assert data["accessPeriod"] == "90d"
        assert data["amount"] == 4500

    async def test_one_time_period_rejected(
        self,
        client: AsyncClient,
        viewer: User,
        series: tuple[Content, list[Content]],
    ) -> None:
        series_row, _ = series

        response = await client.post(
            "/v1/payments/series/momo",
            json=PaymentRequestFactory.series_payment(
                viewer.id, series_row.id, access_period="one-time"
            ),
        )

        assert response.status_code == 422

    async def test_generic_route_requires_fixed_series_period(
        self,
        client: AsyncClient,
        viewer: User,
        series: tuple[Content, list[Content]],
        lanari: FakeLanariPay,
    ) -> None:
        series_row, _ = series
        lanari.charge_mode = "successful"
        payload = PaymentRequestFactory.momo_payment(
            viewer.id,
            amount=2500,
            payment_type="series_access",
            seriesId=series_row.id,
        )

        response = await client.post("/v1/payments/momo", json=payload)

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "INVALID_ACCESS_PERIOD"
        assert error["details"]["access_period"] == "one-time"
        assert lanari.charges == []

        history = await client.get(f"/v1/payments/user/{viewer.id}")
        assert history.json()["pagination"]["total"] == 0

    async def test_orchestrator_rejects_one_time_series_access(
        self,
        viewer: User,
        series: tuple[Content, list[Content]],
        orchestrator: PaymentOrchestrator,
        lanari: FakeLanariPay,
    ) -> None:
        series_row, _ = series

        with pytest.raises(InvalidAccessPeriodException):
            await orchestrator.pay_series(
                user_id=viewer.id,
                phone="0788000000",
                series_id=series_row.id,
                access_period=AccessPeriod.ONE_TIME,
            )

        assert lanari.charges == []

    async def test_series_without_episodes(
        self,
        client: AsyncClient,
        db_session,
        viewer: User,
        filmmaker: User,
    ) -> None:
        empty, _ = await ContentFactory.create_series(
            db_session, filmmaker.id, episode_prices=()
        )

        response = await client.post(
            "/v1/payments/series/momo",
            json=PaymentRequestFactory.series_payment(viewer.id, empty.id),
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "SERIES_NO_EPISODES"

    async def test_pricing_endpoint(
        self,
        client: AsyncClient,
        series: tuple[Content, list[Content]],
    ) -> None:
        series_row, episodes = series

        response = await client.get(f"/v1/payments/series/{series_row.id}/pricing")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["series"]["totalEpisodes"] == len(episodes)
        assert [e["episodeNumber"] for e in data["episodes"]] == [1, 2, 3, 4, 5]
        pricing = data["pricing"]
        assert money(pricing["totalIndividualPrice"]) == Decimal("2500.00")
        assert [tier["period"] for tier in pricing["seriesPricing"]] == ["30d", "90d"]
        assert pricing["bestValue"]["period"] == "30d"
        assert pricing["seriesPricing"][0]["savingsPercentage"] == 20

    async def test_access_endpoint(
        self,
        client: AsyncClient,
        viewer: User,
        series: tuple[Content, list[Content]],
        lanari: FakeLanariPay,
    ) -> None:
        series_row, episodes = series
        url = f"/v1/payments/series/{series_row.id}/access/{viewer.id}"

        before = (await client.get(url)).json()["data"]
        assert before["hasAccess"] is False

        lanari.charge_mode = "successful"
        await client.post(
            "/v1/payments/series/momo",
            json=PaymentRequestFactory.series_payment(viewer.id, series_row.id),
        )

        after = (await client.get(url)).json()["data"]
        assert after["hasAccess"] is True
        assert after["accessPeriod"] == "30d"
        assert after["daysRemaining"] == 30
        assert after["episodesCovered"] == len(episodes)

    async def test_unknown_series(self, client: AsyncClient) -> None:
        response = await client.get("/v1/payments/series/nope/pricing")

        assert response.status_code == 404


@pytest.mark.integration
class TestSubscriptionPaymentsAPI:
    async def test_upgrade_sets_plan_and_devices(
        self,
        client: AsyncClient,
        db_session,
        lanari: FakeLanariPay,
    ) -> None:
        user = await UserFactory.create_viewer(
            db_session, active_devices=["tv", "phone", "tablet"]
        )
        lanari.charge_mode = "successful"

        response = await client.post(
            "/v1/payments/subscription/momo",
            json=PaymentRequestFactory.subscription_payment(user.id, plan="basic"),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["paymentClass"] == "subscription_upgrade"
        assert data["subscriptionPlan"] == "basic"

        await db_session.refresh(user)
        assert user.is_upgraded is True
        assert user.subscription_plan == "basic"
        assert user.max_devices == 1
        assert user.active_devices == ["tv"]
        assert user.subscription_end_date > datetime.now(timezone.utc) + timedelta(days=29)

        withdrawals = await load_withdrawals(data["id"])
        assert [w.type for w in withdrawals] == ["subscription_admin_fee"]
        assert money(withdrawals[0].amount) == Decimal("5000.00")

    async def test_renewal_extends_from_current_end(
        self,
        client: AsyncClient,
        db_session,
        lanari: FakeLanariPay,
    ) -> None:
        current_end = datetime.now(timezone.utc) + timedelta(days=10)
        user = await UserFactory.create_viewer(db_session, subscription_end_date=current_end)
        lanari.charge_mode = "successful"

        await client.post(
            "/v1/payments/subscription/momo",
            json=PaymentRequestFactory.subscription_payment(
                user.id, plan="pro", payment_type="subscription_renewal"
            ),
        )

        await db_session.refresh(user)
        assert user.max_devices == 4
        expected = current_end + timedelta(days=30)
        assert abs((user.subscription_end_date - expected).total_seconds()) < 5


@pytest.mark.integration
class TestPaymentQueriesAPI:
    async def test_status_lookup(
        self, client: AsyncClient, viewer: User, movie: Content
    ) -> None:
        created = await client.post(
            "/v1/payments/momo",
            json=PaymentRequestFactory.momo_payment(viewer.id, movie.id),
        )
        payment_id = created.json()["data"]["id"]

        response = await client.get(f"/v1/payments/status/{payment_id}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == payment_id

    async def test_status_not_found(self, client: AsyncClient) -> None:
        response = await client.get("/v1/payments/status/missing")

        assert response.status_code == 404
        body = response.json()
        assert body["error"]["code"] == "PAYMENT_NOT_FOUND"
        assert body["meta"]["path"] == "/v1/payments/status/missing"

    async def test_user_history_is_paginated(
        self, client: AsyncClient, viewer: User, movie: Content
    ) -> None:
        for _ in range(3):
            await client.post(
                "/v1/payments/momo",
                json=PaymentRequestFactory.momo_payment(viewer.id, movie.id),
            )

        response = await client.get(f"/v1/payments/user/{viewer.id}?page=1&limit=2")

        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

        capped = await client.get(f"/v1/payments/user/{viewer.id}?limit=500")
        assert capped.json()["pagination"]["limit"] == 100

    async def test_movie_analytics(
        self,
        client: AsyncClient,
        viewer: User,
        movie: Content,
        lanari: FakeLanariPay,
    ) -> None:
        lanari.charge_mode = "successful"
        await client.post(
            "/v1/payments/momo",
            json=PaymentRequestFactory.momo_payment(viewer.id, movie.id),
        )
        lanari.charge_mode = "pending"
        await client.post(
            "/v1/payments/momo",
            json=PaymentRequestFactory.momo_payment(viewer.id, movie.id),
        )

        response = await client.get(f"/v1/payments/movie/{movie.id}/analytics")

        data = response.json()["data"]
        assert data["totalPayments"] == 1
        assert data["totalRevenue"] == 1000
        assert money(data["averagePayment"]) == Decimal("1000.00")
        assert money(data["filmmakerTotal"]) == Decimal("700.00")
        assert data["byMethod"] == {"momo": {"count": 1, "amount": 1000}}

    async def test_movie_analytics_for_owner_and_admin(
        self,
        client: AsyncClient,
        db_session,
        filmmaker: User,
        movie: Content,
    ) -> None:
        admin = await UserFactory.create_admin(db_session)

        for requester in (filmmaker.id, admin.id):
            response = await client.get(
                f"/v1/payments/movie/{movie.id}/analytics",
                params={"requesterId": requester},
            )
            assert response.status_code == 200

    async def test_movie_analytics_rejects_other_users(
        self, client: AsyncClient, viewer: User, movie: Content
    ) -> None:
        response = await client.get(
            f"/v1/payments/movie/{movie.id}/analytics",
            params={"requesterId": viewer.id},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "NOT_OWNER"
