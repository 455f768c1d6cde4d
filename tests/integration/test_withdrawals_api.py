from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from vod_payments.db.models import User
from tests.utils import FakeLanariPay, UserFactory, load_finance, money


@pytest_asyncio.fixture
async def funded_filmmaker(db_session: AsyncSession) -> User:
    return await UserFactory.create_filmmaker(db_session, available_balance=Decimal("5000"))


@pytest.mark.integration
class TestWithdrawalRequestAPI:
    async def test_withdrawal_completes(
        self, client: AsyncClient, funded_filmmaker: User, lanari: FakeLanariPay
    ) -> None:
        response = await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 1000}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Withdrawal completed"
        data = body["data"]
        assert data["status"] == "completed"
        assert data["type"] == "manual_withdrawal"
        assert data["referenceId"] == "PO000001"
        assert data["phone"] == "0788123456"
        assert money(data["amount"]) == Decimal("1000.00")

        assert lanari.payouts[0]["recipient_phone"] == "0788123456"
        finance = await load_finance(funded_filmmaker.id)
        assert money(finance.available_balance) == Decimal("4000.00")
        assert money(finance.withdrawn_balance) == Decimal("1000.00")

    async def test_withdrawal_to_override_phone(
        self, client: AsyncClient, funded_filmmaker: User, lanari: FakeLanariPay
    ) -> None:
        response = await client.post(
            "/v1/withdrawals",
            json={
                "userId": funded_filmmaker.id,
                "amount": 500,
                "phoneNumber": "250791234567",
            },
        )

        assert response.status_code == 201
        assert lanari.payouts[0]["recipient_phone"] == "0791234567"

    async def test_failed_payout_releases_reservation(
        self, client: AsyncClient, funded_filmmaker: User, lanari: FakeLanariPay
    ) -> None:
        lanari.payout_mode = "failed"

        response = await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 1000}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "failed"
        assert data["failureReason"]

        finance = await load_finance(funded_filmmaker.id)
        assert money(finance.available_balance) == Decimal("5000.00")
        assert money(finance.withdrawn_balance) == Decimal("0.00")

    async def test_missing_payout_endpoint_fails_withdrawal(
        self, client: AsyncClient, funded_filmmaker: User, lanari: FakeLanariPay
    ) -> None:
        lanari.payout_mode = "missing"

        response = await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 1000}
        )

        assert response.json()["data"]["status"] == "failed"
        finance = await load_finance(funded_filmmaker.id)
        assert money(finance.available_balance) == Decimal("5000.00")

    async def test_below_minimum(self, client: AsyncClient, funded_filmmaker: User) -> None:
        response = await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 50}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "WITHDRAWAL_BELOW_MINIMUM"

    async def test_insufficient_balance(
        self, client: AsyncClient, funded_filmmaker: User, lanari: FakeLanariPay
    ) -> None:
        response = await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 6000}
        )

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "WITHDRAWAL_INSUFFICIENT_BALANCE"
        assert error["details"]["required"] == "6000.00"
        assert lanari.payouts == []

    async def test_unverified_filmmaker(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        user = await UserFactory.create_filmmaker(
            db_session, is_verified=False, available_balance=Decimal("5000")
        )

        response = await client.post(
            "/v1/withdrawals", json={"userId": user.id, "amount": 1000}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FILMMAKER_NOT_VERIFIED"

    async def test_unknown_user(self, client: AsyncClient) -> None:
        response = await client.post(
            "/v1/withdrawals", json={"userId": "missing", "amount": 1000}
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "USER_NOT_FOUND"

    @pytest.mark.parametrize(
        "payload",
        [
            {"amount": 1000},
            {"userId": "u1", "amount": 0},
            {"userId": "u1", "amount": 1000, "phoneNumber": "abc"},
        ],
    )
    async def test_invalid_input(self, client: AsyncClient, payload: dict) -> None:
        response = await client.post("/v1/withdrawals", json=payload)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.integration
class TestWithdrawalQueriesAPI:
    async def test_list_with_filters(
        self, client: AsyncClient, funded_filmmaker: User, lanari: FakeLanariPay
    ) -> None:
        await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 1000}
        )
        lanari.payout_mode = "failed"
        await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 500}
        )

        response = await client.get(f"/v1/withdrawals/user/{funded_filmmaker.id}")
        body = response.json()
        assert body["pagination"]["total"] == 2
        assert len(body["data"]) == 2

        completed = await client.get(
            f"/v1/withdrawals/user/{funded_filmmaker.id}", params={"status": "completed"}
        )
        assert [item["status"] for item in completed.json()["data"]] == ["completed"]

        earnings = await client.get(
            f"/v1/withdrawals/user/{funded_filmmaker.id}",
            params={"type": "filmmaker_earning"},
        )
        assert earnings.json()["data"] == []

    async def test_list_rejects_unknown_status(
        self, client: AsyncClient, funded_filmmaker: User
    ) -> None:
        response = await client.get(
            f"/v1/withdrawals/user/{funded_filmmaker.id}", params={"status": "bogus"}
        )

        assert response.status_code == 422

    async def test_finance_summary(
        self, client: AsyncClient, funded_filmmaker: User
    ) -> None:
        await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 1000}
        )

        response = await client.get(
            f"/v1/withdrawals/filmmaker/{funded_filmmaker.id}/finance"
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert money(data["availableBalance"]) == Decimal("4000.00")
        assert money(data["withdrawnBalance"]) == Decimal("1000.00")
        assert data["isVerified"] is True
        assert data["payoutPhone"] == "0788123456"
        assert data["withdrawalCounts"] == {"completed": 1}

    async def test_finance_unknown_user(self, client: AsyncClient) -> None:
        response = await client.get("/v1/withdrawals/filmmaker/missing/finance")

        assert response.status_code == 404

    async def test_get_withdrawal(
        self, client: AsyncClient, funded_filmmaker: User
    ) -> None:
        created = await client.post(
            "/v1/withdrawals", json={"userId": funded_filmmaker.id, "amount": 1000}
        )
        withdrawal_id = created.json()["data"]["id"]

        response = await client.get(f"/v1/withdrawals/{withdrawal_id}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == withdrawal_id

    async def test_get_unknown_withdrawal(self, client: AsyncClient) -> None:
        response = await client.get("/v1/withdrawals/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WITHDRAWAL_NOT_FOUND"
