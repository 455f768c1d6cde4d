import json
from decimal import Decimal

import httpx
import pytest

from vod_payments.core.config import settings
from vod_payments.core.enums import GatewayStatus
from vod_payments.exceptions import MisconfiguredException, PayoutUnavailableException
from vod_payments.services.gateway_client import (
    LanariPayClient,
    PayoutSplit,
    is_accepted,
    map_status,
    normalize_payout_splits,
)
from tests.utils import sign_webhook


def client_for(handler) -> LanariPayClient:
    return LanariPayClient(settings, transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestStatusMapping:
    @pytest.mark.parametrize(
        "status,payment_status,expected",
        [
            ("success", None, GatewayStatus.SUCCESSFUL),
            ("SUCCESSFUL", None, GatewayStatus.SUCCESSFUL),
            (None, "completed", GatewayStatus.SUCCESSFUL),
            ("failed", None, GatewayStatus.FAILED),
            (None, "cancelled", GatewayStatus.FAILED),
            ("pending", "pending", GatewayStatus.PENDING),
            (None, None, GatewayStatus.PENDING),
        ],
    )
    def test_map_status(self, status, payment_status, expected) -> None:
        assert map_status(status, payment_status) == expected

    def test_is_accepted_variants(self) -> None:
        assert is_accepted({"gateway_response": {"data": {"status": "SUCCESSFUL"}}})
        assert is_accepted({"success": True})
        assert is_accepted({"status": "success"})
        assert is_accepted({"transaction_ref": "LP1", "status": "pending"})
        assert not is_accepted({"transaction_ref": "LP1", "status": "failed"})
        assert not is_accepted({"success": False, "message": "nope"})

    def test_payout_splits_rescaled_to_hundred(self) -> None:
        splits = normalize_payout_splits(
            [PayoutSplit("0788000000", 35), PayoutSplit("0790000000", 15)]
        )

        assert [split["percentage"] for split in splits] == [70, 30]

    @pytest.mark.parametrize(
        "percentages,expected",
        [
            ((1, 1, 1), [33, 33, 34]),
            ((2, 2, 2), [33, 33, 34]),
            ((1, 1, 1, 1, 1, 1), [17, 17, 17, 17, 17, 15]),
        ],
    )
    def test_rescaled_splits_always_sum_to_hundred(self, percentages, expected) -> None:
        splits = normalize_payout_splits(
            [
                PayoutSplit(f"07880000{index:02d}", value)
                for index, value in enumerate(percentages)
            ]
        )

        assert [split["percentage"] for split in splits] == expected
        assert sum(split["percentage"] for split in splits) == 100


@pytest.mark.unit
class TestCharge:
    async def test_pending_charge_returns_reference(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return httpx.Response(
                200, json={"success": True, "transaction_ref": "LP42", "status": "pending"}
            )

        result = await client_for(handler).charge(
            amount=1000, phone="+250788123456", user_id="u1", description="Watch: Film!"
        )

        assert result.success is True
        assert result.reference_id == "LP42"
        assert result.gateway_status == GatewayStatus.PENDING
        assert seen["customer_phone"] == "0788123456"
        assert seen["description"] == "Watch Film"
        assert seen["api_key"] == settings.lanari_pay_api_key
        assert seen["amount"] == 1000

    async def test_nested_successful_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "transaction_ref": "LP7",
                    "gateway_response": {
                        "data": {"status": "SUCCESSFUL", "transaction_id": "FIN-999"}
                    },
                },
            )

        result = await client_for(handler).charge(1000, "0788123456", "u1", "Watch")

        assert result.is_successful
        assert result.financial_transaction_id == "FIN-999"

    async def test_rejection_carries_gateway_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400, json={"success": False, "message": "Check users Balance"}
            )

        result = await client_for(handler).charge(1000, "0788123456", "u1", "Watch")

        assert result.success is False
        assert result.retryable is False
        assert result.error == "Check users Balance"
        assert result.gateway_status == GatewayStatus.FAILED

    async def test_timeout_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await client_for(handler).charge(1000, "0788123456", "u1", "Watch")

        assert result.success is False
        assert result.retryable is True
        assert result.error_code == "ETIMEDOUT"

    async def test_connection_error_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await client_for(handler).charge(1000, "0788123456", "u1", "Watch")

        assert result.retryable is True
        assert result.error_code == "ECONNREFUSED"

    async def test_server_error_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad gateway")

        result = await client_for(handler).charge(1000, "0788123456", "u1", "Watch")

        assert result.retryable is True
        assert result.status_code == 502

    async def test_missing_credentials(self) -> None:
        bare = settings.model_copy(update={"lanari_pay_api_key": None})
        client = LanariPayClient(bare, transport=httpx.MockTransport(lambda r: None))

        with pytest.raises(MisconfiguredException):
            await client.charge(1000, "0788123456", "u1", "Watch")


@pytest.mark.unit
class TestPollAndDisburse:
    async def test_poll_maps_status_and_transaction_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["transaction_ref"] == "LP9"
            return httpx.Response(
                200,
                json={"status": "success", "financial_transaction_id": "FT1"},
            )

        result = await client_for(handler).poll_status("LP9")

        assert result.gateway_status == GatewayStatus.SUCCESSFUL
        assert result.financial_transaction_id == "FT1"

    async def test_disburse_accepted(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["reference_id"] == "filmmaker_p1"
            assert body["amount"] == 700
            return httpx.Response(200, json={"success": True, "transaction_ref": "PO1"})

        result = await client_for(handler).disburse(
            Decimal("700.00"), "0788123456", "filmmaker_p1", "Earnings: watch"
        )

        assert result.success is True
        assert result.reference_id == "PO1"

    async def test_disburse_missing_endpoint(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="Not Found")

        with pytest.raises(PayoutUnavailableException):
            await client_for(handler).disburse(
                Decimal("300"), "0790000000", "admin_p1", "Platform Fee"
            )


@pytest.mark.unit
class TestSignature:
    def test_valid_signature(self) -> None:
        body = b'{"transaction_id": "LP1", "status": "success"}'
        client = LanariPayClient(settings)

        assert client.verify_signature(body, sign_webhook(body, settings.lanari_pay_api_secret))

    def test_tampered_body(self) -> None:
        body = b'{"transaction_id": "LP1", "status": "success"}'
        signature = sign_webhook(body, settings.lanari_pay_api_secret)
        client = LanariPayClient(settings)

        assert not client.verify_signature(body.replace(b"success", b"failed"), signature)
        assert not client.verify_signature(body, None)
