import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from vod_payments.core.config import Settings
from vod_payments.core.enums import GatewayStatus
from vod_payments.exceptions import MisconfiguredException, PayoutUnavailableException
from vod_payments.metrics import gateway_requests_total
from vod_payments.services.money import (
    normalize_to_rwf,
    sanitize_description,
    validate_phone_rw,
)

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {"success", "successful", "completed"}
FAILURE_STATUSES = {"failed", "cancelled"}


@dataclass
class PayoutSplit:
    tel: str
    percentage: float


@dataclass
class GatewayResult:
    """Outcome of one gateway call. Network failures are results, not exceptions."""

    success: bool
    reference_id: Optional[str] = None
    gateway_status: Optional[GatewayStatus] = None
    data: dict = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False
    status_code: Optional[int] = None
    financial_transaction_id: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.gateway_status == GatewayStatus.SUCCESSFUL

    @property
    def is_failed(self) -> bool:
        return self.gateway_status == GatewayStatus.FAILED


def _extract_reference(data: dict) -> Optional[str]:
    for key in ("transaction_ref", "transaction_id", "reference_id", "id"):
        value = data.get(key)
        if value:
            return str(value)
    return None


def _nested_gateway_status(data: dict) -> Optional[str]:
    gateway_response = data.get("gateway_response") or {}
    if not isinstance(gateway_response, dict):
        return None
    inner = gateway_response.get("data") or {}
    return inner.get("status") if isinstance(inner, dict) else None


def _nested_transaction_id(data: dict) -> Optional[str]:
    gateway_response = data.get("gateway_response") or {}
    if isinstance(gateway_response, dict) and isinstance(gateway_response.get("data"), dict):
        value = gateway_response["data"].get("transaction_id")
        return str(value) if value else None
    return None


def _nested_gateway_message(data: dict) -> Optional[str]:
    gateway_response = data.get("gateway_response") or {}
    if isinstance(gateway_response, dict) and isinstance(gateway_response.get("data"), dict):
        return gateway_response["data"].get("message")
    return None


def is_accepted(data: dict) -> bool:
    """Success predicate shared by charge and disburse replies."""
    if _nested_gateway_status(data) == GatewayStatus.SUCCESSFUL.value:
        return True
    if data.get("success") is True or data.get("status") == "success":
        return True
    return bool(data.get("transaction_ref")) and data.get("status") != "failed"


def map_status(status: Optional[str], payment_status: Optional[str]) -> GatewayStatus:
    """Map the provider's loose status strings onto SUCCESSFUL / FAILED / PENDING."""
    status = (status or "").lower()
    payment_status = (payment_status or "").lower()
    if status in SUCCESS_STATUSES or payment_status in SUCCESS_STATUSES:
        return GatewayStatus.SUCCESSFUL
    if payment_status in FAILURE_STATUSES or status == "failed":
        return GatewayStatus.FAILED
    return GatewayStatus.PENDING


def normalize_payout_splits(splits: list[PayoutSplit]) -> list[dict[str, Any]]:
    total = sum(split.percentage for split in splits)
    if total != 100 and total > 0:
        logger.warning(
            "Payout percentages sum to %s, rescaling to 100", total, extra={"total": total}
        )
        shares = [round(split.percentage * 100 / total) for split in splits]
        # Rounding residue goes to the last number.
        shares[-1] += 100 - sum(shares)
        return [
            {"tel": split.tel, "percentage": share}
            for split, share in zip(splits, shares)
        ]
    return [{"tel": split.tel, "percentage": split.percentage} for split in splits]


class LanariPayClient:
    """Adapter over the Lanari Pay mobile-money HTTP API: charge, poll, disburse."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.timeout = settings.lanari_pay_timeout_seconds

    def ensure_configured(self) -> None:
        self._credentials()

    def _credentials(self) -> dict[str, str]:
        if not self.settings.lanari_pay_api_key:
            raise MisconfiguredException("LANARI_PAY_API_KEY")
        if not self.settings.lanari_pay_api_secret:
            raise MisconfiguredException("LANARI_PAY_API_SECRET")
        return {
            "api_key": self.settings.lanari_pay_api_key,
            "api_secret": self.settings.lanari_pay_api_secret,
        }

    async def _send(
        self, operation: str, method: str, url: str, **kwargs: Any
    ) -> tuple[Optional[httpx.Response], Optional[GatewayResult]]:
        """Perform the HTTP call. Returns (response, None) or (None, failure result)."""
        headers = {"Accept": "application/json"}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            gateway_requests_total.labels(operation=operation, outcome="timeout").inc()
            logger.error(
                "Gateway %s timed out url=%s",
                operation,
                url,
                extra={"operation": operation, "error": str(exc)},
            )
            return None, GatewayResult(
                success=False,
                error="Request to Lanari Pay timed out. Please try again.",
                error_code="ETIMEDOUT",
                retryable=True,
            )
        except httpx.RequestError as exc:
            gateway_requests_total.labels(operation=operation, outcome="unreachable").inc()
            logger.error(
                "Gateway %s unreachable url=%s",
                operation,
                url,
                extra={"operation": operation, "error": str(exc)},
            )
            return None, GatewayResult(
                success=False,
                error="Cannot connect to Lanari Pay API.",
                error_code="ECONNREFUSED",
                retryable=True,
            )

        if response.status_code >= 500:
            gateway_requests_total.labels(operation=operation, outcome="server_error").inc()
            logger.error(
                "Gateway %s returned HTTP %s",
                operation,
                response.status_code,
                extra={"operation": operation, "status_code": response.status_code},
            )
            return None, GatewayResult(
                success=False,
                error=f"Lanari Pay returned HTTP {response.status_code}",
                error_code="GATEWAY_SERVER_ERROR",
                retryable=True,
                status_code=response.status_code,
                data=_json_body(response),
            )
        return response, None

    async def charge(
        self,
        amount: int,
        phone: str,
        user_id: str,
        description: str,
        currency: str = "RWF",
        payout_splits: Optional[list[PayoutSplit]] = None,
    ) -> GatewayResult:
        credentials = self._credentials()
        amount_rwf = normalize_to_rwf(amount, currency)
        payload: dict[str, Any] = {
            **credentials,
            "amount": amount_rwf,
            "customer_phone": validate_phone_rw(phone),
            "currency": "RWF",
            "payment_method": "mobile_money",
            "description": sanitize_description(description) or "Payment",
            "customer_email": "",
        }
        if payout_splits:
            payload["payout_numbers"] = normalize_payout_splits(payout_splits)

        logger.info(
            "Requesting charge amount=%s user_id=%s",
            amount_rwf,
            user_id,
            extra={"user_id": user_id, "amount": amount_rwf},
        )
        response, failure = await self._send(
            "charge", "POST", self.settings.lanari_pay_process_url, json=payload
        )
        if failure:
            return failure

        data = _json_body(response)
        nested_status = _nested_gateway_status(data)
        if is_accepted(data):
            gateway_status = (
                GatewayStatus.SUCCESSFUL
                if nested_status == GatewayStatus.SUCCESSFUL.value
                else GatewayStatus.PENDING
            )
            gateway_requests_total.labels(operation="charge", outcome="accepted").inc()
            return GatewayResult(
                success=True,
                reference_id=_extract_reference(data),
                gateway_status=gateway_status,
                data=data,
                status_code=response.status_code,
                financial_transaction_id=_nested_transaction_id(data),
            )

        error = (
            data.get("message")
            or data.get("error")
            or _nested_gateway_message(data)
            or "Payment initiation failed"
        )
        gateway_requests_total.labels(operation="charge", outcome="rejected").inc()
        logger.warning(
            "Charge rejected by gateway user_id=%s status_code=%s",
            user_id,
            response.status_code,
            extra={"user_id": user_id, "gateway_message": error},
        )
        return GatewayResult(
            success=False,
            reference_id=_extract_reference(data),
            gateway_status=GatewayStatus.FAILED,
            data=data,
            error=str(error),
            error_code="GATEWAY_REJECTED",
            status_code=response.status_code,
        )

    async def poll_status(self, reference_id: str) -> GatewayResult:
        if not reference_id:
            return GatewayResult(success=False, error="Reference ID is required")
        credentials = self._credentials()
        response, failure = await self._send(
            "poll",
            "GET",
            self.settings.lanari_pay_status_url,
            params={"transaction_ref": reference_id, **credentials},
        )
        if failure:
            return failure

        data = _json_body(response)
        gateway_status = map_status(data.get("status"), data.get("payment_status"))
        gateway_requests_total.labels(
            operation="poll", outcome=gateway_status.value.lower()
        ).inc()
        return GatewayResult(
            success=True,
            reference_id=reference_id,
            gateway_status=gateway_status,
            data=data,
            error=data.get("reason") or data.get("error"),
            status_code=response.status_code,
            financial_transaction_id=(
                data.get("financial_transaction_id") or data.get("momo_transaction_id")
            ),
        )

    async def disburse(
        self, amount, phone: str, external_id: str, description: str
    ) -> GatewayResult:
        """Send money to a beneficiary.

        Raises PayoutUnavailableException when the payout endpoint does not exist.
        """
        credentials = self._credentials()
        url = self.settings.lanari_pay_payout_url
        payload = {
            **credentials,
            "amount": normalize_to_rwf(amount, "RWF"),
            "recipient_phone": validate_phone_rw(phone),
            "currency": "RWF",
            "payment_method": "mobile_money",
            "description": sanitize_description(description) or "Payout",
            "reference_id": external_id,
        }
        response, failure = await self._send("disburse", "POST", url, json=payload)
        if failure:
            return failure

        if response.status_code == 404:
            gateway_requests_total.labels(operation="disburse", outcome="unavailable").inc()
            raise PayoutUnavailableException(url)

        data = _json_body(response)
        if is_accepted(data):
            gateway_requests_total.labels(operation="disburse", outcome="accepted").inc()
            return GatewayResult(
                success=True,
                reference_id=_extract_reference(data),
                gateway_status=GatewayStatus.SUCCESSFUL,
                data=data,
                status_code=response.status_code,
            )

        gateway_requests_total.labels(operation="disburse", outcome="rejected").inc()
        return GatewayResult(
            success=False,
            gateway_status=GatewayStatus.FAILED,
            data=data,
            error=str(data.get("message") or data.get("error") or "Payout failed"),
            error_code="PAYOUT_REJECTED",
            status_code=response.status_code,
        )

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """HMAC-SHA256 of the raw webhook body keyed with the API secret."""
        secret = self.settings.lanari_pay_api_secret
        if not secret:
            raise MisconfiguredException("LANARI_PAY_API_SECRET")
        if not signature:
            return False
        expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip())


def _json_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {"raw": response.text}
    return body if isinstance(body, dict) else {"body": body}
