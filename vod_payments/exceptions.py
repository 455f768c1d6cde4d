from decimal import Decimal
from typing import Any, Optional

INSUFFICIENT_FUNDS_MESSAGE = "Ntamafranga ufite ahagije. Ongera amafranga wishyure!"


class BaseAPIException(Exception):
    """
    Base exception for all API errors.

    Provides consistent structure with status_code, error_code, and details.
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}


class ValidationException(BaseAPIException):
    """Invalid input data (HTTP 422)."""

    status_code = 422
    error_code = "VALIDATION_ERROR"


class BusinessException(BaseAPIException):
    """Business rule violation (HTTP 409)."""

    status_code = 409
    error_code = "BUSINESS_RULE_VIOLATION"


class NotFoundException(BaseAPIException):
    """Resource not found (HTTP 404)."""

    status_code = 404
    error_code = "RESOURCE_NOT_FOUND"


class ForbiddenException(BaseAPIException):
    """Caller may not act on the resource (HTTP 403)."""

    status_code = 403
    error_code = "FORBIDDEN"


class UnauthorizedException(BaseAPIException):
    status_code = 401
    error_code = "UNAUTHORIZED"


class GatewayException(BaseAPIException):
    """Mobile-money gateway failure (HTTP 502)."""

    status_code = 502
    error_code = "GATEWAY_ERROR"


class SystemException(BaseAPIException):
    """Internal system error (HTTP 500)."""

    status_code = 500
    error_code = "SYSTEM_ERROR"


# Validation
class MissingFieldException(ValidationException):
    error_code = "MISSING_FIELD"

    def __init__(self, field: str):
        super().__init__(
            message=f"Missing required field: {field}", details={"field": field}
        )


class InvalidPhoneException(ValidationException):
    """Phone number is not a Rwandan mobile-money number."""

    error_code = "INVALID_PHONE"

    def __init__(self, phone: str):
        super().__init__(
            message="Invalid phone number. Expected format 078XXXXXXX or 079XXXXXXX",
            details={"phone": phone},
        )


class InvalidAccessPeriodException(ValidationException):
    """Period has no fixed duration where one is required."""

    error_code = "INVALID_ACCESS_PERIOD"

    def __init__(self, period: Optional[str]):
        super().__init__(
            message="Series access needs a fixed access period",
            details={"access_period": period},
        )


class UnsupportedCurrencyException(ValidationException):
    error_code = "UNSUPPORTED_CURRENCY"

    def __init__(self, currency: str):
        super().__init__(
            message=f"Unsupported currency: {currency}",
            details={"currency": currency},
        )


class AmountTooLowException(ValidationException):
    error_code = "AMOUNT_TOO_LOW"

    def __init__(self, amount: int, minimum: int):
        super().__init__(
            message=f"Amount too low. Minimum payment is {minimum} RWF",
            details={"amount": amount, "minimum": minimum},
        )


class MinWithdrawalException(ValidationException):
    error_code = "WITHDRAWAL_BELOW_MINIMUM"

    def __init__(self, amount: Decimal, minimum: int):
        super().__init__(
            message=f"Minimum withdrawal is {minimum} RWF",
            details={"amount": str(amount), "minimum": minimum},
        )


# Not found
class ContentNotFoundException(NotFoundException):
    error_code = "CONTENT_NOT_FOUND"

    def __init__(self, content_id: str):
        super().__init__(
            message=f"Content not found: {content_id}",
            details={"content_id": content_id},
        )


class PaymentNotFoundException(NotFoundException):
    error_code = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        super().__init__(
            message="Payment not found", details={"payment_id": payment_id}
        )


class WithdrawalNotFoundException(NotFoundException):
    error_code = "WITHDRAWAL_NOT_FOUND"

    def __init__(self, withdrawal_id: str):
        super().__init__(
            message="Withdrawal not found", details={"withdrawal_id": withdrawal_id}
        )


class UserNotFoundException(NotFoundException):
    error_code = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        super().__init__(message="User not found", details={"user_id": user_id})


# Forbidden
class NotOwnerException(ForbiddenException):
    error_code = "NOT_OWNER"

    def __init__(self, user_id: str, resource_id: str):
        super().__init__(
            message="You do not own this resource",
            details={"user_id": user_id, "resource_id": resource_id},
        )


class NotVerifiedException(ForbiddenException):
    error_code = "FILMMAKER_NOT_VERIFIED"

    def __init__(self, user_id: str):
        super().__init__(
            message="Filmmaker account is not verified", details={"user_id": user_id}
        )


# Business / state
class InsufficientBalanceException(BusinessException):
    """Withdrawal amount exceeds available balance."""

    error_code = "WITHDRAWAL_INSUFFICIENT_BALANCE"

    def __init__(self, user_id: str, available: Decimal, required: Decimal):
        super().__init__(
            message="Insufficient balance for withdrawal",
            details={
                "user_id": user_id,
                "available": str(available),
                "required": str(required),
            },
        )


class NoEpisodesAvailableException(BusinessException):
    error_code = "SERIES_NO_EPISODES"

    def __init__(self, series_id: str):
        super().__init__(
            message="No episodes available for this series yet",
            details={"series_id": series_id},
        )


class AlreadyTerminalException(BusinessException):
    """Attempt to mutate a payment that already reached a terminal state."""

    error_code = "PAYMENT_ALREADY_TERMINAL"

    def __init__(self, payment_id: str, status: str):
        super().__init__(
            message=f"Payment is already {status}",
            details={"payment_id": payment_id, "status": status},
        )


# Gateway
class GatewayRejectedException(GatewayException):
    """Gateway accepted the request but refused the charge."""

    status_code = 400
    error_code = "GATEWAY_REJECTED"

    def __init__(
        self,
        gateway_message: str,
        payment_id: Optional[str] = None,
    ):
        lowered = (gateway_message or "").lower()
        if "balance" in lowered or "insufficient" in lowered:
            message = INSUFFICIENT_FUNDS_MESSAGE
        else:
            message = "Payment initiation failed"
        super().__init__(
            message=message,
            details={"gateway_message": gateway_message, "payment_id": payment_id},
        )


class GatewayUnreachableException(GatewayException):
    status_code = 503
    error_code = "GATEWAY_UNREACHABLE"

    def __init__(self, reason: str, payment_id: Optional[str] = None):
        super().__init__(
            message="Payment gateway is unreachable, please try again",
            details={"reason": reason, "payment_id": payment_id, "retryable": True},
        )


class PayoutUnavailableException(GatewayException):
    error_code = "PAYOUT_UNAVAILABLE"

    def __init__(self, url: str):
        super().__init__(
            message="Payout feature not available on the gateway",
            details={"url": url},
        )


class InvalidSignatureException(UnauthorizedException):
    error_code = "WEBHOOK_INVALID_SIGNATURE"

    def __init__(self) -> None:
        super().__init__(message="Invalid webhook signature")


# System / invariants
class MisconfiguredException(SystemException):
    error_code = "MISCONFIGURED"

    def __init__(self, setting: str):
        super().__init__(
            message=f"Service is not configured: {setting} is missing",
            details={"setting": setting},
        )


class SplitMismatchException(SystemException):
    error_code = "SPLIT_MISMATCH"

    def __init__(self, amount: Decimal, filmmaker_share: Decimal, platform_share: Decimal):
        super().__init__(
            message="Share split does not add up to the charged amount",
            details={
                "amount": str(amount),
                "filmmaker_share": str(filmmaker_share),
                "platform_share": str(platform_share),
            },
        )


class NegativeBalanceException(SystemException):
    error_code = "NEGATIVE_BALANCE"

    def __init__(self, user_id: str, field: str, value: Decimal):
        super().__init__(
            message=f"Balance {field} would become negative",
            details={"user_id": user_id, "field": field, "value": str(value)},
        )
