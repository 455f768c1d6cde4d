"""Pure money arithmetic: currency normalization, share split, input cleanup."""

import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from vod_payments.core.enums import PaymentClass
from vod_payments.exceptions import (
    AmountTooLowException,
    InvalidPhoneException,
    SplitMismatchException,
    UnsupportedCurrencyException,
)

MINIMUM_AMOUNT = 5

CONVERSION_RATES = {
    "RWF": Decimal("1"),
    "USD": Decimal("1200"),
    "EUR": Decimal("1300"),
    "GBP": Decimal("1500"),
}

PURCHASE_CLASSES = (PaymentClass.WATCH, PaymentClass.DOWNLOAD)

_CENTS = Decimal("0.01")
_PHONE_RE = re.compile(r"^0(78|79)\d{7}$")
_NON_DIGITS = re.compile(r"\D")
_DISALLOWED_DESCRIPTION_CHARS = re.compile(r"[^A-Za-z0-9 ]")
_WHITESPACE_RUN = re.compile(r"\s+")

Number = Union[int, float, str, Decimal]


def to_decimal(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def classify(
    payment_class: Union[PaymentClass, str],
    filmmaker_percentage: Number = 70,
) -> tuple[Decimal, Decimal]:
    """Return (filmmaker_pct, platform_pct) for a payment class.

    Watch and download purchases use the configured split. Series access and
    subscriptions go 100% to the platform.
    """
    if PaymentClass(payment_class) in PURCHASE_CLASSES:
        filmmaker_pct = to_decimal(filmmaker_percentage)
        return filmmaker_pct, Decimal("100") - filmmaker_pct
    return Decimal("0"), Decimal("100")


def split(
    amount: Number,
    payment_class: Union[PaymentClass, str],
    filmmaker_percentage: Number = 70,
) -> tuple[Decimal, Decimal]:
    """Return (filmmaker_share, platform_share).

    The platform side is rounded, and the filmmaker side is the remainder, so
    the two always add back to the amount exactly.
    """
    amount = quantize_money(to_decimal(amount))
    _, platform_pct = classify(payment_class, filmmaker_percentage)
    platform_share = quantize_money(amount * platform_pct / Decimal("100"))
    filmmaker_share = amount - platform_share
    if filmmaker_share + platform_share != amount or filmmaker_share < 0:
        raise SplitMismatchException(amount, filmmaker_share, platform_share)
    return filmmaker_share, platform_share


def exchange_rate(currency: str) -> Decimal:
    rate = CONVERSION_RATES.get((currency or "").upper())
    if rate is None:
        raise UnsupportedCurrencyException(currency)
    return rate


def normalize_to_rwf(amount: Number, currency: str) -> int:
    """Convert to whole RWF using the fixed table, rounding half up."""
    converted = to_decimal(amount) * exchange_rate(currency)
    return int(converted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def ensure_minimum(amount_rwf: int) -> None:
    if amount_rwf < MINIMUM_AMOUNT:
        raise AmountTooLowException(amount_rwf, MINIMUM_AMOUNT)


def validate_phone_rw(raw: str) -> str:
    """Normalize a Rwandan MoMo number to 0XXXXXXXXX or raise InvalidPhoneException."""
    digits = _NON_DIGITS.sub("", raw or "")
    if digits.startswith("250"):
        digits = "0" + digits[3:]
    elif not digits.startswith("0"):
        digits = "0" + digits
    if not _PHONE_RE.match(digits):
        raise InvalidPhoneException(raw)
    return digits


def sanitize_description(text: str) -> str:
    cleaned = _DISALLOWED_DESCRIPTION_CHARS.sub(" ", text or "")
    return _WHITESPACE_RUN.sub(" ", cleaned).strip()
