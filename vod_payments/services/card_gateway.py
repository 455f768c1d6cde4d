import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import stripe
from starlette.concurrency import run_in_threadpool

from vod_payments.exceptions import GatewayUnreachableException, MisconfiguredException

logger = logging.getLogger(__name__)

ZERO_DECIMAL_CURRENCIES = {"RWF", "XOF", "JPY", "KRW"}


@dataclass(frozen=True)
class CardIntent:
    id: str
    client_secret: Optional[str]
    status: str


def to_minor_units(amount: Decimal, currency: str) -> int:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeCardGateway:
    """Card charges through Stripe PaymentIntents. The blocking SDK runs in the threadpool."""

    def __init__(self, secret_key: Optional[str]) -> None:
        self.secret_key = secret_key

    def ensure_configured(self) -> None:
        if not self.secret_key:
            raise MisconfiguredException("STRIPE_SECRET_KEY")

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: dict[str, str],
        receipt_email: Optional[str] = None,
    ) -> CardIntent:
        self.ensure_configured()
        params = {
            "api_key": self.secret_key,
            "amount": to_minor_units(amount, currency),
            "currency": currency.lower(),
            "description": description,
            "metadata": metadata,
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        try:
            intent = await run_in_threadpool(stripe.PaymentIntent.create, **params)
        except stripe.StripeError as exc:
            logger.error(
                "Stripe PaymentIntent creation failed: %s",
                exc.user_message or str(exc),
                extra={"user_id": metadata.get("user_id")},
            )
            raise GatewayUnreachableException(exc.user_message or str(exc)) from exc
        return CardIntent(id=intent.id, client_secret=intent.client_secret, status=intent.status)
