from tests.utils.factories import ContentFactory, PaymentRequestFactory, UserFactory
from tests.utils.gateway import FakeCardGateway, FakeLanariPay
from tests.utils.helpers import (
    load_entitlements,
    load_finance,
    load_payment,
    load_withdrawals,
    money,
    sign_webhook,
)

__all__ = [
    "ContentFactory",
    "FakeCardGateway",
    "FakeLanariPay",
    "PaymentRequestFactory",
    "UserFactory",
    "load_entitlements",
    "load_finance",
    "load_payment",
    "load_withdrawals",
    "money",
    "sign_webhook",
]
