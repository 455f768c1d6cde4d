from vod_payments.db.models.content import Content
from vod_payments.db.models.entitlement import Entitlement
from vod_payments.db.models.filmmaker_finance import FilmmakerFinance
from vod_payments.db.models.payment import Payment
from vod_payments.db.models.user import User
from vod_payments.db.models.withdrawal import Withdrawal

__all__ = [
    "Content",
    "Entitlement",
    "FilmmakerFinance",
    "Payment",
    "User",
    "Withdrawal",
]
