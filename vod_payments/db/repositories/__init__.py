from vod_payments.db.repositories.content_repository import ContentRepository
from vod_payments.db.repositories.entitlement_repository import EntitlementRepository
from vod_payments.db.repositories.finance_repository import FinanceRepository
from vod_payments.db.repositories.payment_repository import PaymentRepository
from vod_payments.db.repositories.withdrawal_repository import WithdrawalRepository

__all__ = [
    "ContentRepository",
    "EntitlementRepository",
    "FinanceRepository",
    "PaymentRepository",
    "WithdrawalRepository",
]
