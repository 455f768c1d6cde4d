from vod_payments.services.access_grantor import AccessGrantor
from vod_payments.services.card_gateway import StripeCardGateway
from vod_payments.services.gateway_client import LanariPayClient
from vod_payments.services.ledger_service import LedgerService
from vod_payments.services.payment_orchestrator import PaymentOrchestrator
from vod_payments.services.reconciler import Reconciler
from vod_payments.services.token_signer import TokenSigner
from vod_payments.services.withdrawal_recorder import WithdrawalRecorder

__all__ = [
    "AccessGrantor",
    "LanariPayClient",
    "LedgerService",
    "PaymentOrchestrator",
    "Reconciler",
    "StripeCardGateway",
    "TokenSigner",
    "WithdrawalRecorder",
]
