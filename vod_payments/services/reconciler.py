import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from vod_payments.core.enums import GatewayStatus, PaymentStatus, enum_value
from vod_payments.core.periods import utcnow
from vod_payments.db.models import Payment
from vod_payments.db.repositories import PaymentRepository
from vod_payments.exceptions import (
    InvalidSignatureException,
    MissingFieldException,
    PaymentNotFoundException,
)
from vod_payments.metrics import webhooks_total
from vod_payments.services.gateway_client import map_status
from vod_payments.services.payment_orchestrator import PaymentOrchestrator

logger = logging.getLogger(__name__)

GATEWAY_TO_PAYMENT_STATUS = {
    GatewayStatus.SUCCESSFUL: PaymentStatus.SUCCEEDED,
    GatewayStatus.FAILED: PaymentStatus.FAILED,
}


@dataclass
class WebhookOutcome:
    """outcome is one of: succeeded, failed, pending, stale."""

    outcome: str
    payment: Payment


class Reconciler:
    """Resolves pending payments from webhooks and polls.

    Both entry points converge on PaymentOrchestrator.apply_terminal_transition.
    """

    def __init__(self, orchestrator: PaymentOrchestrator) -> None:
        self.orchestrator = orchestrator
        self.session_factory = orchestrator.session_factory
        self.gateway = orchestrator.gateway
        self.settings = orchestrator.settings

    async def handle_webhook(
        self, payload: dict[str, Any], raw_body: bytes, signature: Optional[str]
    ) -> WebhookOutcome:
        if self.settings.lanari_pay_verify_webhook_signature:
            if not self.gateway.verify_signature(raw_body, signature):
                webhooks_total.labels(outcome="invalid_signature").inc()
                logger.warning("Webhook signature mismatch")
                raise InvalidSignatureException()

        reference_id = payload.get("transaction_id") or payload.get("reference_id")
        if not reference_id:
            webhooks_total.labels(outcome="invalid").inc()
            raise MissingFieldException("transaction_id")

        async with self.session_factory() as session:
            payment = await PaymentRepository(session).get_by_reference_id(str(reference_id))
        if payment is None:
            webhooks_total.labels(outcome="unknown_reference").inc()
            raise PaymentNotFoundException(str(reference_id))

        gateway_status = map_status(payload.get("status"), payload.get("payment_status"))
        target = GATEWAY_TO_PAYMENT_STATUS.get(gateway_status)

        if target is None:
            outcome = WebhookOutcome("pending", payment)
        elif payment.status != PaymentStatus.PENDING:
            outcome = WebhookOutcome("stale", await self._repair(payment))
        else:
            result = await self.orchestrator.apply_terminal_transition(
                payment.id,
                target,
                reason=payload.get("reason") if target == PaymentStatus.FAILED else None,
                financial_transaction_id=payload.get("financial_transaction_id"),
            )
            outcome = WebhookOutcome(
                enum_value(target) if result.transitioned else "stale", result.payment
            )

        webhooks_total.labels(outcome=outcome.outcome).inc()
        logger.info(
            "Webhook processed reference_id=%s outcome=%s",
            reference_id,
            outcome.outcome,
            extra={"payment_id": payment.id, "reference_id": str(reference_id)},
        )
        return outcome

    async def poll(self, transaction_id: str) -> Payment:
        """Cached status when terminal, otherwise ask the gateway and apply the answer."""
        async with self.session_factory() as session:
            payment = await PaymentRepository(session).get_by_transaction_id(transaction_id)
        if payment is None:
            raise PaymentNotFoundException(transaction_id)

        if payment.status != PaymentStatus.PENDING:
            return await self._repair(payment)
        if not payment.reference_id:
            return payment

        result = await self.gateway.poll_status(payment.reference_id)
        if not result.success:
            logger.warning(
                "Status poll failed payment_id=%s error=%s",
                payment.id,
                result.error,
                extra={"payment_id": payment.id, "reference_id": payment.reference_id},
            )
            return payment

        target = GATEWAY_TO_PAYMENT_STATUS.get(result.gateway_status)
        if target is None:
            return payment

        transition = await self.orchestrator.apply_terminal_transition(
            payment.id,
            target,
            reason=result.error if target == PaymentStatus.FAILED else None,
            financial_transaction_id=result.financial_transaction_id,
        )
        return transition.payment

    async def _repair(self, payment: Payment) -> Payment:
        if payment.status != PaymentStatus.SUCCEEDED:
            return payment
        return await self.orchestrator.settle(payment.id) or payment

    async def sweep_pending(
        self, older_than: timedelta = timedelta(minutes=10), limit: int = 100
    ) -> dict[str, int]:
        """Poll stale pending MoMo payments and re-settle succeeded ones missing their ledger."""
        stats = {"checked": 0, "succeeded": 0, "failed": 0, "pending": 0, "repaired": 0}
        cutoff = utcnow() - older_than

        async with self.session_factory() as session:
            repo = PaymentRepository(session)
            pending = await repo.list_pending_momo(cutoff, limit)
            unsettled = await repo.list_unsettled(limit)

        for payment in pending:
            stats["checked"] += 1
            resolved = await self.poll(payment.id)
            status = enum_value(resolved.status)
            stats[status if status in stats else "pending"] += 1

        for payment in unsettled:
            await self.orchestrator.settle(payment.id)
            stats["repaired"] += 1

        logger.info(
            "Pending sweep finished checked=%s succeeded=%s failed=%s repaired=%s",
            stats["checked"],
            stats["succeeded"],
            stats["failed"],
            stats["repaired"],
            extra=stats,
        )
        return stats
