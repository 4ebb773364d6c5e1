"""Processor webhook intake.

The payload is verified by the gateway before anything is read from it.
Unknown event types are acknowledged and ignored so the processor does not
keep retrying them.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.catalogue.registration import UpdateConnectedAccount
from marketplace.errors import PaymentNotSucceeded
from marketplace.payment.authorization import VoidAuthorization
from marketplace.payment.gateway import get_gateway
from marketplace.settlement.reconciler import SettlementReconciler

logger = structlog.get_logger(__name__)


class WebhookProcessor:
    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    def process(self, payload, signature) -> dict:
        """Verify and apply one webhook delivery.

        Returns:
            Dict with the event ``type`` and whether it was ``handled``.
        """
        event = self.gateway.parse_webhook(payload, signature)
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or {}

        handler = {
            "payment_intent.succeeded": self._payment_succeeded,
            "payment_intent.payment_failed": self._payment_failed,
            "payment_intent.canceled": self._payment_canceled,
            "account.updated": self._account_updated,
        }.get(event_type)

        if handler is None:
            logger.info("Ignoring webhook event", event_type=event_type)
            return {"type": event_type, "handled": False}

        handler(data)
        return {"type": event_type, "handled": True}

    def _payment_succeeded(self, intent):
        reconciler = SettlementReconciler(gateway=self.gateway)
        try:
            reconciler.reconcile(intent["id"])
        except PaymentNotSucceeded as exc:
            # The event and the live status disagree; the live status wins
            logger.warning("Webhook success not confirmed by processor", authorization_id=intent["id"], status=exc.status)

    def _payment_failed(self, intent):
        error = intent.get("last_payment_error") or {}
        SettlementReconciler(gateway=self.gateway).record_failure(
            intent["id"],
            reason=error.get("message") or "Payment failed",
        )

    def _payment_canceled(self, intent):
        current_domain.process(
            VoidAuthorization(authorization_id=intent["id"], reason=intent.get("cancellation_reason") or "Canceled"),
            asynchronous=False,
        )

    def _account_updated(self, account):
        current_domain.process(
            UpdateConnectedAccount(
                stripe_account_id=account["id"],
                charges_enabled=bool(account.get("charges_enabled")),
                payouts_enabled=bool(account.get("payouts_enabled")),
                details_submitted=bool(account.get("details_submitted")),
            ),
            asynchronous=False,
        )
