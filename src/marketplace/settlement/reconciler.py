"""Settlement Reconciler — confirm orders once the processor says the money is in.

Reconciliation trusts nothing but the processor: the authorization's live
status is read back from the gateway and anything other than ``succeeded``
aborts without touching an order. Money captured for an order that is cancelled, or
that another authorization already paid, is refunded straight away. Repeating a reconciliation is harmless:
orders already confirmed are reported as such and no new events are raised
for them, so notifications and emails are not sent twice.
"""

import json
from dataclasses import dataclass, field

import structlog
from protean.utils.globals import current_domain

from marketplace.errors import PaymentGatewayError, PaymentNotSucceeded
from marketplace.payment.gateway import get_gateway
from marketplace.payment.payment import ChargeType, Payment
from marketplace.settlement.confirmation import ConfirmSettlement, RecordPaymentFailure, RecordPaymentRefund
from marketplace.utils.money import to_minor_units

logger = structlog.get_logger(__name__)

SUCCEEDED = "succeeded"


@dataclass
class ReconciliationResult:
    authorization_id: str
    confirmed: list[str] = field(default_factory=list)
    already_confirmed: list[str] = field(default_factory=list)
    refunded: list[str] = field(default_factory=list)
    refund_failed: list[str] = field(default_factory=list)

    @property
    def order_ids(self) -> list[str]:
        return self.confirmed + self.already_confirmed


class SettlementReconciler:
    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    def reconcile(self, authorization_id, order_ids=None) -> ReconciliationResult:
        """Confirm the orders paid by ``authorization_id``.

        Args:
            authorization_id: The processor's payment intent id.
            order_ids: Restrict confirmation to these orders. Orders not
                linked to the authorization are ignored.

        Raises:
            PaymentNotSucceeded: The processor does not report success.
        """
        status = self.gateway.get_authorization(authorization_id)
        if status.status != SUCCEEDED:
            logger.warning(
                "Reconciliation refused, payment not settled",
                authorization_id=authorization_id,
                status=status.status,
            )
            raise PaymentNotSucceeded(authorization_id, status.status)

        linked = self._linked_order_ids(authorization_id)
        if order_ids is not None:
            requested = [str(order_id) for order_id in order_ids]
            ignored = [order_id for order_id in requested if order_id not in linked]
            if ignored:
                logger.warning(
                    "Ignoring orders not paid by this authorization",
                    authorization_id=authorization_id,
                    order_ids=ignored,
                )
            linked = [order_id for order_id in requested if order_id in linked]

        if not linked:
            return ReconciliationResult(authorization_id=authorization_id)

        outcome = current_domain.process(
            ConfirmSettlement(
                authorization_id=authorization_id,
                order_ids=json.dumps(linked),
                transaction_id=status.latest_charge or authorization_id,
            ),
            asynchronous=False,
        )

        result = ReconciliationResult(
            authorization_id=authorization_id,
            confirmed=outcome["confirmed"],
            already_confirmed=outcome["already_confirmed"],
        )
        for payment_id in outcome["to_refund"]:
            self._refund(authorization_id, payment_id, result)

        logger.info(
            "Settlement reconciled",
            authorization_id=authorization_id,
            confirmed=len(result.confirmed),
            already_confirmed=len(result.already_confirmed),
            refunded=len(result.refunded),
        )
        return result

    def record_failure(self, authorization_id, reason=None) -> list[str]:
        """Mark the authorization's pending payments failed; orders stay pending."""
        return current_domain.process(
            RecordPaymentFailure(authorization_id=authorization_id, reason=reason),
            asynchronous=False,
        )

    def _refund(self, authorization_id, payment_id, result):
        payment = current_domain.repository_for(Payment).get(payment_id)
        try:
            refund = self.gateway.refund(
                authorization_id,
                amount_minor=to_minor_units(payment.amount),
                reverse_transfer=payment.charge_type == ChargeType.DESTINATION.value,
            )
        except PaymentGatewayError as exc:
            # Payment stays succeeded, so the next reconciliation retries
            logger.error(
                "Refund of unwanted capture failed",
                authorization_id=authorization_id,
                order_id=str(payment.order_id),
                error=str(exc),
            )
            result.refund_failed.append(str(payment.order_id))
            return

        current_domain.process(
            RecordPaymentRefund(payment_id=str(payment.id), refund_id=refund.refund_id),
            asynchronous=False,
        )
        result.refunded.append(str(payment.order_id))

    @staticmethod
    def _linked_order_ids(authorization_id) -> list[str]:
        payments = current_domain.repository_for(Payment).for_authorization(authorization_id)
        seen: list[str] = []
        for payment in payments:
            if str(payment.order_id) not in seen:
                seen.append(str(payment.order_id))
        return seen
