"""Settlement commands — confirm or fail the orders behind an authorization."""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order, OrderStatus
from marketplace.payment.payment import Payment, PaymentState

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class ConfirmSettlement:
    authorization_id = String(required=True, max_length=255)
    order_ids = Text(required=True)  # JSON list
    transaction_id = String(max_length=255)


@marketplace.command(part_of="Order")
class RecordPaymentFailure:
    authorization_id = String(required=True, max_length=255)
    reason = String(max_length=500)


@marketplace.command(part_of="Order")
class RecordPaymentRefund:
    payment_id = Identifier(required=True)
    refund_id = String(required=True, max_length=255)


@marketplace.command_handler(part_of=Order)
class SettlementHandler:
    @handle(ConfirmSettlement)
    def confirm_settlement(self, command):
        """Confirm every still-pending order and capture its payment.

        Money captured for an order that is already cancelled, or that
        another authorization already paid, is recorded and handed back for
        refund. Such an order is never reported as confirmed.

        Returns:
            Dict with ``confirmed`` (ids moved to confirmed now),
            ``already_confirmed`` (ids this authorization paid earlier) and
            ``to_refund`` (payment ids whose capture must be returned).
        """
        order_ids = json.loads(command.order_ids)
        order_repo = current_domain.repository_for(Order)
        payment_repo = current_domain.repository_for(Payment)

        wanted = set(order_ids)
        payments = {
            str(payment.order_id): payment
            for payment in payment_repo.for_authorization(command.authorization_id)
            if str(payment.order_id) in wanted
        }

        confirmed, already_confirmed, refundable = [], [], []
        for order in order_repo.by_ids(order_ids):
            if order.confirm_payment(command.authorization_id):
                order_repo.add(order)
                confirmed.append(str(order.id))
            elif order.status in (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value) or (
                order.paid_authorization_id and order.paid_authorization_id != command.authorization_id
            ):
                refundable.append(str(order.id))
            else:
                already_confirmed.append(str(order.id))

        to_refund = []
        for order_id, payment in payments.items():
            if payment.mark_succeeded(command.transaction_id):
                payment_repo.add(payment)
            if order_id in refundable and payment.status == PaymentState.SUCCEEDED.value:
                to_refund.append(str(payment.id))

        if to_refund:
            logger.warning(
                "Captured payment for an order that cannot take it",
                authorization_id=command.authorization_id,
                order_ids=refundable,
            )
        return {"confirmed": confirmed, "already_confirmed": already_confirmed, "to_refund": to_refund}

    @handle(RecordPaymentRefund)
    def record_payment_refund(self, command):
        payment_repo = current_domain.repository_for(Payment)
        payment = payment_repo.get(command.payment_id)
        payment.mark_refunded(command.refund_id)
        payment_repo.add(payment)
        return str(payment.order_id)

    @handle(RecordPaymentFailure)
    def record_payment_failure(self, command):
        order_repo = current_domain.repository_for(Order)
        payment_repo = current_domain.repository_for(Payment)

        failed = []
        for payment in payment_repo.for_authorization(command.authorization_id):
            if payment.status != PaymentState.PENDING.value:
                continue
            payment.mark_failed(command.reason or "Payment failed")
            payment_repo.add(payment)

            order = order_repo.get(payment.order_id)
            if order.record_payment_failure(command.authorization_id, command.reason):
                order_repo.add(order)
            failed.append(str(payment.order_id))

        logger.info(
            "Payment failure recorded",
            authorization_id=command.authorization_id,
            order_count=len(failed),
        )
        return failed
