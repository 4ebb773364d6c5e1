"""Cancellation/Refund Compensator — undo a placed order.

An unpaid order first has its open authorization voided at the processor, so
the customer can no longer pay for it. Should the processor report the money
already taken, the authorization is reconciled and the order is handled as
paid. A paid order is refunded at the processor first. Only when the refund is
accepted does the local state change: in one unit of work the order turns
cancelled (or refunded), every tracked item's stock goes back exactly once
and the captured payment is marked refunded. A refused refund leaves the
order exactly as it was.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import PaymentAlreadySettled, PaymentGatewayError, RefundFailed
from marketplace.inventory.guard import InventoryGuard
from marketplace.order.order import Actor, Order
from marketplace.payment.authorizer import PaymentAuthorizer
from marketplace.payment.gateway import get_gateway
from marketplace.payment.payment import ChargeType, Payment
from marketplace.settlement.reconciler import SettlementReconciler
from marketplace.utils.money import to_minor_units

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    actor = String(required=True, choices=Actor)
    reason = String(max_length=500)
    refunded = Boolean(default=False)
    refund_id = String(max_length=255)


@marketplace.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)

        order.cancel(command.actor, reason=command.reason, refunded=command.refunded)

        guard = InventoryGuard()
        restored = 0
        for item in order.items_awaiting_restock():
            guard.release(item.product_id, item.quantity)
            order.mark_stock_restored(item.id)
            restored += 1

        if command.refunded:
            payment_repo = current_domain.repository_for(Payment)
            payment = payment_repo.captured_for_order(order.id, order.paid_authorization_id)
            if payment is not None:
                payment.mark_refunded(command.refund_id)
                payment_repo.add(payment)

        order_repo.add(order)

        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            actor=command.actor,
            status=order.status,
            items_restocked=restored,
        )
        return order.status


class OrderCompensator:
    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    def cancel(self, order_id, reason=None, actor=Actor.CUSTOMER.value) -> str:
        """Cancel an order on behalf of ``actor``, refunding it when paid.

        Returns:
            The order's final status, ``cancelled`` or ``refunded``.

        Raises:
            OrderNotCancellable: The actor may not cancel from the current status.
            RefundFailed: The processor refused the refund; nothing changed locally.
        """
        order = current_domain.repository_for(Order).get(order_id)
        order.assert_cancellable_by(actor)

        if not order.is_paid:
            self._void_authorizations(order)
            order = current_domain.repository_for(Order).get(order_id)
            order.assert_cancellable_by(actor)

        refund_id = None
        if order.is_paid:
            refund_id = self._refund(order)

        return current_domain.process(
            CancelOrder(
                order_id=str(order.id),
                actor=actor,
                reason=reason,
                refunded=refund_id is not None,
                refund_id=refund_id,
            ),
            asynchronous=False,
        )

    def _void_authorizations(self, order):
        authorizer = PaymentAuthorizer(gateway=self.gateway)
        for authorization_id in authorizer.open_authorizations([order]):
            try:
                authorizer.void(authorization_id, reason=f"Order {order.order_number} cancelled")
            except PaymentAlreadySettled as exc:
                if exc.status != "succeeded":
                    raise
                logger.info(
                    "Authorization settled before cancellation, reconciling first",
                    order_id=str(order.id),
                    authorization_id=authorization_id,
                )
                SettlementReconciler(gateway=self.gateway).reconcile(authorization_id)

    def _refund(self, order) -> str:
        payment = current_domain.repository_for(Payment).captured_for_order(order.id, order.paid_authorization_id)
        if payment is None:
            raise RefundFailed(f"No captured payment found for order {order.order_number}", retryable=False)

        try:
            result = self.gateway.refund(
                payment.authorization_id,
                amount_minor=to_minor_units(order.total_amount),
                reverse_transfer=payment.charge_type == ChargeType.DESTINATION.value,
            )
        except PaymentGatewayError as exc:
            logger.error(
                "Refund rejected by processor",
                order_id=str(order.id),
                authorization_id=payment.authorization_id,
                error=str(exc),
            )
            raise RefundFailed(str(exc), code=exc.code, retryable=exc.retryable) from exc

        logger.info(
            "Refund issued",
            order_id=str(order.id),
            refund_id=result.refund_id,
            amount_minor=result.amount,
        )
        return result.refund_id
