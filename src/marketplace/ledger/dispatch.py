"""Order event reactions — vendor inbox entries and order emails.

Every reaction is best-effort. A failure is logged and never travels back
into the settlement or cancellation that raised the event; the ledger makes
a later replay of the same event safe.
"""

import structlog
from protean.utils.mixins import handle

from marketplace.domain import marketplace
from marketplace.ledger.mailer import ConfirmationMailer
from marketplace.ledger.notification import Notification
from marketplace.ledger.notifier import VendorNotifier
from marketplace.order.events import OrderCancelled, OrderConfirmed

logger = structlog.get_logger(__name__)


@marketplace.event_handler(part_of=Notification, stream_category="marketplace::order")
class OrderNotificationsHandler:
    """Creates vendor notifications when orders are confirmed or cancelled."""

    @handle(OrderConfirmed)
    def on_order_confirmed(self, event: OrderConfirmed) -> None:
        try:
            VendorNotifier().new_order(
                shop_id=event.shop_id,
                order_id=event.order_id,
                order_number=event.order_number,
                customer_name=event.customer_name or "A customer",
                item_count=event.item_count,
                total_amount=event.total_amount,
            )
        except Exception as e:
            logger.error("Vendor new-order notification failed", order_id=str(event.order_id), error=str(e))

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        try:
            VendorNotifier().order_status_update(
                shop_id=event.shop_id,
                order_id=event.order_id,
                order_number=event.order_number,
                status="refunded" if event.refunded else "cancelled",
                actor=event.actor,
                reason=event.reason,
                refunded=event.refunded,
            )
        except Exception as e:
            logger.error("Vendor cancellation notification failed", order_id=str(event.order_id), error=str(e))


@marketplace.event_handler(part_of=Notification, stream_category="marketplace::order")
class OrderConfirmationEmailHandler:
    """Sends the customer confirmation email once an order is confirmed."""

    @handle(OrderConfirmed)
    def on_order_confirmed(self, event: OrderConfirmed) -> None:
        try:
            result = ConfirmationMailer().send_order_confirmation(event.order_id)
        except Exception as e:
            logger.error("Order confirmation email failed", order_id=str(event.order_id), error=str(e))
            return

        logger.info("Order confirmation email processed", order_id=str(event.order_id), status=result.status)


@marketplace.event_handler(part_of=Notification, stream_category="marketplace::order")
class VendorNewOrderEmailHandler:
    """Emails the vendor about a newly paid order, unless the shop opted out."""

    @handle(OrderConfirmed)
    def on_order_confirmed(self, event: OrderConfirmed) -> None:
        try:
            result = ConfirmationMailer().send_vendor_new_order(event.order_id)
        except Exception as e:
            logger.error("Vendor new-order email failed", order_id=str(event.order_id), error=str(e))
            return

        logger.info("Vendor new-order email processed", order_id=str(event.order_id), status=result.status)
