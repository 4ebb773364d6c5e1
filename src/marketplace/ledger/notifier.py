"""Vendor inbox writer.

Every notification goes through ``record_if_absent`` so a redelivered event
or a repeated settlement leaves a single entry per subject.
"""

import structlog
from protean.utils.globals import current_domain

from marketplace.ledger.notification import Notification, NotificationType, notification_key
from marketplace.ledger.templates import get_template

logger = structlog.get_logger(__name__)


class VendorNotifier:
    def _record(self, shop_id, notification_type, subject_id, context, **fields):
        rendered = get_template(notification_type).render(context)
        notification, created = current_domain.repository_for(Notification).record_if_absent(
            notification_key(shop_id, notification_type, subject_id),
            shop_id=str(shop_id),
            notification_type=notification_type,
            title=rendered["title"],
            message=rendered["message"],
            link=rendered["link"],
            **fields,
        )
        if created:
            logger.info(
                "Vendor notification created",
                shop_id=str(shop_id),
                notification_type=notification_type,
                subject_id=str(subject_id),
            )
        return notification, created

    def new_order(self, shop_id, order_id, order_number, customer_name, item_count, total_amount):
        return self._record(
            shop_id,
            NotificationType.NEW_ORDER.value,
            order_id,
            {
                "order_id": str(order_id),
                "customer_name": customer_name,
                "item_count": item_count,
                "total_amount": total_amount,
            },
            order_id=str(order_id),
            order_number=order_number,
            amount=total_amount,
        )

    def order_status_update(self, shop_id, order_id, order_number, status, actor, reason=None, refunded=False):
        return self._record(
            shop_id,
            NotificationType.ORDER_STATUS_UPDATE.value,
            f"{order_id}:{status}",
            {
                "order_id": str(order_id),
                "order_number": order_number,
                "actor": actor,
                "reason": reason,
                "refunded": refunded,
            },
            order_id=str(order_id),
            order_number=order_number,
        )

    def low_stock(self, product):
        # One alert per product per stock level
        return self._record(
            product.shop_id,
            NotificationType.LOW_STOCK.value,
            f"{product.id}:{product.stock}",
            {
                "product_id": str(product.id),
                "product_name": product.name,
                "stock": product.stock,
            },
            product_id=str(product.id),
        )
