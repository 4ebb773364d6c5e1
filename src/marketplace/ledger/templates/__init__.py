"""Template registry — maps vendor notification types to template classes."""

from marketplace.ledger.templates.order_confirmation import OrderConfirmationTemplate
from marketplace.ledger.templates.vendor import LowStockTemplate, NewOrderTemplate, OrderStatusUpdateTemplate
from marketplace.ledger.templates.vendor_new_order import VendorNewOrderTemplate

TEMPLATE_REGISTRY: dict[str, type] = {
    NewOrderTemplate.notification_type: NewOrderTemplate,
    OrderStatusUpdateTemplate.notification_type: OrderStatusUpdateTemplate,
    LowStockTemplate.notification_type: LowStockTemplate,
}


def get_template(notification_type: str):
    template_cls = TEMPLATE_REGISTRY.get(notification_type)
    if template_cls is None:
        raise ValueError(f"No template registered for notification type: {notification_type}")
    return template_cls


__all__ = ["OrderConfirmationTemplate", "VendorNewOrderTemplate", "TEMPLATE_REGISTRY", "get_template"]
