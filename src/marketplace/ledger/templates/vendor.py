"""Vendor inbox templates — title, message and link per notification type."""


class NewOrderTemplate:
    notification_type = "new_order"

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "title": "New Order Received!",
            "message": (
                f"{context.get('customer_name') or 'A customer'} placed an order for "
                f"{context.get('item_count', 0)} item(s) - ${context.get('total_amount', 0.0):.2f}"
            ),
            "link": f"/shop/orders/{context.get('order_id', '')}",
        }


class OrderStatusUpdateTemplate:
    notification_type = "order_status_update"

    @staticmethod
    def render(context: dict) -> dict:
        if context.get("refunded"):
            headline = f"Order {context.get('order_number')} was refunded"
        else:
            headline = f"Order {context.get('order_number')} was cancelled"
        reason = context.get("reason")
        return {
            "title": headline,
            "message": f"Cancelled by {context.get('actor', 'customer')}" + (f": {reason}" if reason else ""),
            "link": f"/shop/orders/{context.get('order_id', '')}",
        }


class LowStockTemplate:
    notification_type = "low_stock"

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "title": "Low stock",
            "message": f"{context.get('product_name')} has {context.get('stock')} unit(s) left",
            "link": f"/shop/products/{context.get('product_id', '')}",
        }
