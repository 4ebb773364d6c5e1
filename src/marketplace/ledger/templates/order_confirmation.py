"""Order confirmation email — sent to the customer once payment settles."""

from urllib.parse import quote

from marketplace import settings


class OrderConfirmationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        lines = "\n".join(
            f"  {item['quantity']} x {item['product_name']}  ${item['unit_price']:.2f}"
            for item in context.get("items", [])
        )
        address = context.get("shipping_address") or {}
        tracking_url = f"{settings.base_url()}/track-order?orderId={quote(str(context.get('order_id', '')))}"
        body = (
            f"Hi {context.get('customer_name') or 'Customer'},\n\n"
            f"Thanks for shopping with {context.get('shop_name') or 'us'}! "
            f"Order {order_number} is confirmed.\n\n"
            f"{lines}\n\n"
            f"Subtotal: ${context.get('subtotal', 0.0):.2f}\n"
            f"Discount: -${context.get('discount_amount', 0.0):.2f}\n"
            f"Tax: ${context.get('tax_amount', 0.0):.2f}\n"
            f"Shipping: ${context.get('shipping_amount', 0.0):.2f}\n"
            f"Total: ${context.get('total_amount', 0.0):.2f}\n\n"
            f"Shipping to: {address.get('street', '')}, {address.get('city', '')} "
            f"{address.get('zip', '')}, {address.get('country', '')}\n\n"
            f"Track your order: {tracking_url}\n"
        )
        return {
            "subject": f"Order Confirmed - {order_number}",
            "body": body,
            "html_body": None,
        }
