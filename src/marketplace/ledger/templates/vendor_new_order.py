"""New order email — sent to the vendor when one of their orders is paid."""

from marketplace import settings


class VendorNewOrderTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        total = context.get("total_amount", 0.0)
        lines = "\n".join(
            f"  {item['quantity']} x {item['product_name']}  ${item['total_price']:.2f}"
            for item in context.get("items", [])
        )
        address = context.get("shipping_address") or {}
        dashboard_url = f"{settings.base_url()}/shop/{context.get('shop_slug') or ''}/orders/{context.get('order_id', '')}"
        body = (
            f"You have a new order for {context.get('shop_name') or 'Your Shop'}!\n\n"
            f"Order: {order_number}\n"
            f"Date: {context.get('order_date') or ''}\n"
            f"Customer: {context.get('customer_name') or 'Customer'} ({context.get('customer_email') or 'N/A'})\n\n"
            f"{lines}\n\n"
            f"Subtotal: ${context.get('subtotal', 0.0):.2f}\n"
            f"Tax: ${context.get('tax_amount', 0.0):.2f}\n"
            f"Shipping: ${context.get('shipping_amount', 0.0):.2f}\n"
            f"Total: ${total:.2f}\n\n"
            f"Ship to: {address.get('first_name', '')} {address.get('last_name', '')}, "
            f"{address.get('street', '')}, {address.get('city', '')} {address.get('zip', '')}, "
            f"{address.get('country', '')}\n\n"
            f"View the order: {dashboard_url}\n"
        )
        return {
            "subject": f"New Order {order_number} - ${total:.2f}",
            "body": body,
            "html_body": None,
        }
