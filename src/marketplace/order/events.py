"""Domain events raised by the Order aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    checkout_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    total_amount = Float(required=True)
    item_count = Integer()
    placed_at = DateTime()


@marketplace.event(part_of="Order")
class OrderConfirmed:
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    checkout_id = Identifier()
    shop_id = Identifier(required=True)
    user_id = Identifier()
    guest_email = String(max_length=255)
    customer_name = String(max_length=255)
    total_amount = Float(required=True)
    item_count = Integer()
    currency = String(max_length=3)
    authorization_id = String(max_length=255)
    confirmed_at = DateTime()


@marketplace.event(part_of="Order")
class OrderPaymentFailed:
    order_id = Identifier(required=True)
    authorization_id = String(max_length=255)
    reason = String(max_length=500)


@marketplace.event(part_of="Order")
class OrderCancelled:
    order_id = Identifier(required=True)
    order_number = String(max_length=50)
    shop_id = Identifier(required=True)
    actor = String(max_length=20)
    reason = String(max_length=500)
    refunded = Boolean(default=False)
    total_amount = Float()
    cancelled_at = DateTime()


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    order_id = Identifier(required=True)
    order_number = String(max_length=50)
    shop_id = Identifier(required=True)
    previous_status = String(max_length=20)
    new_status = String(required=True, max_length=20)
    changed_by = String(max_length=20)
