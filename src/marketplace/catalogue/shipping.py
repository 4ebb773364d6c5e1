"""Shipping method — a priced delivery option scoped to exactly one shop."""

from protean.fields import Boolean, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.aggregate
class ShippingMethod:
    shop_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    estimated_days = String(max_length=50)
    is_active = Boolean(default=True)
