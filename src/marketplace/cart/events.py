"""Domain events raised by the Cart aggregate."""

from protean.fields import Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Cart")
class CartLineAdded:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant = String(max_length=1000)
    quantity = Integer(required=True)


@marketplace.event(part_of="Cart")
class CartLineQuantityUpdated:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    previous_quantity = Integer()
    new_quantity = Integer(required=True)


@marketplace.event(part_of="Cart")
class CartLineRemoved:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)


@marketplace.event(part_of="Cart")
class CartCleared:
    cart_id = Identifier(required=True)
    lines_removed = Integer()


@marketplace.event(part_of="Cart")
class CartsMerged:
    cart_id = Identifier(required=True)
    guest_token = String(max_length=255)
    lines_merged = Integer()
