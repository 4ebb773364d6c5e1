"""Cart line management — commands and handler.

Adding or resizing a line runs a soft availability check against the
catalogue: the product must be active and the requested total must fit the
stock counter as read now. The authoritative check is the reservation at
checkout.
"""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.catalogue.product import Product
from marketplace.domain import marketplace
from marketplace.errors import OutOfStock


@marketplace.command(part_of="Cart")
class AddCartLine:
    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    variant = Text()  # JSON object of option name -> value


@marketplace.command(part_of="Cart")
class UpdateCartLine:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="Cart")
class RemoveCartLine:
    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)


@marketplace.command(part_of="Cart")
class ClearCart:
    cart_id = Identifier(required=True)


def check_availability(product: Product, quantity: int) -> None:
    if not product.is_active:
        raise ValidationError({"product_id": [f"Product {product.id} is not available"]})
    if product.tracks_stock and quantity > product.stock:
        raise OutOfStock(product.id, requested=quantity, available=product.stock)


def refresh_totals(cart: Cart) -> None:
    products = current_domain.repository_for(Product).find_by_ids([line.product_id for line in cart.lines])
    cart.recalculate({pid: product.price for pid, product in products.items()})


@marketplace.command_handler(part_of=Cart)
class ManageCartLinesHandler:
    @handle(AddCartLine)
    def add_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        product = current_domain.repository_for(Product).get(command.product_id)
        variant = json.loads(command.variant) if command.variant else None

        existing = cart.find_line(command.product_id, variant)
        already_in_cart = existing.quantity if existing else 0
        check_availability(product, already_in_cart + command.quantity)

        line = cart.add_line(command.product_id, command.quantity, variant)
        refresh_totals(cart)
        repo.add(cart)
        return str(line.id)

    @handle(UpdateCartLine)
    def update_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        line = cart.get_line(command.line_id)
        product = current_domain.repository_for(Product).get(line.product_id)
        check_availability(product, command.quantity)

        cart.update_line_quantity(command.line_id, command.quantity)
        refresh_totals(cart)
        repo.add(cart)

    @handle(RemoveCartLine)
    def remove_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.remove_line(command.line_id)
        refresh_totals(cart)
        repo.add(cart)

    @handle(ClearCart)
    def clear(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.clear()
        repo.add(cart)
