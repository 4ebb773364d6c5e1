"""Order placement — turn priced shop drafts into orders in one unit of work.

The handler reserves stock for every tracked item first. A reservation that
fails releases the ones already made and aborts before any order exists,
leaving the cart untouched. Once all reservations hold, one Order per draft
is created, coupon redemptions are recorded and the cart is emptied.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart
from marketplace.coupon.redemption import record_redemption
from marketplace.domain import marketplace
from marketplace.errors import EmptyCart
from marketplace.inventory.guard import InventoryGuard, StockRequest
from marketplace.order.order import Order
from marketplace.order.splitter import ShopDraft

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class PlaceOrders:
    checkout_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    drafts = Text(required=True)  # JSON list of ShopDraft.to_dict()
    shipping_method_id = Identifier(required=True)
    shipping_address = Text(required=True)  # JSON
    billing_address = Text()  # JSON
    guest_email = String(max_length=255)
    customer_name = String(max_length=255)
    customer_notes = Text()
    currency = String(max_length=3, default="usd")


@marketplace.command_handler(part_of=Order)
class PlaceOrdersHandler:
    @handle(PlaceOrders)
    def place_orders(self, command):
        """Reserve, create and clear atomically.

        Returns:
            Dict with ``order_ids`` and ``low_stock`` (product ids whose
            counter dropped to or below their threshold).
        """
        cart_repo = current_domain.repository_for(Cart)
        cart = cart_repo.get(command.cart_id)
        if not cart.lines:
            raise EmptyCart()

        drafts = [ShopDraft.from_dict(data) for data in json.loads(command.drafts)]
        guard = InventoryGuard()
        reservations = guard.reserve_all(
            [StockRequest(item.product_id, item.quantity) for draft in drafts for item in draft.items if item.stock_tracked]
        )

        try:
            orders = self._create_orders(command, cart, drafts)
            cart.clear()
            cart_repo.add(cart)
        except Exception:
            for reservation in reservations:
                if reservation.tracked:
                    guard.release(reservation.product_id, reservation.quantity)
            raise

        logger.info(
            "Orders placed",
            checkout_id=str(command.checkout_id),
            cart_id=str(cart.id),
            order_count=len(orders),
        )
        return {
            "order_ids": [str(order.id) for order in orders],
            "low_stock": sorted({r.product_id for r in reservations if r.is_low}),
        }

    def _create_orders(self, command, cart, drafts):
        shipping_address = json.loads(command.shipping_address)
        billing_address = json.loads(command.billing_address) if command.billing_address else None
        guest_email = None if cart.user_id else (command.guest_email or shipping_address.get("email"))

        order_repo = current_domain.repository_for(Order)
        orders = []
        for draft in drafts:
            order = Order.place(
                checkout_id=command.checkout_id,
                shop_id=draft.shop_id,
                items=[item.as_order_item() for item in draft.items],
                pricing=draft.pricing(),
                shipping_address=shipping_address,
                billing_address=billing_address,
                user_id=cart.user_id,
                guest_email=guest_email,
                customer_name=command.customer_name,
                shipping_method_id=command.shipping_method_id,
                coupon_code=draft.coupon_code,
                customer_notes=command.customer_notes,
                currency=command.currency,
            )
            order_repo.add(order)
            orders.append(order)

            if draft.coupon_id:
                record_redemption(
                    draft.coupon_id,
                    order_id=order.id,
                    user_id=cart.user_id,
                    discount_amount=order.discount_amount,
                )
        return orders
