"""Order aggregate — one shop's share of a customer checkout.

A single checkout produces one Order per shop in the cart, all sharing a
``checkout_id``. Items are frozen snapshots of the catalogue at checkout time
and addresses are copied in, so later catalogue or address-book edits never
change a historical order.

State Machine:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    PENDING | CONFIRMED (customer, vendor) → CANCELLED | REFUNDED
    any non-terminal (admin) → CANCELLED | REFUNDED
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from marketplace.domain import marketplace
from marketplace.errors import OrderNotCancellable
from marketplace.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderPaymentFailed,
    OrderPlaced,
    OrderStatusChanged,
)
from marketplace.order.numbering import generate_order_number
from marketplace.utils.money import quantize, to_decimal


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class FulfillmentStatus(Enum):
    UNFULFILLED = "unfulfilled"
    PARTIAL = "partial"
    FULFILLED = "fulfilled"


class Actor(Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"
    SYSTEM = "system"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

_TERMINAL_STATES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Statuses a customer or vendor may still cancel from; admins may cancel any non-terminal order
_SELF_SERVICE_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class Address:
    """Address snapshot copied onto the order at checkout."""

    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    email = String(max_length=255)
    phone = String(max_length=50)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    zip = String(required=True, max_length=20)
    country = String(required=True, max_length=100)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderItem:
    """Frozen snapshot of a purchased line.

    ``stock_restored`` is the only field that changes after placement: it
    flips once when the reserved units go back to stock.
    """

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    sku = String(max_length=100)
    image = String(max_length=500)
    variant = Text(default="{}")
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    total_price = Float(required=True, min_value=0.0)
    stock_tracked = Boolean(default=False)
    stock_restored = Boolean(default=False)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=50)
    checkout_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    user_id = Identifier()
    guest_email = String(max_length=255)
    customer_name = String(max_length=255)

    items = HasMany(OrderItem)

    subtotal = Float(default=0.0, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    tax_amount = Float(default=0.0, min_value=0.0)
    shipping_amount = Float(default=0.0, min_value=0.0)
    total_amount = Float(default=0.0, min_value=0.0)
    currency = String(max_length=3, default="usd")

    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    paid_authorization_id = String(max_length=255)
    fulfillment_status = String(choices=FulfillmentStatus, default=FulfillmentStatus.UNFULFILLED.value)

    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    shipping_method_id = Identifier()
    coupon_code = String(max_length=50)

    customer_notes = Text()
    cancellation_reason = String(max_length=500)
    internal_notes = Text()

    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_must_balance(self):
        items_total = sum((to_decimal(item.total_price) for item in self.items), start=to_decimal(0))
        expected = quantize(
            items_total
            - to_decimal(self.discount_amount)
            + to_decimal(self.tax_amount)
            + to_decimal(self.shipping_amount)
        )
        if expected != quantize(self.total_amount):
            raise ValidationError(
                {"total_amount": [f"Total {self.total_amount} does not balance with line items ({expected})"]}
            )

    @invariant.post
    def guest_orders_need_an_email(self):
        if not self.user_id and not self.guest_email:
            raise ValidationError({"guest_email": ["Guest orders require an email"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        checkout_id,
        shop_id,
        items,
        pricing,
        shipping_address,
        billing_address=None,
        user_id=None,
        guest_email=None,
        customer_name=None,
        shipping_method_id=None,
        coupon_code=None,
        customer_notes=None,
        currency="usd",
    ):
        """Create a pending order from a priced shop group.

        Args:
            items: List of dicts with product_id, product_name, sku, image,
                   variant, unit_price, quantity, total_price, stock_tracked.
            pricing: Dict with subtotal, discount_amount, tax_amount,
                     shipping_amount, total_amount.
            shipping_address: Dict of Address fields.
        """
        now = datetime.now(UTC)
        shipping = Address(**shipping_address)
        billing = Address(**billing_address) if billing_address else shipping

        order = cls(
            order_number=generate_order_number(),
            checkout_id=checkout_id,
            shop_id=shop_id,
            user_id=user_id,
            guest_email=guest_email,
            customer_name=customer_name or shipping.full_name,
            items=[OrderItem(**item) for item in items],
            subtotal=pricing["subtotal"],
            discount_amount=pricing.get("discount_amount", 0.0),
            tax_amount=pricing.get("tax_amount", 0.0),
            shipping_amount=pricing.get("shipping_amount", 0.0),
            total_amount=pricing["total_amount"],
            currency=currency,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            fulfillment_status=FulfillmentStatus.UNFULFILLED.value,
            shipping_address=shipping,
            billing_address=billing,
            shipping_method_id=shipping_method_id,
            coupon_code=coupon_code,
            customer_notes=customer_notes,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                checkout_id=str(checkout_id),
                shop_id=str(shop_id),
                total_amount=order.total_amount,
                item_count=order.item_count,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in _TERMINAL_STATES

    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _append_note(self, note):
        self.internal_notes = f"{self.internal_notes}\n{note}" if self.internal_notes else note

    # -------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------
    def confirm_payment(self, authorization_id=None):
        """Move a pending order to confirmed/paid.

        Returns False without touching anything when the order has already
        left PENDING, which makes repeated settlement signals harmless.
        """
        if OrderStatus(self.status) != OrderStatus.PENDING:
            return False

        self._assert_can_transition(OrderStatus.CONFIRMED)
        now = datetime.now(UTC)
        self.status = OrderStatus.CONFIRMED.value
        self.payment_status = PaymentStatus.PAID.value
        self.paid_authorization_id = authorization_id
        self.updated_at = now

        self.raise_(
            OrderConfirmed(
                order_id=str(self.id),
                order_number=self.order_number,
                checkout_id=str(self.checkout_id),
                shop_id=str(self.shop_id),
                user_id=str(self.user_id) if self.user_id else None,
                guest_email=self.guest_email,
                customer_name=self.customer_name,
                total_amount=self.total_amount,
                item_count=self.item_count,
                currency=self.currency,
                authorization_id=authorization_id,
                confirmed_at=now,
            )
        )
        return True

    def record_payment_failure(self, authorization_id=None, reason=None):
        """Flag the payment as failed; the order stays pending so payment can be retried."""
        if OrderStatus(self.status) != OrderStatus.PENDING or self.is_paid:
            return False

        self.payment_status = PaymentStatus.FAILED.value
        self.updated_at = datetime.now(UTC)
        self.raise_(OrderPaymentFailed(order_id=str(self.id), authorization_id=authorization_id, reason=reason))
        return True

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def assert_cancellable_by(self, actor):
        current = OrderStatus(self.status)
        if Actor(actor) == Actor.ADMIN:
            allowed = current not in _TERMINAL_STATES
        else:
            allowed = current in _SELF_SERVICE_CANCELLABLE
        if not allowed:
            raise OrderNotCancellable(self.id, current.value)

    def cancel(self, actor, reason=None, refunded=False):
        """Mark the order terminal.

        ``refunded`` tells the order that captured money was returned, in
        which case it ends REFUNDED instead of CANCELLED.
        """
        self.assert_cancellable_by(actor)
        target = OrderStatus.REFUNDED if refunded else OrderStatus.CANCELLED
        self._assert_can_transition(target)

        now = datetime.now(UTC)
        self.status = target.value
        if refunded:
            self.payment_status = PaymentStatus.REFUNDED.value

        if Actor(actor) == Actor.ADMIN:
            self.internal_notes = f"[ADMIN] Cancelled: {reason or 'No reason provided'}"
        else:
            self.cancellation_reason = reason
            label = "Customer" if Actor(actor) == Actor.CUSTOMER else "Vendor"
            self._append_note(f"{label} cancelled: {reason or 'No reason provided'}")

        self.updated_at = now
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                order_number=self.order_number,
                shop_id=str(self.shop_id),
                actor=Actor(actor).value,
                reason=reason,
                refunded=refunded,
                total_amount=self.total_amount,
                cancelled_at=now,
            )
        )

    def items_awaiting_restock(self):
        return [item for item in self.items if item.stock_tracked and not item.stock_restored]

    def mark_stock_restored(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found"]})
        if item.stock_restored:
            raise ValidationError({"item_id": [f"Stock already restored for item {item_id}"]})
        item.stock_restored = True

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def advance(self, new_status, changed_by, note=None):
        """Move along the fulfillment path (processing, shipped, delivered)."""
        target = OrderStatus(new_status)
        if target in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise ValidationError({"status": ["Use cancellation to end an order"]})
        self._assert_can_transition(target)

        previous = self.status
        self.status = target.value
        if target == OrderStatus.SHIPPED:
            self.fulfillment_status = FulfillmentStatus.PARTIAL.value
        elif target == OrderStatus.DELIVERED:
            self.fulfillment_status = FulfillmentStatus.FULFILLED.value

        now = datetime.now(UTC)
        if note:
            self._append_note(f"[{Actor(changed_by).value.upper()}] {now.isoformat()}: {note}")
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                shop_id=str(self.shop_id),
                previous_status=previous,
                new_status=target.value,
                changed_by=Actor(changed_by).value,
            )
        )
