"""Cart aggregate — line items held for a customer session.

A cart belongs either to an authenticated user or to an anonymous guest
token. Unit prices are not stored on lines; the cached ``total_items`` and
``subtotal`` are recomputed from current catalogue prices after every
mutation and only serve display reads. Checkout re-reads prices.
"""

import json
from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from marketplace.cart.events import (
    CartCleared,
    CartLineAdded,
    CartLineQuantityUpdated,
    CartLineRemoved,
    CartsMerged,
)
from marketplace.domain import marketplace
from marketplace.utils.money import as_float, quantize, to_decimal


def variant_key(variant) -> str:
    """Canonical string for a variant selection map, so equal selections compare equal."""
    if variant is None or variant == "":
        return "{}"
    if isinstance(variant, str):
        variant = json.loads(variant)
    return json.dumps(variant, sort_keys=True, separators=(",", ":"))


@marketplace.entity(part_of="Cart")
class CartLine:
    product_id = Identifier(required=True)
    variant = Text(default="{}")
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()

    @property
    def variant_options(self) -> dict:
        return json.loads(self.variant or "{}")


@marketplace.aggregate
class Cart:
    user_id = Identifier()
    guest_token = String(max_length=255)
    lines = HasMany(CartLine)
    total_items = Integer(default=0)
    subtotal = Float(default=0.0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def cart_has_exactly_one_owner(self):
        if bool(self.user_id) == bool(self.guest_token):
            raise ValidationError({"cart": ["A cart belongs to either a user or a guest token"]})

    @invariant.post
    def one_line_per_product_variant(self):
        keys = [(str(line.product_id), line.variant) for line in self.lines]
        if len(keys) != len(set(keys)):
            raise ValidationError({"lines": ["Duplicate product/variant line in cart"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id=None, guest_token=None):
        now = datetime.now(UTC)
        return cls(
            user_id=user_id,
            guest_token=guest_token,
            total_items=0,
            subtotal=0.0,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------
    def find_line(self, product_id, variant=None):
        key = variant_key(variant)
        return next(
            (line for line in self.lines if str(line.product_id) == str(product_id) and line.variant == key),
            None,
        )

    def get_line(self, line_id):
        line = next((line for line in self.lines if str(line.id) == str(line_id)), None)
        if line is None:
            raise ValidationError({"line_id": ["Line not found in cart"]})
        return line

    def add_line(self, product_id, quantity, variant=None):
        """Add ``quantity`` of a product, merging into an existing line for the same variant."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        now = datetime.now(UTC)
        existing = self.find_line(product_id, variant)
        if existing:
            existing.quantity += quantity
            line = existing
        else:
            line = CartLine(product_id=product_id, variant=variant_key(variant), quantity=quantity, added_at=now)
            self.add_lines(line)

        self.updated_at = now
        self.raise_(
            CartLineAdded(
                cart_id=str(self.id),
                line_id=str(line.id),
                product_id=str(product_id),
                variant=line.variant,
                quantity=quantity,
            )
        )
        return line

    def update_line_quantity(self, line_id, quantity):
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        line = self.get_line(line_id)
        previous = line.quantity
        line.quantity = quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartLineQuantityUpdated(
                cart_id=str(self.id),
                line_id=str(line_id),
                previous_quantity=previous,
                new_quantity=quantity,
            )
        )

    def remove_line(self, line_id):
        line = self.get_line(line_id)
        self.remove_lines(line)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartLineRemoved(cart_id=str(self.id), line_id=str(line_id)))

    def clear(self):
        removed = len(self.lines)
        for line in list(self.lines):
            self.remove_lines(line)
        self.total_items = 0
        self.subtotal = 0.0
        self.updated_at = datetime.now(UTC)
        self.raise_(CartCleared(cart_id=str(self.id), lines_removed=removed))

    # -------------------------------------------------------------------
    # Guest merge
    # -------------------------------------------------------------------
    def absorb(self, guest_cart):
        """Fold a guest cart's lines into this cart.

        Overlapping (product, variant) lines have their quantities summed;
        the rest are copied over as new lines.
        """
        now = datetime.now(UTC)
        merged = 0
        for guest_line in guest_cart.lines:
            existing = self.find_line(guest_line.product_id, guest_line.variant)
            if existing:
                existing.quantity += guest_line.quantity
            else:
                self.add_lines(
                    CartLine(
                        product_id=guest_line.product_id,
                        variant=guest_line.variant,
                        quantity=guest_line.quantity,
                        added_at=guest_line.added_at or now,
                    )
                )
            merged += 1

        self.updated_at = now
        self.raise_(CartsMerged(cart_id=str(self.id), guest_token=guest_cart.guest_token, lines_merged=merged))
        return merged

    # -------------------------------------------------------------------
    # Cached totals
    # -------------------------------------------------------------------
    def recalculate(self, prices: dict):
        """Refresh cached totals from ``{product_id: unit_price}``.

        Lines whose product is no longer priced contribute quantity but no
        amount.
        """
        self.total_items = sum(line.quantity for line in self.lines)
        subtotal = sum(
            (to_decimal(prices.get(str(line.product_id))) * line.quantity for line in self.lines),
            start=to_decimal(0),
        )
        self.subtotal = as_float(quantize(subtotal))
