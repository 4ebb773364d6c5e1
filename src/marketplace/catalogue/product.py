"""Product — the catalogue record the checkout engine reads at checkout time.

The catalogue is owned elsewhere; the engine only needs the current price, the
owning shop, the snapshot fields copied onto order items, and the stock
counter. Once registered, stock only moves through ``reserve`` and ``release``,
which the Inventory Guard drives.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.errors import OutOfStock


class ProductStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


@marketplace.aggregate
class Product:
    shop_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    sku = String(max_length=100)
    image = String(max_length=500)
    price = Float(required=True, min_value=0.0)
    category_id = Identifier()
    status = String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)
    track_inventory = Boolean(default=True)
    stock = Integer(min_value=0)  # None means stock is not tracked
    low_stock_threshold = Integer(default=5, min_value=0)
    created_at = DateTime()

    @classmethod
    def register(
        cls,
        shop_id,
        name,
        price,
        sku=None,
        image=None,
        category_id=None,
        stock=None,
        track_inventory=True,
        low_stock_threshold=5,
        status=ProductStatus.ACTIVE.value,
    ):
        return cls(
            shop_id=shop_id,
            name=name,
            price=price,
            sku=sku,
            image=image,
            category_id=category_id,
            stock=stock,
            track_inventory=track_inventory,
            low_stock_threshold=low_stock_threshold,
            status=status,
            created_at=datetime.now(UTC),
        )

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    @property
    def tracks_stock(self) -> bool:
        """Untracked products bypass reservation and release entirely."""
        return bool(self.track_inventory) and self.stock is not None

    def reserve(self, quantity: int) -> None:
        """Take ``quantity`` units off the counter or raise ``OutOfStock``."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if self.stock < quantity:
            raise OutOfStock(self.id, requested=quantity, available=self.stock)
        self.stock -= quantity

    def release(self, quantity: int) -> None:
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        self.stock += quantity
