"""Order Splitter — partition a cart into one priced draft per shop.

Splitting is a pure computation over the cart lines, the catalogue records
read for them, the chosen shipping method and the coupon selections. It
touches no state: every rejection (shipping mismatch, duplicate or invalid
coupon, unavailable product) happens before anything is reserved or
written.

Pricing per shop group, all rounded half-up to the cent:

    subtotal = sum(unit_price * quantity)
    discount = coupon discount, capped at subtotal
    tax      = tax_rate * (subtotal - discount)
    shipping = method price for the shop owning the method, 0 for the others
    total    = subtotal - discount + tax + shipping
"""

from dataclasses import dataclass, field
from decimal import Decimal

from protean.exceptions import ValidationError

from marketplace import settings
from marketplace.coupon.validator import CouponItem, CouponValidation, CouponValidator
from marketplace.errors import CouponRejected, DuplicateShopCoupon, EmptyCart, ShippingMethodMismatch
from marketplace.utils.money import as_float, quantize, to_decimal

OWNER_ONLY = "owner_only"
PER_SHOP = "per_shop"


@dataclass(frozen=True)
class CouponSelection:
    shop_id: str
    code: str


@dataclass
class DraftItem:
    product_id: str
    product_name: str
    sku: str | None
    image: str | None
    variant: str
    category_id: str | None
    unit_price: Decimal
    quantity: int
    stock_tracked: bool

    @property
    def total_price(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)

    def as_order_item(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "image": self.image,
            "variant": self.variant,
            "unit_price": as_float(self.unit_price),
            "quantity": self.quantity,
            "total_price": as_float(self.total_price),
            "stock_tracked": self.stock_tracked,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DraftItem":
        return cls(
            product_id=data["product_id"],
            product_name=data["product_name"],
            sku=data.get("sku"),
            image=data.get("image"),
            variant=data.get("variant", "{}"),
            category_id=data.get("category_id"),
            unit_price=to_decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
            stock_tracked=bool(data.get("stock_tracked")),
        )


@dataclass
class ShopDraft:
    shop_id: str
    items: list[DraftItem] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    shipping: Decimal = Decimal("0.00")
    coupon_code: str | None = None
    coupon_id: str | None = None

    @property
    def total(self) -> Decimal:
        return quantize(self.subtotal - self.discount + self.tax + self.shipping)

    def pricing(self) -> dict:
        return {
            "subtotal": as_float(self.subtotal),
            "discount_amount": as_float(self.discount),
            "tax_amount": as_float(self.tax),
            "shipping_amount": as_float(self.shipping),
            "total_amount": as_float(self.total),
        }

    def to_dict(self) -> dict:
        return {
            "shop_id": self.shop_id,
            "items": [{**item.as_order_item(), "category_id": item.category_id} for item in self.items],
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "tax": str(self.tax),
            "shipping": str(self.shipping),
            "coupon_code": self.coupon_code,
            "coupon_id": self.coupon_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShopDraft":
        return cls(
            shop_id=data["shop_id"],
            items=[DraftItem.from_dict(item) for item in data["items"]],
            subtotal=to_decimal(data["subtotal"]),
            discount=to_decimal(data["discount"]),
            tax=to_decimal(data["tax"]),
            shipping=to_decimal(data["shipping"]),
            coupon_code=data.get("coupon_code"),
            coupon_id=data.get("coupon_id"),
        )


class OrderSplitter:
    def __init__(self, coupon_validator: CouponValidator, tax_rate=None, shipping_policy=None):
        self.coupon_validator = coupon_validator
        self.tax_rate = to_decimal(tax_rate) if tax_rate is not None else settings.tax_rate()
        self.shipping_policy = shipping_policy or settings.shipping_policy()

    def split(self, lines, products, shipping_method, coupons=None, user_id=None) -> list[ShopDraft]:
        """Group ``lines`` by owning shop and price each group.

        Args:
            lines: Cart lines (product_id, variant, quantity).
            products: ``{product_id: Product}`` read at checkout time.
            shipping_method: The selected ShippingMethod, or None.
            coupons: List of CouponSelection, at most one per shop.
            user_id: The authenticated customer, for per-user coupon limits.
        """
        if not lines:
            raise EmptyCart()

        groups = self._group(lines, products)
        self._check_shipping(shipping_method, groups)
        selections = self._coupons_by_shop(coupons or [], groups)

        for shop_id, draft in groups.items():
            draft.subtotal = quantize(sum((item.unit_price * item.quantity for item in draft.items), start=Decimal("0")))

            validation = None
            selection = selections.get(shop_id)
            if selection is not None:
                validation = self._validate_coupon(selection, draft, user_id)
                draft.coupon_code = validation.code
                draft.coupon_id = validation.coupon_id
                draft.discount = min(quantize(validation.discount_amount), draft.subtotal)

            draft.tax = quantize((draft.subtotal - draft.discount) * self.tax_rate)
            draft.shipping = self._shipping_for(shop_id, shipping_method, validation)

        return list(groups.values())

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    def _group(self, lines, products) -> dict[str, ShopDraft]:
        groups: dict[str, ShopDraft] = {}
        for line in lines:
            product = products.get(str(line.product_id))
            if product is None or not product.is_active:
                raise ValidationError({"product_id": [f"Product {line.product_id} is no longer available"]})

            shop_id = str(product.shop_id)
            draft = groups.setdefault(shop_id, ShopDraft(shop_id=shop_id))
            draft.items.append(
                DraftItem(
                    product_id=str(product.id),
                    product_name=product.name,
                    sku=product.sku,
                    image=product.image,
                    variant=line.variant or "{}",
                    category_id=str(product.category_id) if product.category_id else None,
                    unit_price=quantize(product.price),
                    quantity=line.quantity,
                    stock_tracked=product.tracks_stock,
                )
            )
        return groups

    def _check_shipping(self, shipping_method, groups):
        if shipping_method is None or not shipping_method.is_active:
            raise ShippingMethodMismatch("Shipping method is not available")
        if str(shipping_method.shop_id) not in groups:
            raise ShippingMethodMismatch()

    def _coupons_by_shop(self, coupons, groups) -> dict[str, CouponSelection]:
        selections: dict[str, CouponSelection] = {}
        for selection in coupons:
            shop_id = str(selection.shop_id)
            if shop_id in selections:
                raise DuplicateShopCoupon(shop_id)
            if shop_id not in groups:
                raise CouponRejected(selection.code, "shop_not_in_cart", "Coupon shop has no items in this cart.")
            selections[shop_id] = selection
        return selections

    def _validate_coupon(self, selection, draft, user_id) -> CouponValidation:
        items = [
            CouponItem(
                product_id=item.product_id,
                category_id=item.category_id,
                unit_price=item.unit_price,
                quantity=item.quantity,
            )
            for item in draft.items
        ]
        validation = self.coupon_validator.validate(
            selection.code,
            draft.shop_id,
            draft.subtotal,
            items,
            user_id=user_id,
        )
        if not validation.valid:
            raise CouponRejected(selection.code, validation.invalid_reason, validation.message)
        return validation

    def _shipping_for(self, shop_id, shipping_method, validation) -> Decimal:
        if validation is not None and validation.free_shipping:
            return Decimal("0.00")
        if self.shipping_policy == PER_SHOP or str(shipping_method.shop_id) == shop_id:
            return quantize(shipping_method.price)
        return Decimal("0.00")
