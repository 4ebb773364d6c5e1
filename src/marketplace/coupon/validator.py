"""Coupon Validator — the call contract the order splitter depends on.

Validation is a pure read from the splitter's point of view: it reports
whether a code applies to one shop's items and how much it takes off, and
never writes. Redemption bookkeeping happens separately once orders exist.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from protean.utils.globals import current_domain

from marketplace.coupon.coupon import ApplicableTo, Coupon, CouponUsage, DiscountType
from marketplace.utils.money import quantize, to_decimal


@dataclass(frozen=True)
class CouponItem:
    product_id: str
    category_id: str | None
    unit_price: Decimal
    quantity: int

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.unit_price) * self.quantity


@dataclass(frozen=True)
class CouponValidation:
    valid: bool
    code: str
    discount_amount: Decimal = Decimal("0.00")
    discount_type: str | None = None
    coupon_id: str | None = None
    message: str = ""
    invalid_reason: str | None = None

    @property
    def free_shipping(self) -> bool:
        return self.valid and self.discount_type == DiscountType.FREE_SHIPPING.value


class CouponValidator(ABC):
    @abstractmethod
    def validate(
        self,
        code: str,
        shop_id: str,
        cart_amount: Decimal,
        items: list[CouponItem],
        user_id: str | None = None,
    ) -> CouponValidation:
        """Check ``code`` against one shop's items and compute its discount."""
        ...


def _rejected(code, reason, message, coupon=None) -> CouponValidation:
    return CouponValidation(
        valid=False,
        code=code,
        coupon_id=str(coupon.id) if coupon else None,
        message=message,
        invalid_reason=reason,
    )


class RepositoryCouponValidator(CouponValidator):
    """Default validator backed by the Coupon and CouponUsage repositories.

    Checks run in a fixed order and the first failing check wins:
    existence, active flag, start date, expiry, global usage limit,
    per-user limit, minimum order amount, product/category restriction.
    """

    def __init__(self, clock=None):
        self._clock = clock or (lambda: datetime.now(UTC))

    def validate(self, code, shop_id, cart_amount, items, user_id=None):
        normalized = (code or "").strip().upper()
        coupons = (
            current_domain.repository_for(Coupon)._dao.query.filter(code=normalized, shop_id=str(shop_id)).all().items
        )
        coupon = coupons[0] if coupons else None
        now = self._clock()

        if coupon is None:
            return _rejected(normalized, "not_found", "Invalid coupon code.")
        if not coupon.is_active:
            return _rejected(normalized, "inactive", "This coupon is no longer active.", coupon)
        if coupon.starts_at and coupon.starts_at > now:
            return _rejected(normalized, "not_started", "This coupon is not yet active.", coupon)
        if coupon.expires_at and coupon.expires_at < now:
            return _rejected(normalized, "expired", "This coupon has expired.", coupon)
        if coupon.usage_limit is not None and (coupon.usage_count or 0) >= coupon.usage_limit:
            return _rejected(normalized, "usage_limit_reached", "This coupon has reached its usage limit.", coupon)
        if user_id and coupon.usage_limit_per_user:
            used = (
                current_domain.repository_for(CouponUsage)
                ._dao.query.filter(coupon_id=str(coupon.id), user_id=str(user_id))
                .all()
                .total
            )
            if used >= coupon.usage_limit_per_user:
                return _rejected(
                    normalized,
                    "user_limit_reached",
                    "You have already used this coupon the maximum number of times.",
                    coupon,
                )

        cart_amount = to_decimal(cart_amount)
        minimum = to_decimal(coupon.minimum_order_amount)
        if cart_amount < minimum:
            return _rejected(normalized, "minimum_not_met", f"Minimum cart amount of ${minimum:.2f} required.", coupon)

        applicable_amount = cart_amount
        if coupon.applicable_to != ApplicableTo.ALL.value:
            if coupon.applicable_to == ApplicableTo.SPECIFIC_PRODUCTS.value:
                allowed = coupon.restricted_product_ids
                applicable = [item for item in items if str(item.product_id) in allowed]
            else:
                allowed = coupon.restricted_category_ids
                applicable = [item for item in items if item.category_id and str(item.category_id) in allowed]
            if not applicable:
                return _rejected(
                    normalized,
                    "no_applicable_products",
                    "This coupon doesn't apply to any items in your cart.",
                    coupon,
                )
            applicable_amount = sum((item.amount for item in applicable), start=Decimal("0"))

        value = to_decimal(coupon.discount_value)
        if coupon.discount_type == DiscountType.PERCENTAGE.value:
            discount = applicable_amount * value / 100
        elif coupon.discount_type == DiscountType.FIXED.value:
            discount = min(value, applicable_amount)
        else:
            discount = Decimal("0")

        if coupon.maximum_discount_amount is not None:
            discount = min(discount, to_decimal(coupon.maximum_discount_amount))

        return CouponValidation(
            valid=True,
            code=normalized,
            discount_amount=quantize(discount),
            discount_type=coupon.discount_type,
            coupon_id=str(coupon.id),
            message="Coupon applied.",
        )
