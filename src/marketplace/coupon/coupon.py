"""Coupon — a shop-scoped discount code, and the record of each redemption."""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


class ApplicableTo(Enum):
    ALL = "all"
    SPECIFIC_PRODUCTS = "specific_products"
    SPECIFIC_CATEGORIES = "specific_categories"


@marketplace.aggregate
class Coupon:
    shop_id = Identifier(required=True)
    code = String(required=True, max_length=50)
    description = String(max_length=500)
    discount_type = String(choices=DiscountType, default=DiscountType.PERCENTAGE.value)
    discount_value = Float(default=0.0, min_value=0.0)
    minimum_order_amount = Float(default=0.0, min_value=0.0)
    maximum_discount_amount = Float(min_value=0.0)
    usage_limit = Integer(min_value=0)
    usage_limit_per_user = Integer(min_value=0)
    usage_count = Integer(default=0)
    applicable_to = String(choices=ApplicableTo, default=ApplicableTo.ALL.value)
    product_ids = Text(default="[]")  # JSON array
    category_ids = Text(default="[]")  # JSON array
    starts_at = DateTime()
    expires_at = DateTime()
    is_active = Boolean(default=True)

    @classmethod
    def create(cls, shop_id, code, discount_type, discount_value, product_ids=None, category_ids=None, **kwargs):
        return cls(
            shop_id=shop_id,
            code=code.strip().upper(),
            discount_type=discount_type,
            discount_value=discount_value,
            product_ids=json.dumps(product_ids or []),
            category_ids=json.dumps(category_ids or []),
            **kwargs,
        )

    @property
    def restricted_product_ids(self) -> set[str]:
        return {str(pid) for pid in json.loads(self.product_ids or "[]")}

    @property
    def restricted_category_ids(self) -> set[str]:
        return {str(cid) for cid in json.loads(self.category_ids or "[]")}

    def record_use(self):
        self.usage_count = (self.usage_count or 0) + 1


@marketplace.aggregate
class CouponUsage:
    coupon_id = Identifier(required=True)
    user_id = Identifier()
    order_id = Identifier(required=True)
    discount_amount = Float(default=0.0)
    used_at = DateTime(default=lambda: datetime.now(UTC))
