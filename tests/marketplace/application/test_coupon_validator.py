"""Application tests for the repository-backed coupon validator."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from marketplace.coupon.redemption import record_redemption
from marketplace.coupon.validator import CouponItem, RepositoryCouponValidator

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def validator():
    return RepositoryCouponValidator(clock=lambda: NOW)


def _items(*specs):
    return [
        CouponItem(product_id=pid, category_id=cid, unit_price=Decimal(str(price)), quantity=qty)
        for pid, cid, price, qty in specs
    ]


ITEMS = _items(("prod-1", "cat-1", 20, 2), ("prod-2", "cat-2", 10, 1))


class TestRejections:
    def test_unknown_code(self, validator):
        result = validator.validate("NOPE", "shop-a", Decimal("50"), ITEMS)
        assert not result.valid
        assert result.invalid_reason == "not_found"

    def test_code_is_shop_scoped(self, seed, validator):
        seed.coupon("shop-b", "SAVE10")
        result = validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS)
        assert result.invalid_reason == "not_found"

    def test_inactive(self, seed, validator):
        seed.coupon("shop-a", "SAVE10", is_active=False)
        assert validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS).invalid_reason == "inactive"

    def test_not_started(self, seed, validator):
        seed.coupon("shop-a", "SAVE10", starts_at=NOW + timedelta(days=1))
        assert validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS).invalid_reason == "not_started"

    def test_expired(self, seed, validator):
        seed.coupon("shop-a", "SAVE10", expires_at=NOW - timedelta(days=1))
        assert validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS).invalid_reason == "expired"

    def test_usage_limit(self, seed, validator):
        seed.coupon("shop-a", "SAVE10", usage_limit=2, usage_count=2)
        assert validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS).invalid_reason == "usage_limit_reached"

    def test_per_user_limit(self, seed, validator):
        coupon_id = seed.coupon("shop-a", "SAVE10", usage_limit_per_user=1)
        record_redemption(coupon_id, order_id="order-1", user_id="user-001", discount_amount=5.0)

        result = validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS, user_id="user-001")
        assert result.invalid_reason == "user_limit_reached"
        assert validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS, user_id="user-002").valid

    def test_minimum_not_met(self, seed, validator):
        seed.coupon("shop-a", "SAVE10", minimum_order_amount=100.0)
        result = validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS)
        assert result.invalid_reason == "minimum_not_met"
        assert "$100.00" in result.message

    def test_no_applicable_products(self, seed, validator):
        seed.coupon("shop-a", "SAVE10", applicable_to="specific_products", product_ids=["prod-9"])
        assert validator.validate("SAVE10", "shop-a", Decimal("50"), ITEMS).invalid_reason == "no_applicable_products"


class TestDiscounts:
    def test_code_is_case_insensitive(self, seed, validator):
        seed.coupon("shop-a", "save10")
        result = validator.validate(" Save10 ", "shop-a", Decimal("50"), ITEMS)
        assert result.valid
        assert result.code == "SAVE10"

    def test_fixed(self, seed, validator):
        seed.coupon("shop-a", "FIVE", discount_type="fixed", discount_value=5.0)
        assert validator.validate("FIVE", "shop-a", Decimal("50"), ITEMS).discount_amount == Decimal("5.00")

    def test_fixed_capped_at_applicable_amount(self, seed, validator):
        seed.coupon("shop-a", "BIG", discount_type="fixed", discount_value=500.0)
        assert validator.validate("BIG", "shop-a", Decimal("50"), ITEMS).discount_amount == Decimal("50.00")

    def test_percentage_with_maximum(self, seed, validator):
        seed.coupon("shop-a", "HALF", discount_type="percentage", discount_value=50.0, maximum_discount_amount=20.0)
        assert validator.validate("HALF", "shop-a", Decimal("50"), ITEMS).discount_amount == Decimal("20.00")

    def test_percentage_of_category_items_only(self, seed, validator):
        seed.coupon(
            "shop-a", "CAT", discount_type="percentage", discount_value=10.0,
            applicable_to="specific_categories", category_ids=["cat-2"],
        )
        assert validator.validate("CAT", "shop-a", Decimal("50"), ITEMS).discount_amount == Decimal("1.00")

    def test_free_shipping(self, seed, validator):
        seed.coupon("shop-a", "SHIP", discount_type="free_shipping", discount_value=0.0)
        result = validator.validate("SHIP", "shop-a", Decimal("50"), ITEMS)
        assert result.free_shipping
        assert result.discount_amount == Decimal("0.00")
