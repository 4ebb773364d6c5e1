"""Tests for the Order Splitter's grouping and pricing rules."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from marketplace.catalogue.product import Product, ProductStatus
from marketplace.catalogue.shipping import ShippingMethod
from marketplace.coupon.validator import CouponValidation, CouponValidator
from marketplace.errors import CouponRejected, DuplicateShopCoupon, EmptyCart, ShippingMethodMismatch
from marketplace.order.splitter import PER_SHOP, CouponSelection, OrderSplitter, ShopDraft
from protean.exceptions import ValidationError


class FixedCouponValidator(CouponValidator):
    """Accepts every code with a fixed discount, or rejects everything."""

    def __init__(self, discount="5.00", discount_type="fixed", valid=True):
        self.discount = Decimal(discount)
        self.discount_type = discount_type
        self.valid = valid
        self.calls = []

    def validate(self, code, shop_id, cart_amount, items, user_id=None):
        self.calls.append((code, shop_id, cart_amount, len(items), user_id))
        if not self.valid:
            return CouponValidation(valid=False, code=code, message="Coupon has expired", invalid_reason="expired")
        return CouponValidation(
            valid=True,
            code=code,
            discount_amount=self.discount,
            discount_type=self.discount_type,
            coupon_id=f"coupon-{code}",
        )


def _product(shop_id, price, **kwargs):
    return Product.register(shop_id=shop_id, name=f"Item {price}", price=price, stock=10, **kwargs)


def _line(product, quantity=1, variant="{}"):
    return SimpleNamespace(product_id=str(product.id), quantity=quantity, variant=variant)


def _catalogue(*products):
    return {str(product.id): product for product in products}


@pytest.fixture
def shop_a_items():
    return _product("shop-a", 20.0), _product("shop-a", 10.0)


class TestSingleShop:
    def test_happy_path_totals(self, shop_a_items):
        notebook, pen = shop_a_items
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=15.0)
        splitter = OrderSplitter(FixedCouponValidator("5.00"), tax_rate="0.05")

        [draft] = splitter.split(
            [_line(notebook, 2), _line(pen, 1)],
            _catalogue(notebook, pen),
            shipping,
            coupons=[CouponSelection(shop_id="shop-a", code="SAVE10")],
        )

        assert draft.subtotal == Decimal("50.00")
        assert draft.discount == Decimal("5.00")
        assert draft.tax == Decimal("2.25")
        assert draft.shipping == Decimal("15.00")
        assert draft.total == Decimal("62.25")
        assert draft.coupon_code == "SAVE10"

    def test_discount_capped_at_subtotal(self, shop_a_items):
        notebook, _ = shop_a_items
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=0.0)
        splitter = OrderSplitter(FixedCouponValidator("100.00"), tax_rate="0.05")

        [draft] = splitter.split(
            [_line(notebook)],
            _catalogue(notebook),
            shipping,
            coupons=[CouponSelection(shop_id="shop-a", code="BIG")],
        )
        assert draft.discount == Decimal("20.00")
        assert draft.tax == Decimal("0.00")
        assert draft.total == Decimal("0.00")

    def test_free_shipping_coupon(self, shop_a_items):
        notebook, _ = shop_a_items
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=15.0)
        splitter = OrderSplitter(FixedCouponValidator("0.00", discount_type="free_shipping"), tax_rate="0.05")

        [draft] = splitter.split(
            [_line(notebook)],
            _catalogue(notebook),
            shipping,
            coupons=[CouponSelection(shop_id="shop-a", code="SHIPFREE")],
        )
        assert draft.shipping == Decimal("0.00")
        assert draft.total == Decimal("21.00")

    def test_tax_rounds_half_up(self):
        item = _product("shop-a", 0.5)
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=0.0)
        [draft] = OrderSplitter(FixedCouponValidator(), tax_rate="0.05").split([_line(item)], _catalogue(item), shipping)
        # 0.025 rounds up to 0.03
        assert draft.tax == Decimal("0.03")


class TestMultiShop:
    def test_shipping_only_on_owning_shop(self):
        a_item, b_item = _product("shop-a", 30.0), _product("shop-b", 20.0)
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=10.0)

        drafts = OrderSplitter(FixedCouponValidator(), tax_rate="0.05").split(
            [_line(a_item), _line(b_item)], _catalogue(a_item, b_item), shipping
        )
        totals = {draft.shop_id: draft.total for draft in drafts}

        assert totals == {"shop-a": Decimal("41.50"), "shop-b": Decimal("21.00")}
        assert sum(totals.values()) == Decimal("62.50")

    def test_per_shop_policy_charges_every_group(self):
        a_item, b_item = _product("shop-a", 30.0), _product("shop-b", 20.0)
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=10.0)

        drafts = OrderSplitter(FixedCouponValidator(), tax_rate="0.05", shipping_policy=PER_SHOP).split(
            [_line(a_item), _line(b_item)], _catalogue(a_item, b_item), shipping
        )
        assert all(draft.shipping == Decimal("10.00") for draft in drafts)

    def test_lines_grouped_by_shop(self):
        a1, a2, b1 = _product("shop-a", 1.0), _product("shop-a", 2.0), _product("shop-b", 3.0)
        shipping = ShippingMethod(shop_id="shop-b", name="Courier", price=1.0)

        drafts = OrderSplitter(FixedCouponValidator(), tax_rate="0").split(
            [_line(a1), _line(b1), _line(a2)], _catalogue(a1, a2, b1), shipping
        )
        assert {draft.shop_id: len(draft.items) for draft in drafts} == {"shop-a": 2, "shop-b": 1}


class TestRejections:
    def test_empty_cart(self):
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=1.0)
        with pytest.raises(EmptyCart):
            OrderSplitter(FixedCouponValidator()).split([], {}, shipping)

    def test_shipping_method_from_another_shop(self, shop_a_items):
        notebook, _ = shop_a_items
        shipping = ShippingMethod(shop_id="shop-z", name="Courier", price=1.0)
        with pytest.raises(ShippingMethodMismatch):
            OrderSplitter(FixedCouponValidator()).split([_line(notebook)], _catalogue(notebook), shipping)

    def test_missing_shipping_method(self, shop_a_items):
        notebook, _ = shop_a_items
        with pytest.raises(ShippingMethodMismatch):
            OrderSplitter(FixedCouponValidator()).split([_line(notebook)], _catalogue(notebook), None)

    def test_two_coupons_for_one_shop(self, shop_a_items):
        notebook, _ = shop_a_items
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=1.0)
        with pytest.raises(DuplicateShopCoupon):
            OrderSplitter(FixedCouponValidator()).split(
                [_line(notebook)],
                _catalogue(notebook),
                shipping,
                coupons=[CouponSelection("shop-a", "ONE"), CouponSelection("shop-a", "TWO")],
            )

    def test_coupon_for_shop_not_in_cart(self, shop_a_items):
        notebook, _ = shop_a_items
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=1.0)
        with pytest.raises(CouponRejected):
            OrderSplitter(FixedCouponValidator()).split(
                [_line(notebook)], _catalogue(notebook), shipping, coupons=[CouponSelection("shop-b", "ONE")]
            )

    def test_invalid_coupon(self, shop_a_items):
        notebook, _ = shop_a_items
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=1.0)
        with pytest.raises(CouponRejected) as exc:
            OrderSplitter(FixedCouponValidator(valid=False)).split(
                [_line(notebook)], _catalogue(notebook), shipping, coupons=[CouponSelection("shop-a", "OLD")]
            )
        assert exc.value.reason == "expired"

    def test_inactive_product(self):
        archived = _product("shop-a", 5.0, status=ProductStatus.ARCHIVED.value)
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=1.0)
        with pytest.raises(ValidationError):
            OrderSplitter(FixedCouponValidator()).split([_line(archived)], _catalogue(archived), shipping)


class TestDraftSerialization:
    def test_round_trip_keeps_money_exact(self, shop_a_items):
        notebook, pen = shop_a_items
        shipping = ShippingMethod(shop_id="shop-a", name="Courier", price=15.0)
        [draft] = OrderSplitter(FixedCouponValidator(), tax_rate="0.05").split(
            [_line(notebook, 2), _line(pen)], _catalogue(notebook, pen), shipping
        )

        restored = ShopDraft.from_dict(draft.to_dict())

        assert restored.total == draft.total
        assert restored.pricing() == draft.pricing()
