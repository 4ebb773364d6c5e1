"""Application tests for placing orders from a cart."""

import pytest
from marketplace.cart.cart import Cart
from marketplace.coupon.coupon import Coupon, CouponUsage
from marketplace.errors import CouponRejected, EmptyCart, OutOfStock, ShippingMethodMismatch
from marketplace.order.order import Order
from protean import current_domain


def _orders():
    return current_domain.repository_for(Order)._dao.query.all().items


class TestSuccessfulPlacement:
    def test_one_order_per_shop(self, checkout_service, two_shop_cart, address):
        result = checkout_service.checkout(two_shop_cart["cart_id"], two_shop_cart["shipping"], address)

        assert len(result.order_ids) == 2
        orders = {str(o.shop_id): o for o in _orders()}
        assert set(orders) == {two_shop_cart["paper"], two_shop_cart["ink"]}

        paper = orders[two_shop_cart["paper"]]
        assert paper.subtotal == 40.0
        assert paper.tax_amount == 2.0
        assert paper.shipping_amount == 5.0
        assert paper.total_amount == 47.0

        ink = orders[two_shop_cart["ink"]]
        assert ink.shipping_amount == 0.0
        assert ink.total_amount == 15.75

    def test_orders_share_checkout_and_start_pending(self, checkout_service, two_shop_cart, address):
        result = checkout_service.checkout(two_shop_cart["cart_id"], two_shop_cart["shipping"], address)

        for order in _orders():
            assert str(order.checkout_id) == result.checkout_id
            assert order.status == "pending"
            assert order.payment_status == "pending"
            assert order.order_number.startswith("ORD-")

    def test_stock_reserved_and_cart_cleared(self, checkout_service, two_shop_cart, address, seed):
        checkout_service.checkout(two_shop_cart["cart_id"], two_shop_cart["shipping"], address)

        assert seed.stock(two_shop_cart["notebook"]) == 3
        assert seed.stock(two_shop_cart["bottle"]) == 2
        assert len(current_domain.repository_for(Cart).get(two_shop_cart["cart_id"]).lines) == 0

    def test_coupon_redemption_recorded(self, checkout_service, two_shop_cart, address, seed):
        coupon_id = seed.coupon(two_shop_cart["paper"], "PAPER5", discount_value=5.0)

        checkout_service.checkout(
            two_shop_cart["cart_id"],
            two_shop_cart["shipping"],
            address,
            coupons=[{"shop_id": two_shop_cart["paper"], "code": "PAPER5"}],
        )

        coupon = current_domain.repository_for(Coupon).get(coupon_id)
        assert coupon.usage_count == 1
        usages = current_domain.repository_for(CouponUsage)._dao.query.filter(coupon_id=coupon_id).all().items
        assert len(usages) == 1
        assert usages[0].discount_amount == 5.0

        paper = next(o for o in _orders() if str(o.shop_id) == two_shop_cart["paper"])
        assert paper.coupon_code == "PAPER5"
        assert paper.total_amount == 41.75


class TestRejectedPlacement:
    def test_reservation_failure_creates_nothing(self, checkout_service, seed, address):
        shop = seed.shop("Paper Co")
        plenty = seed.product(shop, 10.0, stock=10)
        scarce = seed.product(shop, 10.0, stock=2)
        shipping = seed.shipping(shop, 5.0)
        cart_id = seed.cart((plenty, 3), (scarce, 2), user_id="user-001")

        # Another buyer takes the scarce stock after it went into the cart
        from marketplace.inventory.guard import InventoryGuard

        InventoryGuard().reserve(scarce, 1)

        with pytest.raises(OutOfStock):
            checkout_service.checkout(cart_id, shipping, address)

        assert _orders() == []
        assert seed.stock(plenty) == 10
        assert seed.stock(scarce) == 1
        assert len(current_domain.repository_for(Cart).get(cart_id).lines) == 2

    def test_invalid_coupon_rejects_before_reserving(self, checkout_service, two_shop_cart, address, seed):
        with pytest.raises(CouponRejected):
            checkout_service.checkout(
                two_shop_cart["cart_id"],
                two_shop_cart["shipping"],
                address,
                coupons=[{"shop_id": two_shop_cart["paper"], "code": "NOPE"}],
            )

        assert _orders() == []
        assert seed.stock(two_shop_cart["notebook"]) == 5

    def test_foreign_shipping_method(self, checkout_service, two_shop_cart, address, seed):
        elsewhere = seed.shop("Elsewhere")
        foreign = seed.shipping(elsewhere, 3.0)

        with pytest.raises(ShippingMethodMismatch):
            checkout_service.checkout(two_shop_cart["cart_id"], foreign, address)
        assert _orders() == []

    def test_empty_cart(self, checkout_service, seed, address):
        shop = seed.shop("Paper Co")
        shipping = seed.shipping(shop, 5.0)
        cart_id = seed.cart(user_id="user-001")

        with pytest.raises(EmptyCart):
            checkout_service.checkout(cart_id, shipping, address)

    def test_unpaid_orders_survive_authorization_failure(self, checkout_service, two_shop_cart, address, gateway, seed):
        from marketplace.errors import AuthorizationFailed

        gateway.configure(should_succeed=False)

        with pytest.raises(AuthorizationFailed):
            checkout_service.checkout(two_shop_cart["cart_id"], two_shop_cart["shipping"], address)

        orders = _orders()
        assert len(orders) == 2
        assert all(o.status == "pending" for o in orders)
        assert seed.stock(two_shop_cart["notebook"]) == 3


class TestLowStockAlerts:
    def test_low_stock_notifies_vendor(self, checkout_service, seed, address):
        from marketplace.ledger.notification import Notification

        shop = seed.shop("Paper Co")
        notebook = seed.product(shop, 10.0, stock=3, low_stock_threshold=2)
        shipping = seed.shipping(shop, 5.0)
        cart_id = seed.cart((notebook, 1), user_id="user-001")

        checkout_service.checkout(cart_id, shipping, address)

        inbox = current_domain.repository_for(Notification).for_shop(shop)
        assert [n.notification_type for n in inbox] == ["low_stock"]
        assert str(inbox[0].product_id) == notebook
