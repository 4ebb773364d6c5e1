"""Shared BDD fixtures and step definitions for the checkout flow."""

import json
import re

import pytest
from marketplace.checkout.service import CheckoutService
from marketplace.order.order import Order
from marketplace.payment.gateway.fake_adapter import TEST_SIGNATURE
from marketplace.settlement.webhook import WebhookProcessor
from protean import current_domain
from pytest_bdd import given, parsers, then, when


@pytest.fixture
def world():
    """Names to ids for shops, products and shipping methods, plus checkout results."""
    return {"shops": {}, "products": {}, "shipping": {}, "carts": [], "results": [], "errors": []}


@pytest.fixture
def service(gateway, mailbox):
    return CheckoutService(gateway=gateway, email_channel=mailbox)


def _cart_lines(world, contents):
    lines = []
    for quantity, name in re.findall(r'(\d+) "([^"]+)"', contents):
        lines.append((world["products"][name], int(quantity)))
    return lines


def _order_for(world, shop_name):
    shop_id = world["shops"][shop_name]
    result = world["results"][0]
    return next(o for o in current_domain.repository_for(Order).by_ids(result.order_ids) if str(o.shop_id) == shop_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a shop "{shop}" selling "{product}" at {price:f} with {stock:d} in stock'))
def shop_with_product(seed, world, shop, product, price, stock):
    world["shops"][shop] = seed.shop(shop)
    world["products"][product] = seed.product(world["shops"][shop], price, stock=stock, name=product)


@given(parsers.cfparse('"{shop}" ships "{method}" for {price:f}'))
def shop_ships(seed, world, shop, method, price):
    world["shipping"][method] = seed.shipping(world["shops"][shop], price, name=method)


@given(parsers.cfparse('"{shop}" offers coupon "{code}" for {percent:d} percent off'))
def shop_coupon(seed, world, shop, code, percent):
    seed.coupon(world["shops"][shop], code, discount_type="percentage", discount_value=float(percent))


@given(parsers.re(r"a guest cart with (?P<contents>.+)"))
def guest_cart(seed, world, contents):
    world["carts"].append(seed.cart(*_cart_lines(world, contents), guest_token="guest-1"))


@given(parsers.re(r"a second guest cart with (?P<contents>.+)"))
def second_guest_cart(seed, world, contents):
    world["carts"].append(seed.cart(*_cart_lines(world, contents), guest_token="guest-2"))


@given(parsers.cfparse('the guest has checked out with "{method}" shipping'))
def guest_has_checked_out(service, world, address, method):
    world["results"].append(service.checkout(world["carts"][0], world["shipping"][method], address))


@given("the processor reports the payment succeeded")
def given_payment_succeeded(gateway, world):
    _report_success(gateway, world)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.re(r'the guest checks out with "(?P<method>[^"]+)" shipping$'))
def guest_checks_out(service, world, address, method):
    world["results"].append(service.checkout(world["carts"][0], world["shipping"][method], address))


@when(parsers.cfparse('the guest checks out with "{method}" shipping and coupon "{code}" for "{shop}"'))
def guest_checks_out_with_coupon(service, world, address, method, code, shop):
    world["results"].append(
        service.checkout(
            world["carts"][0],
            world["shipping"][method],
            address,
            coupons=[{"shop_id": world["shops"][shop], "code": code}],
        )
    )


@when(parsers.cfparse('both guests check out with "{method}" shipping'))
def both_guests_check_out(service, world, address, method):
    from marketplace.errors import OutOfStock

    for cart_id in world["carts"]:
        try:
            world["results"].append(service.checkout(cart_id, world["shipping"][method], address))
        except OutOfStock as exc:
            world["errors"].append(exc)


@when("the processor reports the payment succeeded")
def when_payment_succeeded(gateway, world):
    _report_success(gateway, world)


@when("the payment is confirmed again")
def confirmed_again(service, world):
    service.confirm_payment(world["results"][0].authorization_id)


@when(parsers.cfparse('the customer cancels the "{shop}" order'))
def customer_cancels(gateway, world, shop):
    from marketplace.order.cancellation import OrderCompensator

    OrderCompensator(gateway).cancel(str(_order_for(world, shop).id), reason="No longer needed")


def _report_success(gateway, world):
    authorization_id = world["results"][0].authorization_id
    gateway.settle(authorization_id)
    payload = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"id": authorization_id}}})
    WebhookProcessor(gateway).process(payload, TEST_SIGNATURE)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("{count:d} orders are pending"))
def orders_pending(world, count):
    orders = current_domain.repository_for(Order).by_ids(world["results"][0].order_ids)
    assert len(orders) == count
    assert all(o.status == "pending" for o in orders)


@then(parsers.cfparse('the "{shop}" order totals {total:f}'))
def order_totals(world, shop, total):
    assert _order_for(world, shop).total_amount == pytest.approx(total)


@then(parsers.cfparse("the authorization amount is {amount:f}"))
def authorization_amount(world, amount):
    assert world["results"][0].amount_minor == round(amount * 100)


@then(parsers.cfparse('"{product}" has {stock:d} in stock'))
def product_stock(seed, world, product, stock):
    assert seed.stock(world["products"][product]) == stock


@then("every order is confirmed")
def every_order_confirmed(world):
    orders = current_domain.repository_for(Order).by_ids(world["results"][0].order_ids)
    assert all(o.status == "confirmed" for o in orders)


@then(parsers.cfparse("{count:d} confirmation emails were sent"))
def confirmation_emails(mailbox, count):
    assert len([e for e in mailbox.sent_emails if e["subject"].startswith("Order Confirmed")]) == count


@then("exactly one checkout succeeds")
def one_checkout_succeeds(world):
    assert len(world["results"]) == 1
    assert len(world["errors"]) == 1


@then(parsers.cfparse('the "{shop}" order is refunded'))
def order_refunded(world, shop):
    order = _order_for(world, shop)
    assert order.status == "refunded"
    assert order.payment_status == "refunded"


@then(parsers.cfparse("the processor received {count:d} refund"))
def refund_count(gateway, count):
    assert len(gateway.calls_to("refund")) == count


@then(parsers.cfparse('cancelling the "{shop}" order again is rejected'))
def cancel_again_rejected(gateway, world, shop):
    from marketplace.errors import OrderNotCancellable
    from marketplace.order.cancellation import OrderCompensator

    with pytest.raises(OrderNotCancellable):
        OrderCompensator(gateway).cancel(str(_order_for(world, shop).id))
    assert len(gateway.calls_to("refund")) == 1
