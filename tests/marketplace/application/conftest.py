import pytest
from marketplace.checkout.service import CheckoutService
from protean import current_domain


@pytest.fixture
def checkout_service(gateway, mailbox):
    return CheckoutService(gateway=gateway, email_channel=mailbox)


@pytest.fixture
def two_shop_cart(seed):
    """Cart with $40.00 from Paper Co (ships $5.00) and $15.00 from Ink Co."""
    paper = seed.shop("Paper Co")
    ink = seed.shop("Ink Co")
    notebook = seed.product(paper, 20.0, stock=5, name="Notebook")
    bottle = seed.product(ink, 15.0, stock=3, name="Ink Bottle")
    shipping = seed.shipping(paper, 5.0)
    cart_id = seed.cart((notebook, 2), (bottle, 1), user_id="user-001")
    seed.customer(email="ada@example.com")
    return {
        "paper": paper,
        "ink": ink,
        "notebook": notebook,
        "bottle": bottle,
        "shipping": shipping,
        "cart_id": cart_id,
    }


def repo(aggregate_cls):
    return current_domain.repository_for(aggregate_cls)
