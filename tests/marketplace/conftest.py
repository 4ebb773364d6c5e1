import json

import pytest
from protean.integrations.pytest import DomainFixture
from protean.utils.globals import current_domain


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield

        # Clear all databases and drain the event store
        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture
def gateway():
    from marketplace.payment.gateway import get_gateway

    return get_gateway()


@pytest.fixture
def mailbox():
    from marketplace.ledger.channel import get_channel

    return get_channel("email")


ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "555-0100",
    "street": "12 Analytical Way",
    "city": "London",
    "state": "LDN",
    "zip": "N1 9GU",
    "country": "GB",
}


class Seeder:
    """Registers catalogue records and carts through the domain's own commands."""

    def shop(
        self,
        name="Shop",
        stripe_account_id=None,
        charges_enabled=False,
        commission_rate=None,
        enable_notifications=True,
    ):
        from marketplace.catalogue.registration import RegisterShop

        return current_domain.process(
            RegisterShop(
                name=name,
                slug=name.lower().replace(" ", "-"),
                email=f"{name.lower().replace(' ', '')}@shops.example.com",
                stripe_account_id=stripe_account_id,
                charges_enabled=charges_enabled,
                commission_rate=commission_rate,
                enable_notifications=enable_notifications,
            ),
            asynchronous=False,
        )

    def product(self, shop_id, price, stock=10, name="Widget", track_inventory=True, low_stock_threshold=2, **kwargs):
        from marketplace.catalogue.registration import RegisterProduct

        return current_domain.process(
            RegisterProduct(
                shop_id=shop_id,
                name=name,
                price=price,
                stock=stock,
                track_inventory=track_inventory,
                low_stock_threshold=low_stock_threshold,
                **kwargs,
            ),
            asynchronous=False,
        )

    def shipping(self, shop_id, price, name="Standard"):
        from marketplace.catalogue.registration import RegisterShippingMethod

        return current_domain.process(
            RegisterShippingMethod(shop_id=shop_id, name=name, price=price, estimated_days="3-5"),
            asynchronous=False,
        )

    def customer(self, email="ada@example.com", name="Ada Lovelace", order_emails_enabled=True):
        from marketplace.catalogue.registration import RegisterCustomer

        return current_domain.process(
            RegisterCustomer(email=email, name=name, order_emails_enabled=order_emails_enabled),
            asynchronous=False,
        )

    def coupon(self, shop_id, code, discount_type="fixed", discount_value=5.0, **kwargs):
        from marketplace.coupon.coupon import Coupon

        coupon = Coupon.create(shop_id, code, discount_type, discount_value, **kwargs)
        current_domain.repository_for(Coupon).add(coupon)
        return str(coupon.id)

    def cart(self, *lines, user_id=None, guest_token=None):
        """Open a cart and add ``(product_id, quantity)`` or ``(product_id, quantity, variant)`` lines."""
        from marketplace.cart.lines import AddCartLine
        from marketplace.cart.management import OpenCart

        if user_id is None and guest_token is None:
            guest_token = "guest-token"
        cart_id = current_domain.process(OpenCart(user_id=user_id, guest_token=guest_token), asynchronous=False)
        for line in lines:
            product_id, quantity = line[0], line[1]
            variant = line[2] if len(line) > 2 else {}
            current_domain.process(
                AddCartLine(cart_id=cart_id, product_id=product_id, quantity=quantity, variant=json.dumps(variant)),
                asynchronous=False,
            )
        return cart_id

    @staticmethod
    def stock(product_id):
        from marketplace.catalogue.product import Product

        return current_domain.repository_for(Product).current_stock(product_id).stock


@pytest.fixture
def seed():
    return Seeder()


@pytest.fixture
def address():
    return dict(ADDRESS)
