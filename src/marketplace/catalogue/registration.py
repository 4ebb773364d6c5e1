"""Catalogue registration — the minimal writes the engine needs for its inputs.

Catalogue CRUD proper lives outside the engine; these commands seed shops,
products, shipping methods and customers, and keep connected-account flags in
sync with the payment processor.
"""

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.catalogue.customer import Customer
from marketplace.catalogue.product import Product, ProductStatus
from marketplace.catalogue.shipping import ShippingMethod
from marketplace.catalogue.shop import Shop
from marketplace.domain import marketplace


@marketplace.command(part_of="Shop")
class RegisterShop:
    name = String(required=True, max_length=255)
    slug = String(max_length=255)
    owner_id = Identifier()
    email = String(max_length=255)
    enable_notifications = Boolean(default=True)
    stripe_account_id = String(max_length=255)
    charges_enabled = Boolean(default=False)
    commission_rate = Float()


@marketplace.command(part_of="Shop")
class UpdateConnectedAccount:
    stripe_account_id = String(required=True, max_length=255)
    charges_enabled = Boolean(default=False)
    payouts_enabled = Boolean(default=False)
    details_submitted = Boolean(default=False)


@marketplace.command(part_of="Product")
class RegisterProduct:
    shop_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    sku = String(max_length=100)
    image = String(max_length=500)
    category_id = Identifier()
    stock = Integer(min_value=0)
    track_inventory = Boolean(default=True)
    low_stock_threshold = Integer(default=5)
    status = String(max_length=20, default=ProductStatus.ACTIVE.value)


@marketplace.command(part_of="ShippingMethod")
class RegisterShippingMethod:
    shop_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    price = Float(required=True, min_value=0.0)
    estimated_days = String(max_length=50)


@marketplace.command(part_of="Customer")
class RegisterCustomer:
    email = String(required=True, max_length=255)
    name = String(max_length=255)
    order_emails_enabled = Boolean(default=True)


@marketplace.command_handler(part_of=Shop)
class ShopRegistrationHandler:
    @handle(RegisterShop)
    def register_shop(self, command):
        shop = Shop(
            name=command.name,
            slug=command.slug,
            owner_id=command.owner_id,
            email=command.email,
            enable_notifications=command.enable_notifications,
            stripe_account_id=command.stripe_account_id,
            charges_enabled=command.charges_enabled,
            commission_rate=command.commission_rate,
        )
        current_domain.repository_for(Shop).add(shop)
        return str(shop.id)

    @handle(UpdateConnectedAccount)
    def update_connected_account(self, command):
        """Mirror processor account flags onto every shop linked to the account."""
        repo = current_domain.repository_for(Shop)
        shops = repo._dao.query.filter(stripe_account_id=command.stripe_account_id).all().items
        for shop in shops:
            shop.update_account_status(
                charges_enabled=command.charges_enabled,
                payouts_enabled=command.payouts_enabled,
                details_submitted=command.details_submitted,
            )
            repo.add(shop)
        return [str(shop.id) for shop in shops]


@marketplace.command_handler(part_of=Product)
class ProductRegistrationHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        product = Product.register(
            shop_id=command.shop_id,
            name=command.name,
            price=command.price,
            sku=command.sku,
            image=command.image,
            category_id=command.category_id,
            stock=command.stock,
            track_inventory=command.track_inventory,
            low_stock_threshold=command.low_stock_threshold,
            status=command.status,
        )
        current_domain.repository_for(Product).add(product)
        return str(product.id)


@marketplace.command_handler(part_of=ShippingMethod)
class ShippingMethodRegistrationHandler:
    @handle(RegisterShippingMethod)
    def register_shipping_method(self, command):
        method = ShippingMethod(
            shop_id=command.shop_id,
            name=command.name,
            price=command.price,
            estimated_days=command.estimated_days,
        )
        current_domain.repository_for(ShippingMethod).add(method)
        return str(method.id)


@marketplace.command_handler(part_of=Customer)
class CustomerRegistrationHandler:
    @handle(RegisterCustomer)
    def register_customer(self, command):
        customer = Customer(
            email=command.email,
            name=command.name,
            order_emails_enabled=command.order_emails_enabled,
        )
        current_domain.repository_for(Customer).add(customer)
        return str(customer.id)
