"""Checkout façade — cart to orders to one payment authorization.

``checkout`` runs the whole purchase for a cart:

1. Split the cart into priced per-shop drafts. This only reads, so a bad
   coupon or a foreign shipping method fails before anything is reserved.
2. Place the orders: reserve stock, create orders, record coupon use and
   empty the cart, all in one unit of work.
3. Authorize the combined total with the processor.

A processor failure in step 3 keeps the pending orders and their
reservations; ``authorize_existing`` retries the authorization later, reusing
or voiding whatever authorization the orders still hold.
Settlement happens separately, through ``confirm_payment`` or a webhook.
"""

import json
from dataclasses import dataclass
from uuid import uuid4

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace import settings
from marketplace.cart.cart import Cart
from marketplace.cart.locks import owner_lock
from marketplace.catalogue.customer import Customer
from marketplace.catalogue.product import Product
from marketplace.catalogue.shipping import ShippingMethod
from marketplace.coupon.validator import RepositoryCouponValidator
from marketplace.errors import EmptyCart
from marketplace.ledger.channel import EMAIL, get_channel
from marketplace.ledger.mailer import ConfirmationMailer
from marketplace.ledger.notifier import VendorNotifier
from marketplace.order.order import Order, OrderStatus, PaymentStatus
from marketplace.order.placement import PlaceOrders
from marketplace.order.splitter import CouponSelection, OrderSplitter
from marketplace.payment.authorizer import PaymentAuthorizer
from marketplace.payment.gateway import get_gateway
from marketplace.settlement.reconciler import SettlementReconciler
from marketplace.utils.money import from_minor_units

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    checkout_id: str
    order_ids: list[str]
    order_numbers: list[str]
    authorization_id: str
    client_secret: str | None
    amount: float
    amount_minor: int
    currency: str
    charge_type: str


class CheckoutService:
    def __init__(self, gateway=None, coupon_validator=None, email_channel=None):
        self._gateway = gateway
        self.coupon_validator = coupon_validator or RepositoryCouponValidator()
        self._email_channel = email_channel

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    @property
    def email_channel(self):
        return self._email_channel or get_channel(EMAIL)

    def checkout(
        self,
        cart_id,
        shipping_method_id,
        shipping_address: dict,
        billing_address: dict | None = None,
        coupons: list | None = None,
        guest_email: str | None = None,
        customer_name: str | None = None,
        notes: str | None = None,
    ) -> CheckoutResult:
        """Place one order per shop in the cart and authorize their total.

        Args:
            coupons: ``CouponSelection`` items or ``{"shop_id", "code"}``
                dicts, at most one per shop.
        """
        cart = current_domain.repository_for(Cart).get(cart_id)
        checkout_id = str(uuid4())

        with owner_lock(cart.user_id, cart.guest_token):
            # Re-read under the lock; a merge may have just changed the cart
            cart = current_domain.repository_for(Cart).get(cart_id)
            if not cart.lines:
                raise EmptyCart()

            products = current_domain.repository_for(Product).find_by_ids(line.product_id for line in cart.lines)
            splitter = OrderSplitter(self.coupon_validator)
            drafts = splitter.split(
                cart.lines,
                products,
                self._shipping_method(shipping_method_id),
                coupons=[self._selection(coupon) for coupon in coupons or []],
                user_id=str(cart.user_id) if cart.user_id else None,
            )

            placed = current_domain.process(
                PlaceOrders(
                    checkout_id=checkout_id,
                    cart_id=str(cart.id),
                    drafts=json.dumps([draft.to_dict() for draft in drafts]),
                    shipping_method_id=str(shipping_method_id),
                    shipping_address=json.dumps(shipping_address),
                    billing_address=json.dumps(billing_address) if billing_address else None,
                    guest_email=guest_email,
                    customer_name=customer_name,
                    customer_notes=notes,
                    currency=settings.currency(),
                ),
                asynchronous=False,
            )

        self._notify_low_stock(placed["low_stock"])

        orders = current_domain.repository_for(Order).by_ids(placed["order_ids"])
        email = guest_email or shipping_address.get("email") or self._customer_email(cart.user_id)
        authorization = PaymentAuthorizer(gateway=self.gateway).authorize(
            orders,
            email,
            user_id=str(cart.user_id) if cart.user_id else None,
            checkout_id=checkout_id,
        )
        return self._result(checkout_id, orders, authorization)

    def authorize_existing(self, checkout_id) -> CheckoutResult:
        """Authorize the still-unpaid pending orders of an earlier checkout.

        The open authorization is handed back as is when it still covers the
        same orders and amount. Otherwise it is voided and a new one created.
        """
        orders = [
            order
            for order in current_domain.repository_for(Order).for_checkout(checkout_id)
            if order.status == OrderStatus.PENDING.value and order.payment_status != PaymentStatus.PAID.value
        ]
        if not orders:
            raise ObjectNotFoundError(f"No orders awaiting payment for checkout {checkout_id}")

        email = orders[0].guest_email or self._customer_email(orders[0].user_id)
        if not email and orders[0].shipping_address is not None:
            email = orders[0].shipping_address.email

        authorizer = PaymentAuthorizer(gateway=self.gateway)
        authorization = authorizer.resume(orders)
        if authorization is None:
            authorization = authorizer.authorize(
                orders,
                email,
                user_id=str(orders[0].user_id) if orders[0].user_id else None,
                checkout_id=str(checkout_id),
            )
        return self._result(str(checkout_id), orders, authorization)

    def confirm_payment(self, authorization_id, order_ids=None):
        return SettlementReconciler(gateway=self.gateway).reconcile(authorization_id, order_ids=order_ids)

    def resend_confirmation(self, order_id):
        return ConfirmationMailer(channel=self.email_channel).send_order_confirmation(order_id)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _selection(coupon) -> CouponSelection:
        if isinstance(coupon, CouponSelection):
            return coupon
        return CouponSelection(shop_id=str(coupon["shop_id"]), code=coupon["code"])

    @staticmethod
    def _shipping_method(shipping_method_id):
        try:
            return current_domain.repository_for(ShippingMethod).get(shipping_method_id)
        except ObjectNotFoundError:
            return None

    @staticmethod
    def _customer_email(user_id):
        if not user_id:
            return None
        try:
            return current_domain.repository_for(Customer).get(user_id).email
        except ObjectNotFoundError:
            return None

    @staticmethod
    def _notify_low_stock(product_ids):
        if not product_ids:
            return
        notifier = VendorNotifier()
        for product in current_domain.repository_for(Product).find_by_ids(product_ids).values():
            try:
                notifier.low_stock(product)
            except Exception as e:
                logger.error("Low stock notification failed", product_id=str(product.id), error=str(e))

    @staticmethod
    def _result(checkout_id, orders, authorization) -> CheckoutResult:
        return CheckoutResult(
            checkout_id=checkout_id,
            order_ids=[str(order.id) for order in orders],
            order_numbers=[order.order_number for order in orders],
            authorization_id=authorization.authorization_id,
            client_secret=authorization.client_secret,
            amount=float(from_minor_units(authorization.amount_minor)),
            amount_minor=authorization.amount_minor,
            currency=authorization.currency,
            charge_type=authorization.charge_type,
        )
