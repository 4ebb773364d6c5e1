"""Payment Authorizer — one customer charge for a checkout's orders.

A single-shop checkout whose vendor account can take charges becomes a
destination charge: the platform keeps an application fee and the rest is
routed to the vendor. Everything else (several shops, or a vendor not yet
chargeable) is collected by the platform, which pays vendors out of band.

When the processor refuses a destination charge because the connected
account lacks transfer capability, the authorizer quietly falls back to a
platform-collected charge. Any other processor failure leaves the orders
pending (reservations kept) and surfaces as a retryable error.

An order has at most one live authorization. Authorizing orders that still
hold an open one first voids it at the processor, so a customer who walks
away from the first payment form cannot later complete both. ``resume`` hands
back the open authorization instead when it still covers exactly the same
orders and amount.
"""

import json
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.catalogue.shop import Shop
from marketplace.errors import AuthorizationFailed, PaymentAlreadySettled, PaymentGatewayError
from marketplace.order.order import OrderStatus, PaymentStatus
from marketplace.payment.authorization import RecordAuthorization, VoidAuthorization
from marketplace.payment.gateway import get_gateway
from marketplace.payment.payment import ChargeType, Payment
from marketplace.utils.money import from_minor_units, to_minor_units

logger = structlog.get_logger(__name__)

TRANSFER_CAPABILITY_ERROR = "insufficient_capabilities_for_transfer"
OPEN_STATUSES = {"requires_payment_method", "requires_confirmation", "requires_action"}
SETTLING_STATUSES = {"succeeded", "processing", "requires_capture"}


@dataclass(frozen=True)
class AuthorizationResult:
    authorization_id: str
    client_secret: str | None
    amount_minor: int
    currency: str
    charge_type: str
    order_ids: list[str]
    connected_account_id: str | None = None
    application_fee_minor: int | None = None


class PaymentAuthorizer:
    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    def authorize(self, orders, customer_email, user_id=None, checkout_id=None) -> AuthorizationResult:
        if not orders:
            raise ValidationError({"orders": ["Nothing to authorize"]})
        for order in orders:
            if order.status != OrderStatus.PENDING.value or order.payment_status == PaymentStatus.PAID.value:
                raise ValidationError({"orders": [f"Order {order.order_number} is not awaiting payment"]})

        for authorization_id in self.open_authorizations(orders):
            self.void(authorization_id, reason="Superseded by a new authorization")

        amount_minor = sum(to_minor_units(order.total_amount) for order in orders)
        currency = orders[0].currency
        order_ids = [str(order.id) for order in orders]
        metadata = {
            "order_ids": ",".join(order_ids),
            "checkout_id": str(checkout_id or orders[0].checkout_id),
            "user_id": str(user_id) if user_id else "guest",
            "customer_email": customer_email or "",
        }

        shop = self._chargeable_shop(orders)
        authorization = None
        charge_type = ChargeType.PLATFORM.value
        connected_account_id = None
        fee_minor = None

        if shop is not None:
            fee_minor = self.application_fee(amount_minor, shop.effective_commission_rate())
            try:
                authorization = self.gateway.create_destination_charge(
                    amount_minor,
                    currency,
                    shop.stripe_account_id,
                    fee_minor,
                    {**metadata, "vendor_id": str(shop.id)},
                )
                charge_type = ChargeType.DESTINATION.value
                connected_account_id = shop.stripe_account_id
            except PaymentGatewayError as exc:
                if exc.code != TRANSFER_CAPABILITY_ERROR:
                    raise AuthorizationFailed(str(exc), code=exc.code, retryable=exc.retryable) from exc
                logger.warning(
                    "Connected account cannot receive transfers, collecting on platform",
                    shop_id=str(shop.id),
                    account_id=shop.stripe_account_id,
                )
                fee_minor = None

        if authorization is None:
            try:
                authorization = self.gateway.create_authorization(amount_minor, currency, metadata)
            except PaymentGatewayError as exc:
                raise AuthorizationFailed(str(exc), code=exc.code, retryable=exc.retryable) from exc

        current_domain.process(
            RecordAuthorization(
                authorization_id=authorization.id,
                order_ids=json.dumps(order_ids),
                checkout_id=metadata["checkout_id"],
                currency=currency,
                charge_type=charge_type,
                connected_account_id=connected_account_id,
                application_fee_amount=float(from_minor_units(fee_minor)) if fee_minor is not None else None,
                provider=self.gateway.provider,
            ),
            asynchronous=False,
        )

        logger.info(
            "Payment authorized",
            authorization_id=authorization.id,
            charge_type=charge_type,
            amount_minor=amount_minor,
            order_count=len(orders),
        )
        return AuthorizationResult(
            authorization_id=authorization.id,
            client_secret=authorization.client_secret,
            amount_minor=amount_minor,
            currency=currency,
            charge_type=charge_type,
            order_ids=order_ids,
            connected_account_id=connected_account_id,
            application_fee_minor=fee_minor,
        )

    @staticmethod
    def application_fee(amount_minor: int, rate) -> int:
        return int((Decimal(amount_minor) * Decimal(str(rate))).to_integral_value(rounding=ROUND_HALF_UP))

    def _chargeable_shop(self, orders) -> Shop | None:
        """Return the shop when a destination charge is possible, else None."""
        shop_ids = {str(order.shop_id) for order in orders}
        if len(shop_ids) != 1:
            return None

        shop = current_domain.repository_for(Shop).get(shop_ids.pop())
        if not shop.stripe_account_id:
            return None

        try:
            status = self.gateway.get_account_status(shop.stripe_account_id)
        except PaymentGatewayError as exc:
            logger.warning(
                "Could not read connected account status, collecting on platform",
                shop_id=str(shop.id),
                error=str(exc),
            )
            return None

        return shop if status.charges_enabled else None

    # -------------------------------------------------------------------
    # Open authorizations
    # -------------------------------------------------------------------
    @staticmethod
    def open_authorizations(orders) -> list[str]:
        """Authorization ids with a payment for ``orders`` that has not captured or been voided."""
        payments = current_domain.repository_for(Payment).open_for_orders(order.id for order in orders)
        return list(dict.fromkeys(payment.authorization_id for payment in payments))

    def resume(self, orders) -> AuthorizationResult | None:
        """Return the open authorization covering exactly ``orders``, if there is one."""
        authorization_ids = self.open_authorizations(orders)
        if len(authorization_ids) != 1:
            return None
        authorization_id = authorization_ids[0]

        payments = current_domain.repository_for(Payment).for_authorization(authorization_id)
        if {str(payment.order_id) for payment in payments} != {str(order.id) for order in orders}:
            return None

        try:
            status = self.gateway.get_authorization(authorization_id)
        except PaymentGatewayError as exc:
            logger.warning("Could not read open authorization", authorization_id=authorization_id, error=str(exc))
            return None

        amount_minor = sum(to_minor_units(order.total_amount) for order in orders)
        if status.status not in OPEN_STATUSES or status.amount != amount_minor or not status.client_secret:
            return None

        payment = payments[0]
        logger.info("Resuming open authorization", authorization_id=authorization_id, amount_minor=amount_minor)
        return AuthorizationResult(
            authorization_id=authorization_id,
            client_secret=status.client_secret,
            amount_minor=amount_minor,
            currency=payment.currency,
            charge_type=payment.charge_type,
            order_ids=[str(order.id) for order in orders],
            connected_account_id=payment.connected_account_id,
            application_fee_minor=(
                to_minor_units(payment.application_fee_amount) if payment.application_fee_amount is not None else None
            ),
        )

    def void(self, authorization_id, reason=None) -> list[str]:
        """Cancel ``authorization_id`` at the processor and retire its open payments.

        Returns:
            Ids of the orders whose payment was voided.

        Raises:
            PaymentAlreadySettled: The processor has captured, or is capturing,
                the money; nothing changed locally.
        """
        try:
            status = self.gateway.get_authorization(authorization_id).status
        except PaymentGatewayError as exc:
            if exc.code != "resource_missing":
                raise
            status = None

        if status in SETTLING_STATUSES:
            raise PaymentAlreadySettled(authorization_id, status)

        if status is not None and status != "canceled":
            self.gateway.cancel_authorization(authorization_id)

        voided = current_domain.process(
            VoidAuthorization(authorization_id=authorization_id, reason=reason),
            asynchronous=False,
        )
        logger.info("Authorization voided", authorization_id=authorization_id, order_count=len(voided))
        return voided
