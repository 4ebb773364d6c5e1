"""Order emails with at-most-once delivery per recipient.

Two messages go out when an order is paid: the customer confirmation and,
unless the shop turned notifications off, the vendor new-order email. Each
has an ``EmailDelivery`` row keyed ``{kind}:{order}:{recipient}`` that is
claimed before anything is sent. A row already marked ``sent`` ends the
call; a failed row resumes from its recorded attempt count, so retries
across calls never exceed the configured maximum.
"""

import time
from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace import settings
from marketplace.catalogue.customer import Customer
from marketplace.catalogue.shop import Shop
from marketplace.ledger.channel import EMAIL, get_channel
from marketplace.ledger.email_delivery import (
    DeliveryStatus,
    DeliveryType,
    EmailDelivery,
    confirmation_key,
    vendor_new_order_key,
)
from marketplace.ledger.templates import OrderConfirmationTemplate, VendorNewOrderTemplate
from marketplace.order.order import Order

logger = structlog.get_logger(__name__)

SENT = "sent"
ALREADY_SENT = "already_sent"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class MailResult:
    status: str
    message_id: str | None = None
    error: str | None = None
    reason: str | None = None


def retry_delay_ms(attempt: int, base_ms: int | None = None, cap_ms: int | None = None) -> int:
    """Delay before ``attempt`` (1-based): none for the first, then doubling."""
    if attempt <= 1:
        return 0
    base_ms = settings.email_retry_base_ms() if base_ms is None else base_ms
    cap_ms = settings.email_retry_cap_ms() if cap_ms is None else cap_ms
    return min(base_ms * 2 ** (attempt - 2), cap_ms)


def _long_date(value) -> str | None:
    if value is None:
        return None
    return f"{value:%B} {value.day}, {value.year}"


class ConfirmationMailer:
    def __init__(self, channel=None, sleep=time.sleep, max_attempts=None):
        self._channel = channel
        self.sleep = sleep
        self.max_attempts = max_attempts or settings.email_max_attempts()

    @property
    def channel(self):
        return self._channel or get_channel(EMAIL)

    def send_order_confirmation(self, order_id) -> MailResult:
        order = current_domain.repository_for(Order).get(order_id)
        customer = self._customer(order)

        recipient = self._recipient(order, customer)
        if not recipient:
            logger.warning("No recipient for order confirmation", order_id=str(order.id))
            return MailResult(status=FAILED, error="Customer email not found")

        repo = current_domain.repository_for(EmailDelivery)
        delivery, finished = self._claim(
            repo, confirmation_key(order.id, recipient), DeliveryType.ORDER_CONFIRMATION, order, recipient
        )
        if finished is not None:
            return finished

        if customer is not None and customer.order_emails_enabled is False:
            delivery.mark_skipped()
            repo.add(delivery)
            logger.info("Skipped order confirmation (opted out)", order_id=str(order.id), recipient=recipient)
            return MailResult(status=SKIPPED, reason="Customer opted out")

        message = OrderConfirmationTemplate.render(self._context(order, customer))
        return self._deliver(repo, delivery, message)

    def send_vendor_new_order(self, order_id) -> MailResult:
        order = current_domain.repository_for(Order).get(order_id)
        shop = current_domain.repository_for(Shop).get(order.shop_id)

        if not shop.email:
            logger.warning("No vendor email for new order", order_id=str(order.id), shop_id=str(shop.id))
            return MailResult(status=FAILED, error="Vendor email not found")

        repo = current_domain.repository_for(EmailDelivery)
        delivery, finished = self._claim(
            repo, vendor_new_order_key(order.id, shop.email), DeliveryType.VENDOR_NEW_ORDER, order, shop.email
        )
        if finished is not None:
            return finished

        if shop.enable_notifications is False:
            delivery.mark_skipped()
            repo.add(delivery)
            logger.info("Skipped vendor new-order email (opted out)", order_id=str(order.id), shop_id=str(shop.id))
            return MailResult(status=SKIPPED, reason="Vendor opted out")

        customer = self._customer(order)
        context = {
            **self._context(order, customer),
            "shop_name": shop.name,
            "shop_slug": shop.slug,
            "customer_name": order.customer_name or (customer.name if customer else None),
            "customer_email": self._recipient(order, customer),
            "order_date": _long_date(order.created_at),
        }
        return self._deliver(repo, delivery, VendorNewOrderTemplate.render(context))

    def _claim(self, repo, key, delivery_type, order, recipient):
        """Claim the delivery row for ``key``.

        Returns ``(delivery, result)``; ``result`` is set when nothing more
        should be sent.
        """
        delivery, created = repo.record_if_absent(
            key,
            delivery_type=delivery_type.value,
            order_id=str(order.id),
            shop_id=str(order.shop_id),
            recipient=recipient,
            status=DeliveryStatus.PROCESSING.value,
        )
        if not created:
            if delivery.is_sent:
                return delivery, MailResult(status=ALREADY_SENT, message_id=delivery.provider_message_id)
            if delivery.status == DeliveryStatus.FAILED.value and delivery.attempts >= self.max_attempts:
                return delivery, MailResult(status=FAILED, error="Max delivery attempts reached")
        return delivery, None

    def _deliver(self, repo, delivery, message) -> MailResult:
        error = "Max delivery attempts reached"
        while delivery.attempts < self.max_attempts:
            delay_ms = retry_delay_ms(delivery.attempts + 1)
            if delay_ms > 0:
                self.sleep(delay_ms / 1000)

            delivery.start_attempt()
            repo.add(delivery)

            try:
                result = self.channel.send(
                    to=delivery.recipient,
                    subject=message["subject"],
                    body=message["body"],
                    html_body=message.get("html_body"),
                )
            except Exception as exc:
                result = {"status": FAILED, "error": str(exc)}

            if result.get("status") == SENT:
                delivery.mark_sent(result.get("message_id"))
                repo.add(delivery)
                logger.info(
                    "Sent order email",
                    delivery_type=delivery.delivery_type,
                    order_id=str(delivery.order_id),
                    recipient=delivery.recipient,
                    attempts=delivery.attempts,
                )
                return MailResult(status=SENT, message_id=result.get("message_id"))

            error = result.get("error") or "Unknown email error"
            delivery.mark_failed(error)
            repo.add(delivery)
            logger.error(
                "Failed order email",
                delivery_type=delivery.delivery_type,
                order_id=str(delivery.order_id),
                recipient=delivery.recipient,
                error=error,
                attempt=delivery.attempts,
                max_attempts=self.max_attempts,
            )

        return MailResult(status=FAILED, error=error)

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    @staticmethod
    def _customer(order) -> Customer | None:
        if not order.user_id:
            return None
        try:
            return current_domain.repository_for(Customer).get(order.user_id)
        except ObjectNotFoundError:
            return None

    @staticmethod
    def _recipient(order, customer) -> str | None:
        if customer is not None and customer.email:
            return customer.email
        if order.guest_email:
            return order.guest_email
        if order.shipping_address is not None:
            return order.shipping_address.email
        return None

    @staticmethod
    def _context(order, customer) -> dict:
        shipping = order.shipping_address
        try:
            shop_name = current_domain.repository_for(Shop).get(order.shop_id).name
        except ObjectNotFoundError:
            shop_name = None

        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "customer_name": (shipping.first_name if shipping else None) or (customer.name if customer else None),
            "shop_name": shop_name,
            "items": [
                {
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total_price": item.total_price,
                }
                for item in order.items
            ],
            "subtotal": order.subtotal,
            "discount_amount": order.discount_amount,
            "tax_amount": order.tax_amount,
            "shipping_amount": order.shipping_amount,
            "total_amount": order.total_amount,
            "shipping_address": shipping.to_dict() if shipping else {},
        }
