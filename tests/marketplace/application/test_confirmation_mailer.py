"""Application tests for the order confirmation mailer."""

import pytest
from marketplace.ledger.email_delivery import EmailDelivery
from marketplace.ledger.mailer import ConfirmationMailer, retry_delay_ms
from marketplace.payment.payment import Payment
from protean import current_domain


@pytest.fixture
def order_id(seed, checkout_service, address):
    shop = seed.shop("Paper Co")
    notebook = seed.product(shop, 20.0, stock=5, name="Notebook")
    shipping = seed.shipping(shop, 5.0)
    cart_id = seed.cart((notebook, 2), guest_token="guest-abc")
    return checkout_service.checkout(cart_id, shipping, address, guest_email="guest@example.com").order_ids[0]


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def mailer(mailbox, sleeps):
    return ConfirmationMailer(channel=mailbox, sleep=sleeps.append, max_attempts=3)


def _deliveries(order_id):
    return current_domain.repository_for(EmailDelivery).for_order(order_id)


class TestRetryDelay:
    def test_backoff_doubles_and_caps(self):
        assert retry_delay_ms(1, base_ms=250, cap_ms=2000) == 0
        assert retry_delay_ms(2, base_ms=250, cap_ms=2000) == 250
        assert retry_delay_ms(3, base_ms=250, cap_ms=2000) == 500
        assert retry_delay_ms(6, base_ms=250, cap_ms=2000) == 2000


class TestSendOrderConfirmation:
    def test_sends_to_guest_email(self, mailer, mailbox, order_id):
        result = mailer.send_order_confirmation(order_id)

        assert result.status == "sent"
        assert len(mailbox.sent_emails) == 1
        email = mailbox.sent_emails[0]
        assert email["to"] == "guest@example.com"
        assert email["subject"].startswith("Order Confirmed - ORD-")
        assert "Notebook" in email["body"]
        assert f"track-order?orderId={order_id}" in email["body"]

        (delivery,) = _deliveries(order_id)
        assert delivery.status == "sent"
        assert delivery.attempts == 1

    def test_second_send_is_a_noop(self, mailer, mailbox, order_id):
        mailer.send_order_confirmation(order_id)
        result = mailer.send_order_confirmation(order_id)

        assert result.status == "already_sent"
        assert len(mailbox.sent_emails) == 1
        assert mailbox.attempts == 1

    def test_retries_with_backoff(self, mailer, mailbox, order_id, sleeps):
        mailbox.configure(fail_times=2)

        result = mailer.send_order_confirmation(order_id)

        assert result.status == "sent"
        assert mailbox.attempts == 3
        assert sleeps == [0.25, 0.5]
        assert _deliveries(order_id)[0].attempts == 3

    def test_gives_up_after_max_attempts(self, mailer, mailbox, order_id):
        mailbox.configure(should_succeed=False, failure_reason="SMTP down")

        result = mailer.send_order_confirmation(order_id)
        assert result.status == "failed"
        assert result.error == "SMTP down"

        again = mailer.send_order_confirmation(order_id)
        assert again.status == "failed"
        assert mailbox.attempts == 3
        (delivery,) = _deliveries(order_id)
        assert delivery.status == "failed"
        assert delivery.last_error == "SMTP down"

    def test_channel_exception_counts_as_failure(self, mailbox, order_id, sleeps):
        class ExplodingChannel:
            def send(self, **kwargs):
                raise ConnectionError("connection reset")

        result = ConfirmationMailer(channel=ExplodingChannel(), sleep=sleeps.append, max_attempts=2).send_order_confirmation(
            order_id
        )

        assert result.status == "failed"
        assert result.error == "connection reset"

    def test_opted_out_customer_is_skipped(self, seed, mailbox, sleeps, checkout_service, address):
        customer_id = seed.customer(email="quiet@example.com", order_emails_enabled=False)
        shop = seed.shop("Paper Co")
        notebook = seed.product(shop, 20.0, stock=5)
        shipping = seed.shipping(shop, 5.0)
        cart_id = seed.cart((notebook, 1), user_id=customer_id)
        order_id = checkout_service.checkout(cart_id, shipping, address).order_ids[0]

        result = ConfirmationMailer(channel=mailbox, sleep=sleeps.append).send_order_confirmation(order_id)

        assert result.status == "skipped"
        assert mailbox.sent_emails == []
        assert _deliveries(order_id)[0].status == "skipped"


class TestSendVendorNewOrder:
    def test_sends_to_shop_email(self, mailer, mailbox, order_id):
        result = mailer.send_vendor_new_order(order_id)

        assert result.status == "sent"
        email = mailbox.sent_emails[0]
        assert email["to"] == "paperco@shops.example.com"
        assert email["subject"].startswith("New Order ORD-")
        assert email["subject"].endswith(" - $47.00")
        assert "2 x Notebook  $40.00" in email["body"]
        assert "guest@example.com" in email["body"]
        assert f"/orders/{order_id}" in email["body"]
        deliveries = _deliveries(order_id)
        assert [(d.delivery_type, d.status) for d in deliveries] == [("vendor_new_order", "sent")]

    def test_second_send_is_a_noop(self, mailer, mailbox, order_id):
        mailer.send_vendor_new_order(order_id)
        second = mailer.send_vendor_new_order(order_id)

        assert second.status == "already_sent"
        assert len(mailbox.sent_emails) == 1

    def test_shop_that_opted_out_is_skipped(self, seed, mailer, mailbox, checkout_service, address):
        shop = seed.shop("Quiet Co", enable_notifications=False)
        notebook = seed.product(shop, 20.0, stock=5)
        shipping = seed.shipping(shop, 5.0)
        cart_id = seed.cart((notebook, 1), guest_token="guest-quiet")
        order_id = checkout_service.checkout(cart_id, shipping, address, guest_email="guest@example.com").order_ids[0]

        result = mailer.send_vendor_new_order(order_id)

        assert result.status == "skipped"
        assert mailbox.sent_emails == []
        assert _deliveries(order_id)[0].status == "skipped"

    def test_confirmed_order_emails_customer_and_vendor(self, mailbox, order_id, gateway, checkout_service):
        authorization_id = current_domain.repository_for(Payment).for_order(order_id)[0].authorization_id
        gateway.settle(authorization_id)

        checkout_service.confirm_payment(authorization_id)

        assert sorted(e["to"] for e in mailbox.sent_emails) == ["guest@example.com", "paperco@shops.example.com"]
