"""Tests for the Payment aggregate state machine."""

import pytest
from marketplace.payment.payment import ChargeType, Payment, PaymentState
from protean.exceptions import ValidationError


def _payment():
    return Payment.open(order_id="order-001", authorization_id="pi_001", amount=41.5, provider="fake")


class TestPaymentLifecycle:
    def test_opens_pending(self):
        payment = _payment()
        assert payment.status == PaymentState.PENDING.value
        assert payment.charge_type == ChargeType.PLATFORM.value
        assert payment.method == "card"

    def test_succeeds(self):
        payment = _payment()
        assert payment.mark_succeeded("ch_001") is True
        assert payment.status == PaymentState.SUCCEEDED.value
        assert payment.transaction_id == "ch_001"

    def test_transaction_id_defaults_to_authorization(self):
        payment = _payment()
        payment.mark_succeeded()
        assert payment.transaction_id == "pi_001"

    def test_second_success_is_noop(self):
        payment = _payment()
        payment.mark_succeeded("ch_001")
        assert payment.mark_succeeded("ch_002") is False
        assert payment.transaction_id == "ch_001"

    def test_failed_then_succeeded(self):
        payment = _payment()
        payment.mark_failed("Card declined")
        assert payment.status == PaymentState.FAILED.value
        assert payment.mark_succeeded("ch_001") is True
        assert payment.failure_reason is None

    def test_fail_only_from_pending(self):
        payment = _payment()
        payment.mark_succeeded()
        assert payment.mark_failed("late failure") is False
        assert payment.status == PaymentState.SUCCEEDED.value

    def test_refund_requires_success(self):
        payment = _payment()
        with pytest.raises(ValidationError):
            payment.mark_refunded("re_001")

    def test_refund(self):
        payment = _payment()
        payment.mark_succeeded()
        payment.mark_refunded("re_001")
        assert payment.status == PaymentState.REFUNDED.value
        assert payment.refund_id == "re_001"


class TestPaymentVoid:
    def test_cancel_pending(self):
        payment = _payment()
        assert payment.cancel("Superseded by a new authorization") is True
        assert payment.status == PaymentState.CANCELED.value
        assert payment.is_open is False

    def test_cancel_failed(self):
        payment = _payment()
        payment.mark_failed("Card declined")
        assert payment.cancel("Order cancelled") is True
        assert payment.failure_reason == "Order cancelled"

    def test_cannot_cancel_captured(self):
        payment = _payment()
        payment.mark_succeeded()
        assert payment.cancel("too late") is False
        assert payment.status == PaymentState.SUCCEEDED.value

    def test_late_capture_after_void_is_recorded(self):
        payment = _payment()
        payment.cancel("Order cancelled")
        assert payment.mark_succeeded("ch_late") is True
        assert payment.status == PaymentState.SUCCEEDED.value

    def test_success_after_refund_is_noop(self):
        payment = _payment()
        payment.mark_succeeded()
        payment.mark_refunded("re_001")
        assert payment.mark_succeeded("ch_again") is False
        assert payment.status == PaymentState.REFUNDED.value
