"""Payment aggregate — one order's claim on a processor authorization.

Every order created by a checkout gets its own Payment carrying that order's
total. Orders of one checkout share a single authorization id, so the
amounts across the group add up to the authorization total.

State Machine:
    PENDING → SUCCEEDED → REFUNDED
    PENDING → FAILED → SUCCEEDED (a later attempt went through)
    PENDING / FAILED → CANCELED (voided at the processor)
    CANCELED → SUCCEEDED (captured before the void landed; refunded on settlement)
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


class PaymentState(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"


class ChargeType(Enum):
    DESTINATION = "destination"
    PLATFORM = "platform"


_VALID_TRANSITIONS = {
    PaymentState.PENDING: {PaymentState.SUCCEEDED, PaymentState.FAILED, PaymentState.CANCELED},
    PaymentState.FAILED: {PaymentState.SUCCEEDED, PaymentState.CANCELED},
    PaymentState.CANCELED: {PaymentState.SUCCEEDED},
    PaymentState.SUCCEEDED: {PaymentState.REFUNDED},
    PaymentState.REFUNDED: set(),  # Terminal
}


@marketplace.aggregate
class Payment:
    order_id = Identifier(required=True)
    checkout_id = Identifier()
    authorization_id = String(required=True, max_length=255)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="usd")
    status = String(choices=PaymentState, default=PaymentState.PENDING.value)
    provider = String(max_length=50, default="stripe")
    method = String(max_length=50, default="card")
    charge_type = String(choices=ChargeType, default=ChargeType.PLATFORM.value)
    connected_account_id = String(max_length=255)
    application_fee_amount = Float(min_value=0.0)
    transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    refund_id = String(max_length=255)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(
        cls,
        order_id,
        authorization_id,
        amount,
        currency="usd",
        checkout_id=None,
        charge_type=ChargeType.PLATFORM.value,
        connected_account_id=None,
        application_fee_amount=None,
        provider="stripe",
    ):
        now = datetime.now(UTC)
        return cls(
            order_id=order_id,
            checkout_id=checkout_id,
            authorization_id=authorization_id,
            amount=amount,
            currency=currency,
            status=PaymentState.PENDING.value,
            provider=provider,
            method="card",
            charge_type=charge_type,
            connected_account_id=connected_account_id,
            application_fee_amount=application_fee_amount,
            created_at=now,
            updated_at=now,
        )

    def _transition(self, target):
        current = PaymentState(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition payment from {current.value} to {target.value}"]})
        self.status = target.value
        self.updated_at = datetime.now(UTC)

    def mark_succeeded(self, transaction_id=None):
        """Record capture. Returns False when already captured or refunded."""
        if PaymentState(self.status) in (PaymentState.SUCCEEDED, PaymentState.REFUNDED):
            return False
        self._transition(PaymentState.SUCCEEDED)
        self.transaction_id = transaction_id or self.authorization_id
        self.failure_reason = None
        return True

    def mark_failed(self, reason):
        if PaymentState(self.status) != PaymentState.PENDING:
            return False
        self._transition(PaymentState.FAILED)
        self.failure_reason = reason
        return True

    def cancel(self, reason):
        """Void a payment that never captured. Returns False otherwise."""
        if PaymentState(self.status) not in (PaymentState.PENDING, PaymentState.FAILED):
            return False
        self._transition(PaymentState.CANCELED)
        self.failure_reason = reason
        return True

    @property
    def is_open(self) -> bool:
        return PaymentState(self.status) in (PaymentState.PENDING, PaymentState.FAILED)

    def mark_refunded(self, refund_id):
        self._transition(PaymentState.REFUNDED)
        self.refund_id = refund_id
