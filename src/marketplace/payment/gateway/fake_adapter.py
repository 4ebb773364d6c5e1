"""Configurable fake payment gateway for development and testing.

Simulates PaymentIntents, refunds and connected accounts in memory. Every
call is recorded in ``calls`` for assertions. Authorizations are created in
``requires_payment_method`` and move to ``succeeded`` only when ``settle()``
is called, the way a customer completing payment would.
"""

import json
from uuid import uuid4

from marketplace.errors import PaymentGatewayError
from marketplace.payment.gateway.port import (
    AccountStatus,
    Authorization,
    AuthorizationStatus,
    PaymentGateway,
    RefundResult,
)

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    provider = "fake"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.failure_code: str | None = "card_declined"
        self.destination_failure_code: str | None = None
        self.refund_should_succeed: bool = True
        self.intents: dict[str, dict] = {}
        self.accounts: dict[str, AccountStatus] = {}
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        failure_code: str | None = "card_declined",
        destination_failure_code: str | None = None,
        refund_should_succeed: bool = True,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failure_code = failure_code
        self.destination_failure_code = destination_failure_code
        self.refund_should_succeed = refund_should_succeed

    # -------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------
    def register_account(
        self,
        account_id: str,
        charges_enabled: bool = True,
        payouts_enabled: bool = True,
        details_submitted: bool = True,
    ) -> None:
        self.accounts[account_id] = AccountStatus(
            charges_enabled=charges_enabled,
            payouts_enabled=payouts_enabled,
            details_submitted=details_submitted,
        )

    def settle(self, authorization_id: str, status: str = "succeeded") -> None:
        """Move an authorization to ``status`` as if the customer completed payment."""
        self.intents[authorization_id]["status"] = status
        if status == "succeeded":
            self.intents[authorization_id]["latest_charge"] = f"fake_ch_{uuid4().hex[:12]}"

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def _new_intent(self, amount_minor, currency, metadata, **extra) -> Authorization:
        if not self.should_succeed:
            raise PaymentGatewayError(self.failure_reason, code=self.failure_code)

        intent_id = f"fake_pi_{uuid4().hex[:16]}"
        client_secret = f"{intent_id}_secret_{uuid4().hex[:8]}"
        self.intents[intent_id] = {
            "amount": amount_minor,
            "currency": currency,
            "metadata": dict(metadata),
            "status": "requires_payment_method",
            "latest_charge": None,
            "refunded": 0,
            "client_secret": client_secret,
            **extra,
        }
        return Authorization(
            id=intent_id,
            client_secret=client_secret,
            status="requires_payment_method",
            amount=amount_minor,
        )

    def create_authorization(self, amount_minor, currency, metadata):
        self.calls.append(
            {"method": "create_authorization", "amount": amount_minor, "currency": currency, "metadata": dict(metadata)}
        )
        return self._new_intent(amount_minor, currency, metadata)

    def create_destination_charge(self, amount_minor, currency, connected_account_id, application_fee_minor, metadata):
        self.calls.append(
            {
                "method": "create_destination_charge",
                "amount": amount_minor,
                "currency": currency,
                "connected_account_id": connected_account_id,
                "application_fee": application_fee_minor,
                "metadata": dict(metadata),
            }
        )
        if self.destination_failure_code:
            raise PaymentGatewayError(
                "Destination account cannot receive transfers",
                code=self.destination_failure_code,
            )
        return self._new_intent(
            amount_minor,
            currency,
            metadata,
            destination=connected_account_id,
            application_fee=application_fee_minor,
        )

    def get_authorization(self, authorization_id):
        self.calls.append({"method": "get_authorization", "authorization_id": authorization_id})
        intent = self.intents.get(authorization_id)
        if intent is None:
            raise PaymentGatewayError(f"No such payment_intent: {authorization_id}", code="resource_missing", retryable=False)
        return self._status(authorization_id, intent)

    def cancel_authorization(self, authorization_id):
        self.calls.append({"method": "cancel_authorization", "authorization_id": authorization_id})
        intent = self.intents.get(authorization_id)
        if intent is None:
            raise PaymentGatewayError(f"No such payment_intent: {authorization_id}", code="resource_missing", retryable=False)
        if intent["status"] in ("succeeded", "processing", "canceled"):
            raise PaymentGatewayError(
                f"This PaymentIntent's status is {intent['status']} and it cannot be canceled",
                code="payment_intent_unexpected_state",
                retryable=False,
            )
        intent["status"] = "canceled"
        return self._status(authorization_id, intent)

    @staticmethod
    def _status(authorization_id, intent) -> AuthorizationStatus:
        return AuthorizationStatus(
            id=authorization_id,
            status=intent["status"],
            amount=intent["amount"],
            metadata=dict(intent["metadata"]),
            latest_charge=intent["latest_charge"],
            client_secret=intent["client_secret"],
        )

    def refund(self, authorization_id, amount_minor=None, reverse_transfer=False):
        self.calls.append(
            {
                "method": "refund",
                "authorization_id": authorization_id,
                "amount": amount_minor,
                "reverse_transfer": reverse_transfer,
            }
        )
        if not self.refund_should_succeed:
            raise PaymentGatewayError("Refund failed", code="refund_failed")

        intent = self.intents.get(authorization_id)
        if intent is not None:
            intent["refunded"] += amount_minor if amount_minor is not None else intent["amount"]
        return RefundResult(refund_id=f"fake_re_{uuid4().hex[:12]}", status="succeeded", amount=amount_minor)

    def get_account_status(self, account_id):
        self.calls.append({"method": "get_account_status", "account_id": account_id})
        status = self.accounts.get(account_id)
        if status is None:
            raise PaymentGatewayError(f"No such account: {account_id}", code="resource_missing", retryable=False)
        return status

    def create_connected_account(self, email):
        self.calls.append({"method": "create_connected_account", "email": email})
        account_id = f"acct_fake_{uuid4().hex[:10]}"
        self.register_account(account_id, charges_enabled=False, payouts_enabled=False, details_submitted=False)
        return account_id

    def parse_webhook(self, payload, signature):
        if signature != TEST_SIGNATURE:
            raise PaymentGatewayError("Invalid webhook signature", code="invalid_signature", retryable=False)
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)
