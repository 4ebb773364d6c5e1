"""Stripe payment gateway adapter.

PaymentIntents back authorizations; destination charges use
``transfer_data.destination`` with an ``application_fee_amount`` kept by the
platform. The API key is passed per request so several gateways can coexist
in one process.
"""

import json

import stripe

from marketplace.errors import PaymentGatewayError
from marketplace.payment.gateway.port import (
    AccountStatus,
    Authorization,
    AuthorizationStatus,
    PaymentGateway,
    RefundResult,
)


def _gateway_error(exc: stripe.StripeError) -> PaymentGatewayError:
    retryable = isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError))
    return PaymentGatewayError(exc.user_message or str(exc), code=exc.code, retryable=retryable)


class StripeGateway(PaymentGateway):
    provider = "stripe"

    def __init__(self, api_key: str, webhook_secret: str) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _authorization(self, intent) -> Authorization:
        return Authorization(
            id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=intent.amount,
        )

    def create_authorization(self, amount_minor, currency, metadata):
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount_minor,
                currency=currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        return self._authorization(intent)

    def create_destination_charge(self, amount_minor, currency, connected_account_id, application_fee_minor, metadata):
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount_minor,
                currency=currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                application_fee_amount=application_fee_minor,
                transfer_data={"destination": connected_account_id},
            )
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        return self._authorization(intent)

    @staticmethod
    def _status(intent) -> AuthorizationStatus:
        return AuthorizationStatus(
            id=intent.id,
            status=intent.status,
            amount=intent.amount,
            metadata=dict(intent.metadata or {}),
            latest_charge=intent.latest_charge if isinstance(intent.latest_charge, str) else None,
            client_secret=intent.client_secret,
        )

    def get_authorization(self, authorization_id):
        try:
            intent = stripe.PaymentIntent.retrieve(authorization_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        return self._status(intent)

    def cancel_authorization(self, authorization_id):
        try:
            intent = stripe.PaymentIntent.cancel(authorization_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        return self._status(intent)

    def refund(self, authorization_id, amount_minor=None, reverse_transfer=False):
        params = {"payment_intent": authorization_id}
        if amount_minor is not None:
            params["amount"] = amount_minor
        if reverse_transfer:
            params["reverse_transfer"] = True
            params["refund_application_fee"] = True
        try:
            refund = stripe.Refund.create(api_key=self.api_key, **params)
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        return RefundResult(refund_id=refund.id, status=refund.status, amount=refund.amount)

    def get_account_status(self, account_id):
        try:
            account = stripe.Account.retrieve(account_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        return AccountStatus(
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
            details_submitted=bool(account.details_submitted),
        )

    def create_connected_account(self, email):
        try:
            account = stripe.Account.create(
                api_key=self.api_key,
                type="express",
                email=email,
                capabilities={"card_payments": {"requested": True}, "transfers": {"requested": True}},
            )
        except stripe.StripeError as exc:
            raise _gateway_error(exc) from exc
        return account.id

    def parse_webhook(self, payload, signature):
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise PaymentGatewayError("Invalid webhook signature", code="invalid_signature", retryable=False) from exc
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)
