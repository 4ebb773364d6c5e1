"""Customer — the authenticated buyer as seen by the order engine."""

from protean.fields import Boolean, String

from marketplace.domain import marketplace


@marketplace.aggregate
class Customer:
    email = String(required=True, max_length=255)
    name = String(max_length=255)
    order_emails_enabled = Boolean(default=True)
