"""Shop — a vendor storefront and its connected payment sub-account."""

from decimal import Decimal

from protean.fields import Boolean, Float, Identifier, String

from marketplace import settings
from marketplace.domain import marketplace


@marketplace.aggregate
class Shop:
    name = String(required=True, max_length=255)
    slug = String(max_length=255)
    owner_id = Identifier()
    email = String(max_length=255)
    enable_notifications = Boolean(default=True)  # vendor emails on new orders

    # Connected account state, mirrored from the payment processor
    stripe_account_id = String(max_length=255)
    charges_enabled = Boolean(default=False)
    payouts_enabled = Boolean(default=False)
    details_submitted = Boolean(default=False)

    # None falls back to the platform default
    commission_rate = Float(min_value=0.0, max_value=1.0)

    def link_account(self, account_id):
        self.stripe_account_id = account_id
        self.charges_enabled = False
        self.payouts_enabled = False
        self.details_submitted = False

    def update_account_status(self, charges_enabled, payouts_enabled, details_submitted):
        self.charges_enabled = bool(charges_enabled)
        self.payouts_enabled = bool(payouts_enabled)
        self.details_submitted = bool(details_submitted)

    def effective_commission_rate(self) -> Decimal:
        if self.commission_rate is None:
            return settings.commission_rate()
        return Decimal(str(self.commission_rate))
