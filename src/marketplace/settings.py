"""Business policy settings, read from the environment.

Protean infrastructure (providers, brokers, processing mode) lives in
``domain.toml``; this module only holds marketplace policy knobs.
"""

import os
from decimal import Decimal


def _decimal(name: str, default: str) -> Decimal:
    return Decimal(os.getenv(name, default))


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def tax_rate() -> Decimal:
    """Flat platform tax rate applied to (subtotal - discount)."""
    return _decimal("MARKETPLACE_TAX_RATE", "0.05")


def commission_rate() -> Decimal:
    """Default platform commission for destination charges."""
    return _decimal("MARKETPLACE_COMMISSION_RATE", "0.20")


def currency() -> str:
    return os.getenv("MARKETPLACE_CURRENCY", "usd").lower()


def shipping_policy() -> str:
    """``owner_only`` charges shipping to the shop owning the method only;
    ``per_shop`` charges the method's price to every shop group."""
    return os.getenv("MARKETPLACE_SHIPPING_POLICY", "owner_only")


def email_max_attempts() -> int:
    return _int("MARKETPLACE_EMAIL_MAX_ATTEMPTS", 3)


def email_retry_base_ms() -> int:
    return _int("MARKETPLACE_EMAIL_RETRY_BASE_MS", 250)


def email_retry_cap_ms() -> int:
    return _int("MARKETPLACE_EMAIL_RETRY_CAP_MS", 2000)


def payment_gateway() -> str:
    return os.getenv("PAYMENT_GATEWAY", "fake").lower()


def base_url() -> str:
    return os.getenv("MARKETPLACE_BASE_URL", "http://localhost:3000").rstrip("/")
