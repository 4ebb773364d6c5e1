"""Payment gateway port (abstract interface).

The narrow processor contract the engine depends on: create an
authorization (plain or destination charge), read its live status, cancel
or refund it, and query or create connected vendor accounts. Failures are raised as
``PaymentGatewayError`` carrying the processor's error code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Authorization:
    """A processor-side payment authorization (a Stripe PaymentIntent)."""

    id: str
    client_secret: str | None
    status: str
    amount: int


@dataclass(frozen=True)
class AuthorizationStatus:
    id: str
    status: str
    amount: int
    metadata: dict = field(default_factory=dict)
    latest_charge: str | None = None
    client_secret: str | None = None


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str
    amount: int | None = None


@dataclass(frozen=True)
class AccountStatus:
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    provider: str = "unknown"

    @abstractmethod
    def create_authorization(self, amount_minor: int, currency: str, metadata: dict) -> Authorization:
        """Create a platform-collected authorization for the full amount."""
        ...

    @abstractmethod
    def create_destination_charge(
        self,
        amount_minor: int,
        currency: str,
        connected_account_id: str,
        application_fee_minor: int,
        metadata: dict,
    ) -> Authorization:
        """Create an authorization whose funds, less the fee, go to a connected account."""
        ...

    @abstractmethod
    def get_authorization(self, authorization_id: str) -> AuthorizationStatus:
        """Read the processor's live status for an authorization."""
        ...

    @abstractmethod
    def cancel_authorization(self, authorization_id: str) -> AuthorizationStatus:
        """Void an authorization that has not captured money yet."""
        ...

    @abstractmethod
    def refund(
        self,
        authorization_id: str,
        amount_minor: int | None = None,
        reverse_transfer: bool = False,
    ) -> RefundResult:
        """Refund captured money, in full or for ``amount_minor``."""
        ...

    @abstractmethod
    def get_account_status(self, account_id: str) -> AccountStatus:
        ...

    @abstractmethod
    def create_connected_account(self, email: str) -> str:
        ...

    @abstractmethod
    def parse_webhook(self, payload: bytes | str, signature: str) -> dict:
        """Verify a webhook signature and return the decoded event."""
        ...
