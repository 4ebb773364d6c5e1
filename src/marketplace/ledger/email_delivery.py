"""EmailDelivery — one row per (message kind, order, recipient).

The row is the idempotency record for transactional email: it is claimed
before the first send, and once it reads ``sent`` no further attempt is
made for the same key.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace
from marketplace.ledger import dedupe


class DeliveryStatus(Enum):
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeliveryType(Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    VENDOR_NEW_ORDER = "vendor_new_order"


def confirmation_key(order_id, recipient) -> str:
    return f"{DeliveryType.ORDER_CONFIRMATION.value}:{order_id}:{recipient}"


def vendor_new_order_key(order_id, recipient) -> str:
    return f"{DeliveryType.VENDOR_NEW_ORDER.value}:{order_id}:{recipient}"


@marketplace.aggregate
class EmailDelivery:
    dedupe_key = String(required=True, unique=True, max_length=500)
    delivery_type = String(choices=DeliveryType, default=DeliveryType.ORDER_CONFIRMATION.value)
    order_id = Identifier()
    shop_id = Identifier()
    recipient = String(required=True, max_length=255)
    status = String(choices=DeliveryStatus, default=DeliveryStatus.PROCESSING.value)
    attempts = Integer(default=0, min_value=0)
    provider_message_id = String(max_length=255)
    last_error = Text()
    last_attempt_at = DateTime()
    sent_at = DateTime()
    created_at = DateTime(default=lambda: datetime.now(UTC))
    updated_at = DateTime()

    @property
    def is_sent(self) -> bool:
        return self.status == DeliveryStatus.SENT.value

    def start_attempt(self):
        now = datetime.now(UTC)
        self.attempts = (self.attempts or 0) + 1
        self.status = DeliveryStatus.PROCESSING.value
        self.last_attempt_at = now
        self.last_error = None
        self.updated_at = now

    def mark_sent(self, provider_message_id=None):
        now = datetime.now(UTC)
        self.status = DeliveryStatus.SENT.value
        self.provider_message_id = provider_message_id
        self.last_error = None
        self.sent_at = self.last_attempt_at or now
        self.updated_at = now

    def mark_failed(self, error):
        self.status = DeliveryStatus.FAILED.value
        self.provider_message_id = None
        self.last_error = error
        self.updated_at = datetime.now(UTC)

    def mark_skipped(self):
        self.status = DeliveryStatus.SKIPPED.value
        self.last_error = None
        self.provider_message_id = None
        self.sent_at = None
        self.updated_at = datetime.now(UTC)


@marketplace.repository(part_of=EmailDelivery)
class EmailDeliveryRepository:
    def by_dedupe_key(self, dedupe_key):
        return dedupe.find_by_dedupe_key(self, dedupe_key)

    def record_if_absent(self, dedupe_key, **fields):
        return dedupe.record_if_absent(self, dedupe_key, **fields)

    def for_order(self, order_id) -> list[EmailDelivery]:
        return self._dao.query.filter(order_id=str(order_id)).all().items
