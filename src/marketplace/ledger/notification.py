"""Notification — an entry in a vendor's in-app inbox.

Each (shop, type, subject) pair yields at most one entry; the subject is
the order or product the notification is about.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.ledger import dedupe


class NotificationType(Enum):
    NEW_ORDER = "new_order"
    ORDER_STATUS_UPDATE = "order_status_update"
    NEW_REVIEW = "new_review"
    LOW_STOCK = "low_stock"
    PAYOUT = "payout"
    SYSTEM = "system"


def notification_key(shop_id, notification_type, subject_id) -> str:
    return f"{shop_id}:{notification_type}:{subject_id}"


@marketplace.aggregate
class Notification:
    shop_id = Identifier(required=True)
    notification_type = String(required=True, choices=NotificationType)
    title = String(required=True, max_length=255)
    message = Text(required=True)
    order_id = Identifier()
    order_number = String(max_length=50)
    product_id = Identifier()
    amount = Float()
    link = String(max_length=500)
    dedupe_key = String(required=True, unique=True, max_length=500)
    is_read = Boolean(default=False)
    read_at = DateTime()
    created_at = DateTime(default=lambda: datetime.now(UTC))

    def mark_read(self):
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = datetime.now(UTC)
        return True


@marketplace.repository(part_of=Notification)
class NotificationRepository:
    def by_dedupe_key(self, dedupe_key):
        return dedupe.find_by_dedupe_key(self, dedupe_key)

    def record_if_absent(self, dedupe_key, **fields):
        return dedupe.record_if_absent(self, dedupe_key, **fields)

    def for_shop(self, shop_id, unread_only=False) -> list[Notification]:
        query = self._dao.query.filter(shop_id=str(shop_id))
        if unread_only:
            query = query.filter(is_read=False)
        return query.order_by("-created_at").all().items

    def unread_count(self, shop_id) -> int:
        return self._dao.query.filter(shop_id=str(shop_id), is_read=False).all().total


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@marketplace.command(part_of="Notification")
class MarkNotificationRead:
    shop_id = Identifier(required=True)
    notification_id = Identifier(required=True)


@marketplace.command(part_of="Notification")
class MarkAllNotificationsRead:
    shop_id = Identifier(required=True)


@marketplace.command_handler(part_of=Notification)
class NotificationInboxHandler:
    @handle(MarkNotificationRead)
    def mark_read(self, command):
        repo = current_domain.repository_for(Notification)
        notification = repo.get(command.notification_id)
        # Another shop's notification is reported as missing
        if str(notification.shop_id) != str(command.shop_id):
            return False
        if notification.mark_read():
            repo.add(notification)
        return True

    @handle(MarkAllNotificationsRead)
    def mark_all_read(self, command):
        repo = current_domain.repository_for(Notification)
        updated = 0
        for notification in repo.for_shop(command.shop_id, unread_only=True):
            notification.mark_read()
            repo.add(notification)
            updated += 1
        return updated
