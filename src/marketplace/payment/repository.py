"""Payment lookups by authorization and by order."""

from marketplace.domain import marketplace
from marketplace.payment.payment import Payment, PaymentState


@marketplace.repository(part_of=Payment)
class PaymentRepository:
    def for_authorization(self, authorization_id) -> list[Payment]:
        return self._dao.query.filter(authorization_id=authorization_id).all().items

    def for_order(self, order_id) -> list[Payment]:
        return self._dao.query.filter(order_id=str(order_id)).all().items

    def captured_for_order(self, order_id, authorization_id=None) -> Payment | None:
        query = self._dao.query.filter(order_id=str(order_id), status=PaymentState.SUCCEEDED.value)
        if authorization_id:
            query = query.filter(authorization_id=authorization_id)
        return query.all().first

    def open_for_orders(self, order_ids) -> list[Payment]:
        """Pending or failed payments whose authorization may still capture."""
        ids = [str(order_id) for order_id in order_ids]
        return [payment for payment in self._dao.query.filter(order_id__in=ids).all().items if payment.is_open]
