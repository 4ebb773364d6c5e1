"""Order lookups used by checkout, settlement and cancellation."""

from marketplace.domain import marketplace
from marketplace.order.order import Order


@marketplace.repository(part_of=Order)
class OrderRepository:
    def for_checkout(self, checkout_id) -> list[Order]:
        return self._dao.query.filter(checkout_id=str(checkout_id)).all().items

    def by_ids(self, order_ids) -> list[Order]:
        ids = [str(order_id) for order_id in order_ids]
        if not ids:
            return []
        found = {str(order.id): order for order in self._dao.query.filter(id__in=ids).all().items}
        return [found[order_id] for order_id in ids if order_id in found]

    def for_shop(self, shop_id, status=None) -> list[Order]:
        if status:
            return self._dao.query.filter(shop_id=str(shop_id), status=status).all().items
        return self._dao.query.filter(shop_id=str(shop_id)).all().items
