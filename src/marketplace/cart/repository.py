"""Cart lookups by owner."""

from marketplace.cart.cart import Cart, CartLine
from marketplace.domain import marketplace


@marketplace.repository(part_of=Cart)
class CartRepository:
    def for_user(self, user_id) -> Cart | None:
        return self._dao.query.filter(user_id=str(user_id)).all().first

    def for_guest(self, guest_token) -> Cart | None:
        return self._dao.query.filter(guest_token=guest_token).all().first

    def remove(self, cart: Cart) -> None:
        """Delete the cart together with its lines."""
        line_dao = self._domain.repository_for(CartLine)._dao
        for line in list(cart.lines):
            line_dao.delete(line)
        self._dao.delete(cart)
