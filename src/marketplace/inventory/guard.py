"""Inventory Guard — stock reservation and release.

``reserve`` loads the product, takes the units off its counter and saves it
back under the aggregate's version check. When another writer saved the
product in between, the save raises ``ExpectedVersionError`` and the guard
reloads and tries again, so two checkouts racing for the last unit cannot
both win. Inside a unit of work the conflict surfaces at commit instead, and
the handler's own version retry reruns it. ``release`` is the compensating
increment used by failed checkouts and cancellations. Products that do not
track stock pass through both untouched.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.catalogue.product import Product

logger = structlog.get_logger(__name__)

MAX_SAVE_ATTEMPTS = 5


@dataclass(frozen=True)
class StockRequest:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class Reservation:
    """Outcome of a reserve or release call."""

    product_id: str
    quantity: int
    tracked: bool
    remaining: int | None = None
    low_stock_threshold: int | None = None

    @property
    def is_low(self) -> bool:
        if not self.tracked or self.remaining is None or self.low_stock_threshold is None:
            return False
        return self.remaining <= self.low_stock_threshold


class InventoryGuard:
    def __init__(self, repository=None):
        self._repository = repository

    @property
    def repository(self):
        if self._repository is None:
            return current_domain.repository_for(Product)
        return self._repository

    def reserve(self, product_id, quantity: int) -> Reservation:
        """Decrement stock by ``quantity`` or raise ``OutOfStock``."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        for _ in range(MAX_SAVE_ATTEMPTS):
            product = self.repository.get(str(product_id))
            if not product.tracks_stock:
                return Reservation(product_id=str(product_id), quantity=quantity, tracked=False)

            product.reserve(quantity)
            try:
                self.repository.add(product)
            except ExpectedVersionError:
                logger.debug("Stock changed during reservation, retrying", product_id=str(product_id))
                continue

            return Reservation(
                product_id=str(product_id),
                quantity=quantity,
                tracked=True,
                remaining=product.stock,
                low_stock_threshold=product.low_stock_threshold,
            )

        raise ValidationError({"stock": [f"Stock for product {product_id} is changing too fast, please retry"]})

    def release(self, product_id, quantity: int) -> Reservation:
        """Return ``quantity`` units to stock.

        Callers guarantee a release happens once per reserved order item.
        """
        for _ in range(MAX_SAVE_ATTEMPTS):
            try:
                product = self.repository.get(str(product_id))
            except ObjectNotFoundError:
                logger.warning("Product missing on release, skipping", product_id=str(product_id))
                return Reservation(product_id=str(product_id), quantity=quantity, tracked=False)

            if not product.tracks_stock:
                return Reservation(product_id=str(product_id), quantity=quantity, tracked=False)

            product.release(quantity)
            try:
                self.repository.add(product)
            except ExpectedVersionError:
                logger.debug("Stock changed during release, retrying", product_id=str(product_id))
                continue

            return Reservation(
                product_id=str(product_id),
                quantity=quantity,
                tracked=True,
                remaining=product.stock,
                low_stock_threshold=product.low_stock_threshold,
            )

        raise ValidationError({"stock": [f"Could not release stock for product {product_id}, please retry"]})

    def reserve_all(self, requests: list[StockRequest]) -> list[Reservation]:
        """Reserve every request or none of them.

        On the first failure every reservation already made in this call is
        released before the error propagates.
        """
        made: list[Reservation] = []
        try:
            for request in requests:
                made.append(self.reserve(request.product_id, request.quantity))
        except ValidationError:
            for reservation in reversed(made):
                if reservation.tracked:
                    self.release(reservation.product_id, reservation.quantity)
            logger.info(
                "Reservation failed, compensated earlier reservations",
                released=len([r for r in made if r.tracked]),
            )
            raise
        return made
