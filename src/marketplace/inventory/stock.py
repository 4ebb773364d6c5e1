"""Product repository used by the Inventory Guard."""

from marketplace.catalogue.product import Product
from marketplace.domain import marketplace


@marketplace.repository(part_of=Product)
class ProductRepository:
    """Product repository with direct reads of the stock counter.

    Stock reads go straight to the DAO so that a product loaded earlier in
    the same unit of work can never hand back a stale counter.
    """

    def current_stock(self, product_id) -> Product:
        return self._dao.get(str(product_id))

    def find_by_ids(self, product_ids) -> dict[str, Product]:
        ids = list({str(pid) for pid in product_ids})
        if not ids:
            return {}
        products = self._dao.query.filter(id__in=ids).all().items
        return {str(product.id): product for product in products}
