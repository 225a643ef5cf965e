"""
Server-side menu: the source of truth for pricing.

Client carts carry item ids and quantities only as far as pricing is
concerned; any price a client sends is ignored. Line snapshots copy name and
unit price at order time so later menu edits never touch existing orders.
"""
from dataclasses import dataclass
from typing import Any, Dict, List

from kiosk_orders.core.exceptions import InvalidQuantity, UnknownItem


@dataclass(frozen=True)
class CatalogItem:
    """A sellable menu item. Prices are whole SEK."""

    id: str
    name: str
    price: int
    category_id: str


@dataclass(frozen=True)
class LineSnapshot:
    """Immutable copy of a catalog item as ordered."""

    menu_item_id: str
    name: str
    quantity: int
    price_at_order: int
    category_id: str

    @property
    def line_total(self) -> int:
        return self.quantity * self.price_at_order

    def to_dict(self) -> Dict[str, Any]:
        return {
            "menuItemId": self.menu_item_id,
            "name": self.name,
            "quantity": self.quantity,
            "priceAtOrder": self.price_at_order,
        }


MENU_ITEMS: List[CatalogItem] = [
    # Nytt
    CatalogItem("choklad_glass", "Mjukglass med chokladtomte", 12, "nytt"),
    # Varm mat
    CatalogItem("hotdog_classic", "Kokt varmkorv", 5, "varm_mat"),
    CatalogItem("veggie_dog", "Veggie hotdog", 5, "varm_mat"),
    CatalogItem("grilled_sausage", "Grillad wienerkorv i bröd", 12, "varm_mat"),
    CatalogItem("pizza", "Surdegspizza", 12, "varm_mat"),
    # Toppings
    CatalogItem("onion", "Rostad lök", 2, "toppings"),
    CatalogItem("cabbage", "Picklad rödkål", 3, "toppings"),
    # Fika/Glass
    CatalogItem("icecream_basic", "Mjukglass", 7, "fika_glass"),
    CatalogItem("coffee", "Kaffe", 9, "fika_glass"),
    CatalogItem("kanelbulle", "Kanelbulle", 5, "fika_glass"),
    # Kall dryck
    CatalogItem("fountain_drink", "Dryck i mugg", 10, "kall_dryck"),
    CatalogItem("iskub_cola", "ISKUB Cola", 19, "kall_dryck"),
    CatalogItem("iskub_orange", "ISKUB Apelsin", 19, "kall_dryck"),
]


class Catalog:
    """Read-only price list keyed by item id."""

    def __init__(self, items: List[CatalogItem] = MENU_ITEMS):
        self.items = list(items)
        self._by_id = {item.id: item for item in self.items}

    def get(self, item_id: str) -> CatalogItem | None:
        return self._by_id.get(item_id)

    def first_in_category(self, category_id: str) -> CatalogItem | None:
        return next((item for item in self.items if item.category_id == category_id), None)

    def price_and_validate(self, item_id: str, quantity: Any) -> LineSnapshot:
        """
        Price one cart line against the catalog.

        Args:
            item_id: Catalog item id
            quantity: Requested quantity

        Returns:
            LineSnapshot: Name and unit price as of now

        Raises:
            InvalidQuantity: If quantity is not an integer >= 1
            UnknownItem: If the id is not on the menu
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantity(quantity)

        item = self._by_id.get(item_id)
        if item is None:
            raise UnknownItem(item_id)

        return LineSnapshot(
            menu_item_id=item.id,
            name=item.name,
            quantity=quantity,
            price_at_order=item.price,
            category_id=item.category_id,
        )

    def to_list(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": item.id,
                "name": item.name,
                "price": item.price,
                "categoryId": item.category_id,
            }
            for item in self.items
        ]

