"""
Upsell suggestions.

Suggests at most one item per category from categories not already in the
cart. Categories that co-occur most with the cart come first; the static
pool fills any remaining slots.
"""
from typing import Any, Dict, List, Optional, Sequence

from kiosk_orders.catalog.menu import Catalog, CatalogItem
from kiosk_orders.database.store import OrderStore

MAX_SUGGESTIONS = 3
STATIC_UPSELL_IDS = ("kanelbulle", "coffee", "fountain_drink", "icecream_basic")


def suggestion_dict(item: CatalogItem) -> Dict[str, Any]:
    return {
        "itemId": item.id,
        "name": item.name,
        "price": item.price,
        "categoryId": item.category_id,
    }


class UpsellService:
    def __init__(self, store: OrderStore, catalog: Optional[Catalog] = None) -> None:
        self.store = store
        self.catalog = catalog or Catalog()

    async def suggestions(self, cart_category_ids: Sequence[str]) -> List[Dict[str, Any]]:
        in_cart = set(cart_category_ids)
        picked: List[CatalogItem] = []
        used_categories = set()

        ranked = await self.store.top_co_occurring_categories(
            list(in_cart), limit=MAX_SUGGESTIONS
        )
        for category_id in ranked:
            if category_id in in_cart or category_id in used_categories:
                continue
            item = self.catalog.first_in_category(category_id)
            if item is None:
                continue
            picked.append(item)
            used_categories.add(category_id)
            if len(picked) >= MAX_SUGGESTIONS:
                break

        for item_id in STATIC_UPSELL_IDS:
            if len(picked) >= MAX_SUGGESTIONS:
                break
            item = self.catalog.get(item_id)
            if item is None or item.category_id in in_cart or item.category_id in used_categories:
                continue
            picked.append(item)
            used_categories.add(item.category_id)

        return [suggestion_dict(item) for item in picked]
