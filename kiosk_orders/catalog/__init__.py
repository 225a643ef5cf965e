"""Menu and store reference data."""
from .menu import MENU_ITEMS, Catalog, CatalogItem, LineSnapshot
from .stores import SEED_STORES, StoreSeed, haversine_distance_km

__all__ = [
    "MENU_ITEMS",
    "Catalog",
    "CatalogItem",
    "LineSnapshot",
    "SEED_STORES",
    "StoreSeed",
    "haversine_distance_km",
]
