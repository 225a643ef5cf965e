"""Customer-facing reference data: stores, user contexts and favorites."""
from typing import Any, Dict, List, Optional

import structlog

from kiosk_orders.catalog.stores import haversine_distance_km
from kiosk_orders.core.exceptions import MissingField, UserContextNotFound
from kiosk_orders.database.models import Store, UserContext, as_utc
from kiosk_orders.database.store import OrderStore

logger = structlog.get_logger(__name__)


def store_dict(store: Store) -> Dict[str, Any]:
    return {
        "id": store.id,
        "name": store.name,
        "city": store.city,
        "latitude": store.latitude,
        "longitude": store.longitude,
    }


def user_context_dict(context: UserContext) -> Dict[str, Any]:
    return {
        "telegramUserId": context.telegram_user_id,
        "storeId": context.store_id,
        "notificationsEnabled": context.notifications_enabled,
        "createdAt": as_utc(context.created_at).isoformat(),
        "updatedAt": as_utc(context.updated_at).isoformat(),
    }


class CustomerService:
    """Stores, per-user context and favorites on top of the order store."""

    def __init__(self, store: OrderStore) -> None:
        self.store = store

    async def list_stores(
        self, lat: Optional[float] = None, lon: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        """
        All stores by name, or nearest first with distanceKm when a position is given.
        """
        stores = [store_dict(store) for store in await self.store.list_stores()]
        if lat is None or lon is None:
            return stores

        for entry in stores:
            entry["distanceKm"] = haversine_distance_km(
                lat, lon, entry["latitude"], entry["longitude"]
            )
        return sorted(stores, key=lambda entry: entry["distanceKm"])

    async def get_context(self, telegram_user_id: str) -> Dict[str, Any]:
        """
        Raises:
            UserContextNotFound: No context saved for the user
        """
        context = await self.store.get_user_context(telegram_user_id)
        if context is None:
            raise UserContextNotFound(telegram_user_id)
        return user_context_dict(context)

    async def set_context(
        self,
        telegram_user_id: Optional[str],
        store_id: Optional[str] = None,
        notifications_enabled: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Create or replace a user's context. Notifications default to enabled."""
        if not telegram_user_id:
            raise MissingField("telegramUserId")
        if notifications_enabled is None:
            notifications_enabled = True

        context = await self.store.upsert_user_context(
            telegram_user_id, store_id, notifications_enabled
        )
        logger.info(
            "user_context_saved",
            telegram_user_id=telegram_user_id,
            store_id=store_id,
            notifications_enabled=notifications_enabled,
        )
        return user_context_dict(context)

    async def list_favorites(self, telegram_user_id: str) -> List[str]:
        return await self.store.list_favorites(telegram_user_id)

    async def toggle_favorite(
        self, telegram_user_id: Optional[str], menu_item_id: Optional[str]
    ) -> Dict[str, Any]:
        if not telegram_user_id:
            raise MissingField("telegramUserId")
        if not menu_item_id:
            raise MissingField("menuItemId")

        is_favorite = await self.store.toggle_favorite(telegram_user_id, menu_item_id)
        return {"menuItemId": menu_item_id, "isFavorite": is_favorite}
