"""
Unit tests for stores, user context, favorites, upsell and health checks.
"""
import pytest

from kiosk_orders.config import Settings
from kiosk_orders.core.customers import CustomerService
from kiosk_orders.core.exceptions import MissingField, UserContextNotFound
from kiosk_orders.core.upsell import UpsellService
from kiosk_orders.database.store import OrderStore
from kiosk_orders.monitoring.health import HealthCheck


class TestCustomerService:
    """Test suite for CustomerService."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stores_sorted_by_name(self, store: OrderStore) -> None:
        stores = await CustomerService(store).list_stores()

        assert [s["name"] for s in stores] == sorted(s["name"] for s in stores)
        assert "distanceKm" not in stores[0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stores_nearest_first(self, store: OrderStore) -> None:
        # Central Malmö
        stores = await CustomerService(store).list_stores(lat=55.605, lon=13.0038)

        assert stores[0]["id"] == "store-malmo"
        assert stores[0]["distanceKm"] < 10
        distances = [s["distanceKm"] for s in stores]
        assert distances == sorted(distances)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_context_missing(self, store: OrderStore) -> None:
        with pytest.raises(UserContextNotFound):
            await CustomerService(store).get_context("nobody")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_context_notifications_default_on(self, store: OrderStore) -> None:
        customers = CustomerService(store)

        saved = await customers.set_context("u1", store_id="store-barkarby")
        loaded = await customers.get_context("u1")

        assert saved["notificationsEnabled"] is True
        assert loaded["storeId"] == "store-barkarby"
        assert loaded["telegramUserId"] == "u1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_context_update(self, store: OrderStore) -> None:
        customers = CustomerService(store)
        await customers.set_context("u1", store_id="store-barkarby")

        updated = await customers.set_context("u1", store_id="store-malmo", notifications_enabled=False)

        assert updated["storeId"] == "store-malmo"
        assert updated["notificationsEnabled"] is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_context_requires_user(self, store: OrderStore) -> None:
        with pytest.raises(MissingField, match="telegramUserId"):
            await CustomerService(store).set_context("", store_id="store-malmo")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_toggle_favorite(self, store: OrderStore) -> None:
        customers = CustomerService(store)

        assert await customers.toggle_favorite("u1", "coffee") == {
            "menuItemId": "coffee",
            "isFavorite": True,
        }
        assert await customers.list_favorites("u1") == ["coffee"]

        assert (await customers.toggle_favorite("u1", "coffee"))["isFavorite"] is False
        assert await customers.list_favorites("u1") == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_toggle_favorite_requires_ids(self, store: OrderStore) -> None:
        customers = CustomerService(store)

        with pytest.raises(MissingField, match="menuItemId"):
            await customers.toggle_favorite("u1", None)
        with pytest.raises(MissingField, match="telegramUserId"):
            await customers.toggle_favorite(None, "coffee")


class TestUpsell:
    """Test suite for upsell suggestions."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_static_pool_one_per_category(self, store: OrderStore) -> None:
        items = await UpsellService(store).suggestions(["varm_mat"])

        assert [i["itemId"] for i in items] == ["kanelbulle", "fountain_drink"]
        assert items[0] == {
            "itemId": "kanelbulle",
            "name": "Kanelbulle",
            "price": 5,
            "categoryId": "fika_glass",
        }

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cart_categories_excluded(self, store: OrderStore) -> None:
        items = await UpsellService(store).suggestions(["fika_glass", "kall_dryck"])

        assert items == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_co_occurrence_ranked_first(self, store: OrderStore) -> None:
        for _ in range(2):
            await store.record_category_pairs(["varm_mat", "toppings"])
        await store.record_category_pairs(["varm_mat", "nytt"])

        items = await UpsellService(store).suggestions(["varm_mat"])

        assert [i["categoryId"] for i in items] == ["toppings", "nytt", "fika_glass"]
        assert items[0]["itemId"] == "onion"
        assert items[1]["itemId"] == "choklad_glass"
        assert len({i["categoryId"] for i in items}) == len(items)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_cart(self, store: OrderStore) -> None:
        items = await UpsellService(store).suggestions([])

        assert [i["itemId"] for i in items] == ["kanelbulle", "fountain_drink"]


class TestHealthCheck:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_all_healthy(self, store: OrderStore, test_settings: Settings) -> None:
        result = await HealthCheck(store, test_settings).check_all()

        assert result["status"] == "healthy"
        assert result["checks"]["database"]["status"] == "healthy"
        assert result["checks"]["payment_providers"]["card"] is True
        assert result["checks"]["payment_providers"]["swish"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_database_down(self, store: OrderStore, test_settings: Settings, mocker) -> None:
        mocker.patch.object(store, "ping", side_effect=ConnectionError("database is gone"))

        result = await HealthCheck(store, test_settings).check_all()

        assert result["status"] == "unhealthy"
        assert "database is gone" in result["checks"]["database"]["error"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_liveness(self, store: OrderStore, test_settings: Settings) -> None:
        assert (await HealthCheck(store, test_settings).liveness())["status"] == "alive"
