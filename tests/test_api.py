"""
Integration tests for the HTTP API.
"""
import json
from typing import Any, Dict

import pytest
from httpx import AsyncClient

from kiosk_orders.api.dependencies import Services
from kiosk_orders.config import Settings
from kiosk_orders.integrations.payment_gateway import PaymentGateway

from .conftest import FakeStripeClient, RecordingSwish, RecordingTelegram, stripe_event, stripe_signature


async def _create(client: AsyncClient, body: Dict[str, Any]) -> Dict[str, Any]:
    response = await client.post("/api/orders", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def _pay_by_card(client: AsyncClient, checkout_session_id: str = "cs_test_1") -> Any:
    payload = stripe_event(checkout_session_id)
    return await client.post(
        "/api/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": stripe_signature(payload), "Content-Type": "application/json"},
    )


class TestOrderEndpoints:
    """Test suite for /api/orders."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_card_order(self, client: AsyncClient, sample_order: Dict[str, Any]) -> None:
        response = await client.post("/api/orders", json=sample_order)

        assert response.status_code == 201
        data = response.json()
        assert data["orderNumber"] == 10
        assert data["status"] == "pending"
        assert data["amount"] == 10
        assert data["checkoutUrl"] == "https://checkout.stripe.com/c/pay/cs_test_1"
        assert "swishUrl" not in data
        assert "clientSecret" not in data
        assert data["paymentSessionId"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_client_price_is_ignored(
        self, client: AsyncClient, sample_order: Dict[str, Any]
    ) -> None:
        sample_order["items"][0]["price"] = 1
        sample_order["items"][0]["priceAtOrder"] = 1

        data = await _create(client, sample_order)

        assert data["amount"] == 10

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_swish_order(
        self, client: AsyncClient, sample_order: Dict[str, Any], swish_api: RecordingSwish
    ) -> None:
        sample_order["paymentMethod"] = "swish"

        data = await _create(client, sample_order)

        assert data["swishUrl"].startswith("swish://paymentrequest?token=")
        assert "checkoutUrl" not in data
        assert swish_api.requests[0]["amount"] == "10.00"

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "change, code",
        [
            ({"items": []}, "empty_cart"),
            ({"items": [{"menuItemId": "hotdog_classic", "quantity": 0}]}, "invalid_quantity"),
            ({"items": [{"menuItemId": "hotdog_classic", "quantity": 1.5}]}, "invalid_quantity"),
            ({"items": [{"menuItemId": "lobster", "quantity": 1}]}, "unknown_item"),
            ({"items": [{"quantity": 1}]}, "validation_error"),
            ({"paymentMethod": "bitcoin"}, "invalid_payment_method"),
            ({"telegramUserId": None}, "missing_field"),
            ({"storeId": None}, "missing_field"),
            ({"storeId": "store-atlantis"}, "invalid_store"),
        ],
    )
    async def test_create_order_rejected(
        self,
        client: AsyncClient,
        sample_order: Dict[str, Any],
        stripe_fake: FakeStripeClient,
        change: Dict[str, Any],
        code: str,
    ) -> None:
        sample_order.update(change)

        response = await client.post("/api/orders", json=sample_order)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == code
        assert response.json()["error"]["message"]
        assert stripe_fake.calls == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_client_error(
        self, client: AsyncClient, services: Services, sample_order: Dict[str, Any]
    ) -> None:
        services.lifecycle.gateway = PaymentGateway(Settings(_env_file=None))

        response = await client.post("/api/orders", json=sample_order)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "provider_unconfigured"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_provider_failure_is_server_error(
        self, client: AsyncClient, sample_order: Dict[str, Any], stripe_fake: FakeStripeClient
    ) -> None:
        stripe_fake.fail = True

        response = await client.post("/api/orders", json=sample_order)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "provider_request_failed"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_order(self, client: AsyncClient, sample_order: Dict[str, Any]) -> None:
        created = await _create(client, sample_order)

        response = await client.get(f"/api/orders/{created['orderId']}")

        assert response.status_code == 200
        assert response.json() == {
            "orderId": created["orderId"],
            "orderNumber": 10,
            "status": "pending",
            "totalPrice": 10,
            "paymentMethod": "card",
            "receiptSent": False,
            "storeId": "store-kungens-kurva",
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_unknown_order(self, client: AsyncClient) -> None:
        response = await client.get("/api/orders/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "order_not_found"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_history(self, client: AsyncClient, sample_order: Dict[str, Any]) -> None:
        first = await _create(client, sample_order)
        second = await _create(client, sample_order)

        response = await client.get("/api/orders/history/555000111", params={"limit": 1})

        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["orderId"] for e in entries] == [second["orderId"]]
        assert entries[0]["storeName"] == "IKEA Kungens Kurva"
        assert entries[0]["lines"][0]["priceAtOrder"] == 5

        everything = (await client.get("/api/orders/history/555000111")).json()["entries"]
        assert [e["orderId"] for e in everything] == [second["orderId"], first["orderId"]]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_ready_lifecycle(
        self, client: AsyncClient, sample_order: Dict[str, Any], telegram: RecordingTelegram
    ) -> None:
        created = await _create(client, sample_order)
        order_id = created["orderId"]

        early = await client.post(f"/api/orders/{order_id}/ready")
        assert early.json() == {"orderId": order_id, "status": "pending"}

        await client.post(
            "/api/user/context",
            json={"telegramUserId": "555000111", "storeId": "store-kungens-kurva"},
        )
        assert (await _pay_by_card(client)).status_code == 200

        ready = await client.post(f"/api/orders/{order_id}/ready")
        assert ready.status_code == 200
        assert ready.json() == {"orderId": order_id, "status": "ready"}
        assert len(telegram.texts_for("555000111")) == 2

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_ready_unknown_order(self, client: AsyncClient) -> None:
        response = await client.post("/api/orders/does-not-exist/ready")

        assert response.status_code == 404


class TestWebhookEndpoints:
    """Test suite for payment provider callbacks."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_stripe_paid(
        self, client: AsyncClient, sample_order: Dict[str, Any], telegram: RecordingTelegram
    ) -> None:
        created = await _create(client, sample_order)

        response = await _pay_by_card(client)

        assert response.status_code == 200
        assert response.json() == {"received": True, "orderId": created["orderId"]}

        order = (await client.get(f"/api/orders/{created['orderId']}")).json()
        assert order["status"] == "confirmed"
        assert order["receiptSent"] is True
        assert len(telegram.texts_for("555000111")) == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_stripe_invalid_signature(
        self, client: AsyncClient, sample_order: Dict[str, Any]
    ) -> None:
        created = await _create(client, sample_order)
        payload = stripe_event("cs_test_1")

        response = await client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": stripe_signature(payload, secret="whsec_wrong")},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "verification_failed"
        order = (await client.get(f"/api/orders/{created['orderId']}")).json()
        assert order["status"] == "pending"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_stripe_missing_signature(self, client: AsyncClient) -> None:
        response = await client.post("/api/webhooks/stripe", content=stripe_event("cs_test_1"))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "verification_failed"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_stripe_unknown_session(self, client: AsyncClient) -> None:
        response = await _pay_by_card(client, "cs_test_never_created")

        assert response.status_code == 400
        assert response.json() == {"received": False}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_stripe_unhandled_event_acknowledged(self, client: AsyncClient) -> None:
        payload = stripe_event("cs_test_1", event_type="payment_intent.created")

        response = await client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": stripe_signature(payload)},
        )

        assert response.status_code == 200
        assert response.json()["received"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_swish_paid(
        self,
        client: AsyncClient,
        sample_order: Dict[str, Any],
        swish_api: RecordingSwish,
        telegram: RecordingTelegram,
    ) -> None:
        sample_order["paymentMethod"] = "swish"
        created = await _create(client, sample_order)
        reference = swish_api.requests[0]["payeePaymentReference"]

        response = await client.post(
            "/api/webhooks/swish",
            content=json.dumps({"reference": reference, "status": "PAID", "amount": 10}),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "orderId": created["orderId"]}
        assert "Betalning: Swish" in telegram.texts_for("555000111")[0]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_swish_declined(
        self, client: AsyncClient, sample_order: Dict[str, Any], swish_api: RecordingSwish
    ) -> None:
        sample_order["paymentMethod"] = "swish"
        created = await _create(client, sample_order)
        reference = swish_api.requests[0]["payeePaymentReference"]

        response = await client.post(
            "/api/webhooks/swish", json={"payeePaymentReference": reference, "status": "DECLINED"}
        )

        assert response.status_code == 400
        assert response.json() == {"received": False}
        order = (await client.get(f"/api/orders/{created['orderId']}")).json()
        assert order["status"] == "pending"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_swish_malformed(self, client: AsyncClient) -> None:
        response = await client.post("/api/webhooks/swish", json={"status": "PAID"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "malformed_callback"


class TestCustomerEndpoints:
    """Test suite for stores, user context, favorites, upsell and menu."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_stores(self, client: AsyncClient) -> None:
        plain = (await client.get("/api/stores")).json()["stores"]
        near = (await client.get("/api/stores", params={"lat": 59.33, "lon": 18.07})).json()["stores"]

        assert len(plain) == 5
        assert "distanceKm" not in plain[0]
        assert near[0]["id"] == "store-kungens-kurva"
        assert near[0]["distanceKm"] < near[-1]["distanceKm"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_user_context(self, client: AsyncClient) -> None:
        missing = await client.get("/api/user/context/u-42")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "user_context_not_found"

        saved = await client.post(
            "/api/user/context", json={"telegramUserId": "u-42", "storeId": "store-malmo"}
        )
        assert saved.status_code == 200
        assert saved.json()["notificationsEnabled"] is True

        loaded = await client.get("/api/user/context/u-42")
        assert loaded.status_code == 200
        assert loaded.json()["storeId"] == "store-malmo"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_user_context_requires_user(self, client: AsyncClient) -> None:
        response = await client.post("/api/user/context", json={"storeId": "store-malmo"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "missing_field"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_favorites(self, client: AsyncClient) -> None:
        body = {"telegramUserId": "u-42", "menuItemId": "kanelbulle"}

        added = await client.post("/api/favorites/toggle", json=body)
        assert added.json() == {"menuItemId": "kanelbulle", "isFavorite": True}
        assert (await client.get("/api/favorites/u-42")).json() == {"menuItemIds": ["kanelbulle"]}

        removed = await client.post("/api/favorites/toggle", json=body)
        assert removed.json()["isFavorite"] is False
        assert (await client.get("/api/favorites/u-42")).json() == {"menuItemIds": []}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_upsell(self, client: AsyncClient) -> None:
        response = await client.get("/api/upsell", params={"cartCategories": "varm_mat, kall_dryck"})

        assert response.status_code == 200
        items = response.json()["items"]
        assert [i["itemId"] for i in items] == ["kanelbulle"]
        assert set(items[0]) == {"itemId", "name", "price", "categoryId"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_menu(self, client: AsyncClient) -> None:
        items = (await client.get("/api/menu")).json()["items"]

        by_id = {item["id"]: item for item in items}
        assert by_id["hotdog_classic"]["price"] == 5
        assert by_id["coffee"]["categoryId"] == "fika_glass"


class TestMonitoringEndpoints:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_api_health(self, client: AsyncClient) -> None:
        response = await client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_probes(self, client: AsyncClient) -> None:
        assert (await client.get("/health/live")).json()["status"] == "alive"
        assert (await client.get("/health/ready")).status_code == 200

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient, sample_order: Dict[str, Any]) -> None:
        await _create(client, sample_order)

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "orders_created_total" in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_request_id_header(self, client: AsyncClient) -> None:
        response = await client.get("/")

        assert response.status_code == 200
        assert response.headers["X-Request-ID"]
        assert response.json()["status"] == "operational"
