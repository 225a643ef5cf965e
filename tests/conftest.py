"""
Pytest configuration and fixtures.
"""
import asyncio
import hashlib
import hmac
import json
import time
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kiosk_orders.api.dependencies import Services, build_services
from kiosk_orders.api.main import create_app
from kiosk_orders.catalog.stores import SEED_STORES
from kiosk_orders.config import Settings
from kiosk_orders.database.connection import create_engine_for_url, init_db, make_session_factory
from kiosk_orders.database.store import OrderStore
from kiosk_orders.integrations.payment_gateway import PaymentGateway
from kiosk_orders.integrations.stripe_client import CheckoutSession, StripeError, StripeErrorType
from kiosk_orders.integrations.swish_client import SwishClient
from kiosk_orders.integrations.telegram_client import TelegramClient

WEBHOOK_SECRET = "whsec_test_fake_secret"
SWISH_PAYMENT_REQUEST_URL = "https://mss.cpc.getswish.net/swish-cpcapi/api/v2/paymentrequests"


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast tests without I/O beyond a local database")
    config.addinivalue_line("markers", "integration: tests through the HTTP API")
    config.addinivalue_line("markers", "race: concurrent access tests")


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for payload."""
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(
    checkout_session_id: str,
    event_type: str = "checkout.session.completed",
    payment_status: str = "paid",
) -> bytes:
    return json.dumps(
        {
            "id": f"evt_{checkout_session_id}",
            "object": "event",
            "type": event_type,
            "data": {
                "object": {
                    "id": checkout_session_id,
                    "object": "checkout.session",
                    "payment_status": payment_status,
                }
            },
        }
    ).encode("utf-8")


async def wait_for_status(
    store: OrderStore, order_id: str, status: str, timeout: float = 2.0
) -> str:
    """Poll until the order reaches status or the timeout passes; returns the last status."""
    deadline = time.monotonic() + timeout
    order = await store.get_order(order_id)
    while order.status != status and time.monotonic() < deadline:
        await asyncio.sleep(0.01)
        order = await store.get_order(order_id)
    return order.status


class FakeStripeClient:
    """Stands in for StripeClient; each call yields a new Checkout Session."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.fail = False

    async def create_checkout_session(self, **kwargs: Any) -> CheckoutSession:
        if self.fail:
            raise StripeError("API connection error", StripeErrorType.TRANSIENT)
        self.calls.append(kwargs)
        checkout_id = f"cs_test_{len(self.calls)}"
        return CheckoutSession(id=checkout_id, url=f"https://checkout.stripe.com/c/pay/{checkout_id}")


class RecordingTelegram:
    """Telegram Bot API double behind httpx.MockTransport."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: List[Dict[str, Any]] = []
        self.fail = fail
        self.html_reply = False
        self.http_client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))
        self.client = TelegramClient(
            bot_token="123:test-token",
            api_url="https://api.telegram.test",
            http_client=self.http_client,
        )

    def _handle(self, request: httpx.Request) -> httpx.Response:
        if self.fail:
            return httpx.Response(502, json={"ok": False, "description": "Bad Gateway"})
        if self.html_reply:
            return httpx.Response(200, text="<html>proxy</html>")
        self.messages.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(self.messages)}})

    def texts_for(self, chat_id: str) -> List[str]:
        return [m["text"] for m in self.messages if m["chat_id"] == chat_id]


class RecordingSwish:
    """Swish payment request API double behind httpx.MockTransport."""

    def __init__(self, status_code: int = 201) -> None:
        self.requests: List[Dict[str, Any]] = []
        self.status_code = status_code
        self.http_client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if self.status_code != 201:
            return httpx.Response(self.status_code, json=[{"errorCode": "RP03"}])
        token = f"TOKEN{len(self.requests):027d}"
        return httpx.Response(201, headers={"Location": f"{SWISH_PAYMENT_REQUEST_URL}/{token}"})

    def swish_client(self) -> SwishClient:
        return SwishClient(
            merchant_number="1231181189",
            cert_path="/certs/swish.pem",
            api_url=SWISH_PAYMENT_REQUEST_URL,
            callback_url="https://kiosk.test/api/webhooks/swish",
            http_client=self.http_client,
        )


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Any) -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        stripe_secret_key="sk_test_fake_key_for_testing",
        stripe_webhook_secret=WEBHOOK_SECRET,
        swish_merchant_number="1231181189",
        swish_cert_path="/certs/swish.pem",
        telegram_bot_token="123:test-token",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        frontend_url="https://kiosk.test",
        app_name="kiosk-orders-test",
        app_env="test",
        log_level="DEBUG",
        ready_delay_seconds=30.0,
    )


@pytest_asyncio.fixture
async def session_factory(
    test_settings: Settings,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], Any]:
    """Fresh SQLite database per test."""
    engine = create_engine_for_url(test_settings.database_url)
    await init_db(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(session_factory: async_sessionmaker[AsyncSession]) -> OrderStore:
    order_store = OrderStore(session_factory)
    await order_store.seed_stores(SEED_STORES)
    return order_store


@pytest.fixture
def stripe_fake() -> FakeStripeClient:
    return FakeStripeClient()


@pytest_asyncio.fixture
async def swish_api() -> AsyncGenerator[RecordingSwish, Any]:
    api = RecordingSwish()
    yield api
    await api.http_client.aclose()


@pytest_asyncio.fixture
async def telegram() -> AsyncGenerator[RecordingTelegram, Any]:
    bot = RecordingTelegram()
    yield bot
    await bot.http_client.aclose()


@pytest.fixture
def gateway(
    test_settings: Settings, stripe_fake: FakeStripeClient, swish_api: RecordingSwish
) -> PaymentGateway:
    return PaymentGateway(
        test_settings,
        stripe_client=stripe_fake,
        swish_client=swish_api.swish_client(),
    )


@pytest_asyncio.fixture
async def services(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    store: OrderStore,
    gateway: PaymentGateway,
    telegram: RecordingTelegram,
) -> AsyncGenerator[Services, Any]:
    built = build_services(
        test_settings,
        session_factory=session_factory,
        gateway=gateway,
        telegram_client=telegram.client,
    )
    yield built
    await built.scheduler.shutdown()


@pytest.fixture
def lifecycle(services: Services) -> Any:
    return services.lifecycle


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    app = create_app(services)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sample_order() -> Dict[str, Any]:
    """Sample order request data."""
    return {
        "items": [{"menuItemId": "hotdog_classic", "quantity": 2}],
        "paymentMethod": "card",
        "telegramUserId": "555000111",
        "storeId": "store-kungens-kurva",
    }
