"""
Service wiring for the API.

build_services() assembles the collaborators once per application; routes
reach them through the get_services dependency.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kiosk_orders.catalog.menu import Catalog
from kiosk_orders.config import Settings, get_settings
from kiosk_orders.core.customers import CustomerService
from kiosk_orders.core.notifications import NotificationService
from kiosk_orders.core.order_lifecycle import OrderLifecycle
from kiosk_orders.core.receipts import ReceiptService
from kiosk_orders.core.scheduler import TransitionScheduler
from kiosk_orders.core.upsell import UpsellService
from kiosk_orders.database.store import OrderStore
from kiosk_orders.integrations.payment_gateway import PaymentGateway
from kiosk_orders.integrations.telegram_client import TelegramClient
from kiosk_orders.monitoring.health import HealthCheck


@dataclass
class Services:
    settings: Settings
    store: OrderStore
    catalog: Catalog
    gateway: PaymentGateway
    scheduler: TransitionScheduler
    lifecycle: OrderLifecycle
    customers: CustomerService
    upsell: UpsellService
    health: HealthCheck


def build_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    gateway: Optional[PaymentGateway] = None,
    telegram_client: Optional[TelegramClient] = None,
) -> Services:
    """
    Build the service graph.

    Args:
        settings: Application settings (uses get_settings() if not provided)
        session_factory: Session factory (uses the global engine if not provided)
        gateway: Payment gateway (built from settings if not provided)
        telegram_client: Bot API client (built from settings if not provided)
    """
    settings = settings or get_settings()
    store = OrderStore(session_factory)
    catalog = Catalog()
    gateway = gateway or PaymentGateway(settings)
    telegram_client = telegram_client or TelegramClient(
        bot_token=settings.telegram_bot_token,
        api_url=settings.telegram_api_url,
    )
    scheduler = TransitionScheduler(store, delay_seconds=settings.ready_delay_seconds)

    lifecycle = OrderLifecycle(
        store=store,
        gateway=gateway,
        receipts=ReceiptService(store, telegram_client),
        notifications=NotificationService(telegram_client),
        scheduler=scheduler,
        catalog=catalog,
        settings=settings,
    )

    return Services(
        settings=settings,
        store=store,
        catalog=catalog,
        gateway=gateway,
        scheduler=scheduler,
        lifecycle=lifecycle,
        customers=CustomerService(store),
        upsell=UpsellService(store, catalog),
        health=HealthCheck(store, settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
