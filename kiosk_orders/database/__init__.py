"""Database package for the kiosk order backend."""
from .connection import close_db, get_session_factory, init_db
from .models import (
    Base,
    CategoryCoOccurrence,
    Favorite,
    Order,
    PaymentSession,
    Receipt,
    ScheduledTransition,
    Store,
    UserContext,
)
from .store import OrderStore

__all__ = [
    "Base",
    "CategoryCoOccurrence",
    "Favorite",
    "Order",
    "OrderStore",
    "PaymentSession",
    "Receipt",
    "ScheduledTransition",
    "Store",
    "UserContext",
    "close_db",
    "get_session_factory",
    "init_db",
]
