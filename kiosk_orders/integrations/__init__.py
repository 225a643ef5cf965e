"""Payment provider and messaging integrations."""
from .payment_gateway import CallbackEvent, CallbackOutcome, PaymentGateway, SessionCreated
from .stripe_client import StripeClient, StripeError
from .swish_client import SwishClient, SwishError
from .telegram_client import TelegramClient, TelegramError

__all__ = [
    "CallbackEvent",
    "CallbackOutcome",
    "PaymentGateway",
    "SessionCreated",
    "StripeClient",
    "StripeError",
    "SwishClient",
    "SwishError",
    "TelegramClient",
    "TelegramError",
]
