"""
Telegram delivery for customer messages.

Delivery is best-effort: send() reports whether the message reached the
Bot API and never raises. Without a bot token messages are logged only.
"""
from typing import Optional

import structlog

from kiosk_orders.integrations.telegram_client import TelegramClient, TelegramError
from kiosk_orders.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


def build_ready_message(order_number: int) -> str:
    return (
        "Din beställning är klar! 🎉\n"
        f"Ordernummer: {order_number}\n\n"
        "Visa ditt ordernummer vid utlämningen."
    )


class TelegramSender:
    """Base for services that deliver one kind of message over Telegram."""

    channel = "telegram"

    def __init__(self, client: Optional[TelegramClient] = None) -> None:
        self.client = client or TelegramClient(bot_token=None)

    async def send(self, recipient: str, message: str) -> bool:
        """
        Deliver a message.

        Returns:
            bool: True if the Bot API accepted the message
        """
        if not self.client.configured:
            logger.info(
                "telegram_message_not_sent",
                channel=self.channel,
                recipient=recipient,
                reason="no_bot_token",
                text=message,
            )
            delivered = False
        else:
            try:
                await self.client.send_message(recipient, message)
                delivered = True
            except TelegramError as e:
                logger.error(
                    "telegram_send_failed",
                    channel=self.channel,
                    recipient=recipient,
                    error=str(e),
                )
                delivered = False

        metrics.record_notification(self.channel, delivered)
        return delivered


class NotificationService(TelegramSender):
    """Push notifications sent when an order becomes ready."""

    channel = "ready"

    async def notify_order_ready(self, telegram_user_id: str, order_number: int) -> bool:
        delivered = await self.send(telegram_user_id, build_ready_message(order_number))
        if delivered:
            logger.info(
                "ready_notification_sent",
                order_number=order_number,
                telegram_user_id=telegram_user_id,
            )
        return delivered
