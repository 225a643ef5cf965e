"""
Customer receipts.

A receipt is sent at most once per order, and only for an order that has
reached confirmed. The store's receipt claim makes sure concurrent confirm
paths never deliver twice.
"""
from datetime import datetime
from typing import Optional

import structlog

from kiosk_orders.core.notifications import TelegramSender
from kiosk_orders.database.models import Order, as_utc
from kiosk_orders.database.store import OrderStore
from kiosk_orders.integrations.telegram_client import TelegramClient

logger = structlog.get_logger(__name__)

PAYMENT_METHOD_LABELS = {"card": "Betalkort", "swish": "Swish"}


def format_payment_method(method: str) -> str:
    return PAYMENT_METHOD_LABELS.get(method, method)


def format_receipt_date(value: datetime) -> str:
    """YYYY-MM-DD HH:MM in the server's local time."""
    return as_utc(value).astimezone().strftime("%Y-%m-%d %H:%M")


def build_receipt_message(order: Order) -> str:
    """Render the receipt text for an order."""
    item_lines = "\n".join(
        f"{line['name']} × {line['quantity']} — {line['quantity'] * line['priceAtOrder']} SEK"
        for line in order.lines
    )
    return (
        "🧾 IKEA Bistro — Kvitto\n\n"
        f"{item_lines}\n\n"
        f"Totalt: {order.total_price} SEK\n"
        f"Betalning: {format_payment_method(order.payment_method)}\n"
        f"Ordernummer: {order.order_number}\n"
        f"{format_receipt_date(order.created_at)}\n\n"
        "Visa vid utlämningen. Tack!"
    )


class ReceiptService(TelegramSender):
    """Sends the purchase receipt to the customer who placed the order."""

    channel = "receipt"

    def __init__(self, store: OrderStore, client: Optional[TelegramClient] = None) -> None:
        super().__init__(client)
        self.store = store

    async def send_for_order(self, order: Order) -> bool:
        """
        Send the receipt for a confirmed order unless it was already delivered.

        Returns:
            bool: True if this call delivered the receipt
        """
        if order.status not in ("confirmed", "ready"):
            logger.warning("receipt_skipped_unconfirmed", order_id=order.id, status=order.status)
            return False

        try:
            if not await self.store.claim_receipt(order.id):
                logger.info("receipt_already_handled", order_id=order.id)
                return False
        except Exception as e:
            logger.error("receipt_claim_failed", order_id=order.id, error=str(e))
            return False

        delivered = False
        try:
            delivered = await self.send(order.telegram_user_id, build_receipt_message(order))
        except Exception as e:
            logger.error("receipt_failed", order_id=order.id, error=str(e))
        finally:
            # The claim must not outlive this attempt.
            try:
                await self.store.record_receipt(order.id, delivered)
            except Exception as e:
                logger.error("receipt_record_failed", order_id=order.id, error=str(e))
                delivered = False

        logger.info(
            "receipt_processed",
            order_id=order.id,
            order_number=order.order_number,
            delivered=delivered,
        )
        return delivered
