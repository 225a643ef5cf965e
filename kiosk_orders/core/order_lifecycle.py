"""
Order lifecycle engine.

Orchestrates an order through pending -> confirmed -> ready:
1. create: validate store and cart, price server-side, request a payment
   session, persist order + session, record category pairs
2. confirm: only from a verified payment callback; sends the receipt and
   schedules the ready transition
3. ready: from the kitchen timer or an operator; sends the push notification

Each transition is a conditional update in the store. Only the caller that
wins a transition runs its side effects, so duplicate callbacks and a timer
racing an operator are harmless.
"""
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from kiosk_orders.catalog.menu import Catalog, LineSnapshot
from kiosk_orders.config import Settings, get_settings
from kiosk_orders.core.exceptions import (
    EmptyCart,
    InvalidPaymentMethod,
    InvalidStore,
    MissingField,
    OrderNotFound,
)
from kiosk_orders.core.notifications import NotificationService
from kiosk_orders.core.receipts import ReceiptService
from kiosk_orders.core.scheduler import TransitionScheduler
from kiosk_orders.database.models import Order, as_utc
from kiosk_orders.database.store import OrderStore
from kiosk_orders.integrations.payment_gateway import (
    PAYMENT_METHODS,
    CallbackEvent,
    CallbackOutcome,
    PaymentGateway,
)
from kiosk_orders.monitoring.logging import order_context
from kiosk_orders.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

CartLine = Tuple[str, Any]


@dataclass(frozen=True)
class OrderCreated:
    order_id: str
    order_number: int
    payment_session_id: str
    amount: int
    redirect: Dict[str, str] = field(default_factory=dict)
    status: str = "pending"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "status": self.status,
            "paymentSessionId": self.payment_session_id,
            "amount": self.amount,
            **self.redirect,
        }


@dataclass(frozen=True)
class CallbackResult:
    """Result of applying a verified callback. success=False maps to a 400."""

    success: bool
    order_id: Optional[str] = None


def order_status_dict(order: Order) -> Dict[str, Any]:
    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "status": order.status,
        "totalPrice": order.total_price,
        "paymentMethod": order.payment_method,
        "receiptSent": order.receipt_sent,
        "storeId": order.store_id,
    }


class OrderLifecycle:
    """
    Order state machine and its side effects.

    Args:
        store: Order store
        gateway: Payment provider adapter
        receipts: Receipt delivery
        notifications: Ready push delivery
        scheduler: Delayed ready transitions (its callback is bound to mark_ready)
        catalog: Price list (default menu if not provided)
        settings: Application settings
    """

    def __init__(
        self,
        store: OrderStore,
        gateway: PaymentGateway,
        receipts: ReceiptService,
        notifications: NotificationService,
        scheduler: TransitionScheduler,
        catalog: Optional[Catalog] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.receipts = receipts
        self.notifications = notifications
        self.scheduler = scheduler
        self.catalog = catalog or Catalog()
        self.settings = settings or get_settings()

        self.scheduler.set_callback(self.mark_ready)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def _price_cart(self, items: Sequence[CartLine]) -> List[LineSnapshot]:
        # First failing line wins.
        return [self.catalog.price_and_validate(item_id, quantity) for item_id, quantity in items]

    async def create_order(
        self,
        items: Sequence[CartLine],
        payment_method: str,
        telegram_user_id: Optional[str],
        store_id: Optional[str],
    ) -> OrderCreated:
        """
        Create a pending order and its payment session.

        Nothing is persisted unless every check passes and the provider
        returned a session.

        Args:
            items: (menu item id, quantity) pairs; client prices are never read
            payment_method: 'card' or 'swish'
            telegram_user_id: Ordering user
            store_id: Pickup store

        Returns:
            OrderCreated: Identifiers, amount and the single redirect artifact

        Raises:
            ValidationError: Empty cart, missing field, bad method, unknown
                store, bad line, or unconfigured provider
            ProviderRequestFailed: Provider call failed
        """
        if not items:
            raise EmptyCart()
        if payment_method not in PAYMENT_METHODS:
            raise InvalidPaymentMethod(payment_method)
        if not telegram_user_id:
            raise MissingField("telegramUserId")
        if not store_id:
            raise MissingField("storeId")

        if await self.store.get_store(store_id) is None:
            raise InvalidStore(store_id)

        lines = self._price_cart(items)
        total_price = sum(line.line_total for line in lines)

        order_id = str(uuid.uuid4())
        log = logger.bind(order_id=order_id, payment_method=payment_method)
        log.info("creating_order", total_price=total_price, line_count=len(lines))

        session = await self.gateway.create_session(order_id, total_price, payment_method)

        order = await self.store.create_order(
            order_id=order_id,
            lines=[line.to_dict() for line in lines],
            total_price=total_price,
            payment_method=payment_method,
            telegram_user_id=telegram_user_id,
            store_id=store_id,
            session_id=session.session_id,
            external_reference=session.external_reference,
        )
        metrics.record_order_created(payment_method, total_price)

        try:
            await self.store.record_category_pairs(line.category_id for line in lines)
        except Exception as e:
            log.error("category_stats_update_failed", error=str(e))

        log.info(
            "order_created",
            order_number=order.order_number,
            session_id=session.session_id,
        )
        return OrderCreated(
            order_id=order.id,
            order_number=order.order_number,
            payment_session_id=session.session_id,
            amount=total_price,
            redirect=session.redirect(),
        )

    # ------------------------------------------------------------------
    # callbacks / confirm
    # ------------------------------------------------------------------

    async def handle_callback(self, event: CallbackEvent) -> CallbackResult:
        """
        Apply a verified provider callback.

        Unknown references change nothing and report success=False.
        """
        start_time = time.time()
        with order_context(provider=event.provider):
            result = await self._apply_callback(event)
        outcome = event.outcome.value if result.success or result.order_id else "unmatched"
        metrics.record_callback(event.provider, outcome, time.time() - start_time)
        return result

    async def _apply_callback(self, event: CallbackEvent) -> CallbackResult:
        if event.external_reference is None:
            # Event type we do not act on.
            return CallbackResult(success=True)

        session = await self.store.get_payment_session_by_external_ref(event.external_reference)
        if session is None:
            logger.error(
                "payment_session_not_found",
                provider=event.provider,
                external_reference=event.external_reference,
            )
            return CallbackResult(success=False)

        log = logger.bind(order_id=session.order_id, session_id=session.id)

        if event.outcome is CallbackOutcome.SUCCEEDED:
            await self.store.update_payment_session_status(session.id, "succeeded")
            order = await self.confirm(session.order_id)
            return CallbackResult(success=True, order_id=order.id)

        if event.outcome is CallbackOutcome.PROCESSING:
            await self.store.update_payment_session_status(
                session.id, "processing", from_statuses=("created",)
            )
            log.info("payment_processing")
            return CallbackResult(success=True, order_id=session.order_id)

        if event.outcome is CallbackOutcome.FAILED:
            await self.store.update_payment_session_status(session.id, "failed")
            # Order stays pending; there is no failed order state.
            log.warning("payment_failed", event_type=event.event_type)
            return CallbackResult(success=False, order_id=session.order_id)

        log.info("payment_callback_ignored", event_type=event.event_type)
        return CallbackResult(success=False, order_id=session.order_id)

    async def confirm(self, order_id: str) -> Order:
        """
        Move a pending order to confirmed after a verified payment.

        The winner of the transition sends the receipt and schedules ready.
        A duplicate confirm never moves the status and only retries a
        receipt that was never delivered.

        Raises:
            OrderNotFound: Unknown order id
        """
        with order_context(order_id=order_id):
            return await self._confirm(order_id)

    async def _confirm(self, order_id: str) -> Order:
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        won = await self.store.transition_order(order_id, "pending", "confirmed")
        order = await self.store.get_order(order_id)

        if not won:
            logger.info("order_confirm_duplicate", status=order.status)
            if order.status in ("confirmed", "ready") and not order.receipt_sent:
                await self.receipts.send_for_order(order)
                order = await self.store.get_order(order_id)
            return order

        metrics.record_order_transition("confirmed")
        logger.info("order_confirmed", order_number=order.order_number)

        await self.receipts.send_for_order(order)

        try:
            await self.scheduler.schedule(order_id)
        except Exception as e:
            logger.error("ready_schedule_failed", error=str(e))

        return await self.store.get_order(order_id)

    # ------------------------------------------------------------------
    # ready
    # ------------------------------------------------------------------

    async def mark_ready(self, order_id: str) -> Order:
        """
        Move a confirmed order to ready and notify the customer.

        Any other status is left alone and the order is returned as is.

        Raises:
            OrderNotFound: Unknown order id
        """
        with order_context(order_id=order_id):
            return await self._mark_ready(order_id)

    async def _mark_ready(self, order_id: str) -> Order:
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        if not await self.store.transition_order(order_id, "confirmed", "ready"):
            logger.info("order_ready_noop", status=order.status)
            return await self.store.get_order(order_id)

        metrics.record_order_transition("ready")
        logger.info("order_ready", order_number=order.order_number)

        try:
            context = await self.store.get_user_context(order.telegram_user_id)
            if context is not None and context.notifications_enabled:
                await self.notifications.notify_order_ready(
                    order.telegram_user_id, order.order_number
                )
        except Exception as e:
            logger.error("ready_notification_failed", error=str(e))

        return await self.store.get_order(order_id)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    async def get_order_status(self, order_id: str) -> Dict[str, Any]:
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order_status_dict(order)

    def clamp_history_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.settings.history_default_limit
        return max(1, min(limit, self.settings.history_max_limit))

    async def get_order_history(
        self, telegram_user_id: str, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Newest-first order summaries for a user.

        Args:
            telegram_user_id: Ordering user
            limit: Number of orders (default 10, capped at 50)
        """
        orders = await self.store.list_orders_by_user(
            telegram_user_id, self.clamp_history_limit(limit)
        )
        store_names = {store.id: store.name for store in await self.store.list_stores()}

        return [
            {
                "orderId": order.id,
                "orderNumber": order.order_number,
                "createdAt": as_utc(order.created_at).isoformat(),
                "totalPrice": order.total_price,
                "status": order.status,
                "storeId": order.store_id,
                "storeName": store_names.get(order.store_id, order.store_id),
                "lines": order.lines,
            }
            for order in orders
        ]
