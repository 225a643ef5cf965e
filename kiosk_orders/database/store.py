"""
Order store: the single source of truth for orders and their satellites.

Every public method is its own unit of work. Transitions and delivery
guards are single conditional UPDATE statements, so concurrent duplicate
callbacks cannot both win the same transition or both send a receipt.
"""
from collections import Counter
from datetime import datetime, timedelta
from itertools import combinations
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy import delete, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kiosk_orders.catalog.stores import StoreSeed
from kiosk_orders.core.exceptions import InfrastructureError
from kiosk_orders.database.connection import get_session_factory
from kiosk_orders.database.models import (
    CategoryCoOccurrence,
    Favorite,
    Order,
    PaymentSession,
    Receipt,
    ScheduledTransition,
    Store,
    UserContext,
    utcnow,
)

logger = structlog.get_logger(__name__)

FIRST_ORDER_NUMBER = 10
RECEIPT_CLAIM_TIMEOUT = timedelta(minutes=5)


class OrderStore:
    """
    Repository over the orders database.

    Args:
        session_factory: Optional session factory (uses the global one if not provided)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory or get_session_factory()

    async def ping(self) -> None:
        async with self._session_factory() as db:
            result = await db.execute(text("SELECT 1"))
            result.scalar()

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    async def seed_stores(self, seeds: Iterable[StoreSeed]) -> int:
        """Insert seed stores that are not present yet. Returns the number added."""
        async with self._session_factory() as db:
            result = await db.execute(select(Store.id))
            existing = set(result.scalars().all())
            added = 0
            for seed in seeds:
                if seed.id in existing:
                    continue
                db.add(
                    Store(
                        id=seed.id,
                        name=seed.name,
                        city=seed.city,
                        latitude=seed.latitude,
                        longitude=seed.longitude,
                    )
                )
                added += 1
            await db.commit()

        logger.info("stores_seeded", added=added)
        return added

    async def list_stores(self) -> List[Store]:
        async with self._session_factory() as db:
            result = await db.execute(select(Store).order_by(Store.name.asc()))
            return list(result.scalars().all())

    async def get_store(self, store_id: str) -> Optional[Store]:
        async with self._session_factory() as db:
            return await db.get(Store, store_id)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    @staticmethod
    async def _max_order_number(db: AsyncSession) -> int:
        result = await db.execute(select(func.max(Order.order_number)))
        max_number = result.scalar()
        return max_number if max_number is not None else FIRST_ORDER_NUMBER - 1

    async def next_order_number(self) -> int:
        """MAX(order_number) + 1, starting at 10 for an empty store."""
        async with self._session_factory() as db:
            return await self._max_order_number(db) + 1

    async def create_order(
        self,
        *,
        order_id: str,
        lines: List[Dict[str, Any]],
        total_price: int,
        payment_method: str,
        telegram_user_id: str,
        store_id: str,
        session_id: str,
        external_reference: str,
        max_attempts: int = 5,
    ) -> Order:
        """
        Persist a pending order together with its payment session.

        The order number is allocated inside the inserting transaction; a
        unique-constraint collision with a concurrent create re-allocates.

        Raises:
            InfrastructureError: If no order number could be allocated
        """
        for attempt in range(1, max_attempts + 1):
            async with self._session_factory() as db:
                order_number = await self._max_order_number(db) + 1
                now = utcnow()
                order = Order(
                    id=order_id,
                    order_number=order_number,
                    lines=lines,
                    total_price=total_price,
                    payment_method=payment_method,
                    status="pending",
                    payment_session_id=session_id,
                    receipt_sent=False,
                    telegram_user_id=telegram_user_id,
                    store_id=store_id,
                    created_at=now,
                )
                session = PaymentSession(
                    id=session_id,
                    order_id=order_id,
                    method=payment_method,
                    amount=total_price,
                    status="created",
                    external_reference=external_reference,
                    created_at=now,
                    updated_at=now,
                )
                db.add_all([order, session])
                try:
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    logger.warning(
                        "order_insert_conflict",
                        order_id=order_id,
                        order_number=order_number,
                        attempt=attempt,
                        error=str(e.orig),
                    )
                    continue

                logger.info(
                    "order_persisted",
                    order_id=order_id,
                    order_number=order_number,
                    session_id=session_id,
                )
                return order

        raise InfrastructureError(f"Could not persist order {order_id}")

    async def get_order(self, order_id: str) -> Optional[Order]:
        async with self._session_factory() as db:
            return await db.get(Order, order_id)

    async def list_orders_by_user(self, telegram_user_id: str, limit: int) -> List[Order]:
        """Newest first."""
        async with self._session_factory() as db:
            stmt = (
                select(Order)
                .where(Order.telegram_user_id == telegram_user_id)
                .order_by(Order.created_at.desc(), Order.order_number.desc())
                .limit(limit)
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def transition_order(self, order_id: str, from_status: str, to_status: str) -> bool:
        """
        Move an order from one status to another if it is currently in from_status.

        Returns:
            bool: True if this call performed the transition
        """
        async with self._session_factory() as db:
            stmt = (
                update(Order)
                .where(Order.id == order_id, Order.status == from_status)
                .values(status=to_status)
            )
            result = await db.execute(stmt)
            await db.commit()
            return result.rowcount == 1

    # ------------------------------------------------------------------
    # Payment sessions
    # ------------------------------------------------------------------

    async def get_payment_session(self, session_id: str) -> Optional[PaymentSession]:
        async with self._session_factory() as db:
            return await db.get(PaymentSession, session_id)

    async def get_payment_session_by_external_ref(
        self, external_reference: str
    ) -> Optional[PaymentSession]:
        async with self._session_factory() as db:
            stmt = select(PaymentSession).where(
                PaymentSession.external_reference == external_reference
            )
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def update_payment_session_status(
        self, session_id: str, status: str, from_statuses: Sequence[str] = ("created", "processing")
    ) -> bool:
        """
        Set a session's status if it is still in one of from_statuses.

        Terminal statuses are never overwritten by a late or duplicate callback.
        """
        async with self._session_factory() as db:
            stmt = (
                update(PaymentSession)
                .where(
                    PaymentSession.id == session_id,
                    PaymentSession.status.in_(list(from_statuses)),
                )
                .values(status=status, updated_at=utcnow())
            )
            result = await db.execute(stmt)
            await db.commit()
            return result.rowcount == 1

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    async def get_receipt(self, order_id: str) -> Optional[Receipt]:
        async with self._session_factory() as db:
            return await db.get(Receipt, order_id)

    async def claim_receipt(self, order_id: str) -> bool:
        """
        Reserve the right to send the receipt for an order.

        Succeeds for exactly one caller while the receipt is unsent and not
        claimed by an in-flight delivery (claims older than
        RECEIPT_CLAIM_TIMEOUT are considered abandoned).
        """
        async with self._session_factory() as db:
            if await db.get(Receipt, order_id) is None:
                db.add(Receipt(order_id=order_id, sent=False, sent_at=None))
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()

        now = utcnow()
        async with self._session_factory() as db:
            stmt = (
                update(Receipt)
                .where(
                    Receipt.order_id == order_id,
                    Receipt.sent == False,  # noqa: E712
                    or_(
                        Receipt.claimed_at.is_(None),
                        Receipt.claimed_at < now - RECEIPT_CLAIM_TIMEOUT,
                    ),
                )
                .values(claimed_at=now)
            )
            result = await db.execute(stmt)
            await db.commit()
            return result.rowcount == 1

    async def record_receipt(self, order_id: str, delivered: bool) -> None:
        """Record a delivery attempt and release the claim."""
        async with self._session_factory() as db:
            if delivered:
                await db.execute(
                    update(Receipt)
                    .where(Receipt.order_id == order_id)
                    .values(sent=True, sent_at=utcnow(), claimed_at=None)
                )
                await db.execute(
                    update(Order).where(Order.id == order_id).values(receipt_sent=True)
                )
            else:
                await db.execute(
                    update(Receipt)
                    .where(Receipt.order_id == order_id)
                    .values(claimed_at=None)
                )
            await db.commit()

    # ------------------------------------------------------------------
    # User contexts
    # ------------------------------------------------------------------

    async def get_user_context(self, telegram_user_id: str) -> Optional[UserContext]:
        async with self._session_factory() as db:
            return await db.get(UserContext, telegram_user_id)

    async def upsert_user_context(
        self,
        telegram_user_id: str,
        store_id: Optional[str],
        notifications_enabled: bool,
    ) -> UserContext:
        async with self._session_factory() as db:
            now = utcnow()
            context = await db.get(UserContext, telegram_user_id)
            if context is None:
                context = UserContext(
                    telegram_user_id=telegram_user_id,
                    store_id=store_id,
                    notifications_enabled=notifications_enabled,
                    created_at=now,
                    updated_at=now,
                )
                db.add(context)
            else:
                context.store_id = store_id
                context.notifications_enabled = notifications_enabled
                context.updated_at = now
            await db.commit()
            return context

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    async def list_favorites(self, telegram_user_id: str) -> List[str]:
        """Favorite item ids, newest first."""
        async with self._session_factory() as db:
            stmt = (
                select(Favorite.menu_item_id)
                .where(Favorite.telegram_user_id == telegram_user_id)
                .order_by(Favorite.created_at.desc())
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def toggle_favorite(self, telegram_user_id: str, menu_item_id: str) -> bool:
        """
        Remove the favorite if present, add it otherwise.

        Returns:
            bool: True if the item is a favorite after the call
        """
        async with self._session_factory() as db:
            result = await db.execute(
                delete(Favorite).where(
                    Favorite.telegram_user_id == telegram_user_id,
                    Favorite.menu_item_id == menu_item_id,
                )
            )
            if result.rowcount:
                await db.commit()
                return False

            db.add(
                Favorite(
                    telegram_user_id=telegram_user_id,
                    menu_item_id=menu_item_id,
                    created_at=utcnow(),
                )
            )
            try:
                await db.commit()
            except IntegrityError:
                # Added concurrently by another request.
                await db.rollback()
            return True

    # ------------------------------------------------------------------
    # Category co-occurrence
    # ------------------------------------------------------------------

    async def record_category_pairs(self, category_ids: Iterable[str]) -> int:
        """
        Count every unordered pair of distinct categories once.

        Returns:
            int: Number of pairs recorded
        """
        pairs = list(combinations(sorted({c for c in category_ids if c}), 2))
        if not pairs:
            return 0

        async with self._session_factory() as db:
            for category_a, category_b in pairs:
                result = await db.execute(
                    update(CategoryCoOccurrence)
                    .where(
                        CategoryCoOccurrence.category_a == category_a,
                        CategoryCoOccurrence.category_b == category_b,
                    )
                    .values(co_occurrence_count=CategoryCoOccurrence.co_occurrence_count + 1)
                )
                if result.rowcount == 0:
                    db.add(
                        CategoryCoOccurrence(
                            category_a=category_a,
                            category_b=category_b,
                            co_occurrence_count=1,
                        )
                    )
                    await db.flush()
            await db.commit()
        return len(pairs)

    async def get_co_occurrence_count(self, category_a: str, category_b: str) -> int:
        a, b = sorted((category_a, category_b))
        async with self._session_factory() as db:
            row = await db.get(CategoryCoOccurrence, (a, b))
            return row.co_occurrence_count if row else 0

    async def top_co_occurring_categories(
        self, for_categories: Sequence[str], limit: int = 3
    ) -> List[str]:
        """Categories most often ordered with for_categories, excluding those themselves."""
        wanted = set(for_categories)
        if not wanted:
            return []

        async with self._session_factory() as db:
            stmt = select(CategoryCoOccurrence).where(
                or_(
                    CategoryCoOccurrence.category_a.in_(wanted),
                    CategoryCoOccurrence.category_b.in_(wanted),
                )
            )
            result = await db.execute(stmt)
            rows = result.scalars().all()

        totals: Counter[str] = Counter()
        for row in rows:
            other = row.category_b if row.category_a in wanted else row.category_a
            if other in wanted:
                continue
            totals[other] += row.co_occurrence_count

        ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        return [category for category, _ in ranked[:limit]]

    # ------------------------------------------------------------------
    # Scheduled transitions
    # ------------------------------------------------------------------

    async def save_scheduled_transition(
        self, order_id: str, due_at: datetime, target_status: str = "ready"
    ) -> None:
        async with self._session_factory() as db:
            if await db.get(ScheduledTransition, order_id) is not None:
                return
            db.add(ScheduledTransition(order_id=order_id, target_status=target_status, due_at=due_at))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()

    async def delete_scheduled_transition(self, order_id: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                delete(ScheduledTransition).where(ScheduledTransition.order_id == order_id)
            )
            await db.commit()

    async def list_scheduled_transitions(self) -> List[ScheduledTransition]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ScheduledTransition).order_by(ScheduledTransition.due_at.asc())
            )
            return list(result.scalars().all())
