"""
Delayed order transitions (kitchen progression confirmed -> ready).

Each pending transition is an asyncio task detached from the request that
scheduled it, and a row in scheduled_transitions so a restart can pick the
timers up again via recover().
"""
import asyncio
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional

import structlog

from kiosk_orders.database.models import as_utc, utcnow
from kiosk_orders.database.store import OrderStore
from kiosk_orders.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

DueCallback = Callable[[str], Awaitable[object]]


class TransitionScheduler:
    """
    Runs a callback for an order once its delay has elapsed.

    Args:
        store: Order store holding the persisted timers
        delay_seconds: Delay between scheduling and firing
        on_due: Coroutine called with the order id when the timer fires
    """

    def __init__(
        self,
        store: OrderStore,
        delay_seconds: float,
        on_due: Optional[DueCallback] = None,
    ) -> None:
        self.store = store
        self.delay_seconds = delay_seconds
        self._on_due = on_due
        self._tasks: Dict[str, asyncio.Task] = {}

    def set_callback(self, on_due: DueCallback) -> None:
        self._on_due = on_due

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def is_scheduled(self, order_id: str) -> bool:
        return order_id in self._tasks

    async def schedule(self, order_id: str) -> None:
        """Persist and start a timer for order_id. Scheduling twice is a no-op."""
        if order_id in self._tasks:
            return

        due_at = utcnow() + timedelta(seconds=self.delay_seconds)
        await self.store.save_scheduled_transition(order_id, due_at)
        self._start(order_id, self.delay_seconds)
        logger.info(
            "transition_scheduled",
            order_id=order_id,
            due_at=due_at.isoformat(),
            delay_seconds=self.delay_seconds,
        )

    async def recover(self) -> int:
        """
        Restart timers persisted by a previous process.

        Overdue timers fire immediately.

        Returns:
            int: Number of timers restarted
        """
        now = utcnow()
        restarted = 0
        for row in await self.store.list_scheduled_transitions():
            if row.order_id in self._tasks:
                continue
            delay = max(0.0, (as_utc(row.due_at) - now).total_seconds())
            self._start(row.order_id, delay)
            restarted += 1

        logger.info("scheduled_transitions_recovered", count=restarted)
        return restarted

    async def shutdown(self) -> None:
        """Cancel running timers. Their rows stay for the next recover()."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        metrics.set_scheduled_transitions(0)
        logger.info("scheduler_shutdown", cancelled=len(tasks))

    def _start(self, order_id: str, delay: float) -> None:
        task = asyncio.create_task(self._run(order_id, delay), name=f"ready:{order_id}")
        self._tasks[order_id] = task
        task.add_done_callback(lambda _t: self._forget(order_id, _t))
        metrics.set_scheduled_transitions(len(self._tasks))

    def _forget(self, order_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]
        metrics.set_scheduled_transitions(len(self._tasks))

    async def _run(self, order_id: str, delay: float) -> None:
        await asyncio.sleep(delay)

        if self._on_due is None:
            logger.error("transition_fired_without_callback", order_id=order_id)
        else:
            try:
                await self._on_due(order_id)
            except Exception as e:
                logger.error("scheduled_transition_failed", order_id=order_id, error=str(e))

        try:
            await self.store.delete_scheduled_transition(order_id)
        except Exception as e:
            logger.error("scheduled_transition_cleanup_failed", order_id=order_id, error=str(e))
