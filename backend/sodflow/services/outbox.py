"""
Notification outbox.

State transitions enqueue notification intents synchronously; the outbox
drains them asynchronously and independently of the transition. A failed
notification is logged and dropped: it never blocks nor rolls back the
state change that produced it.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Set, Tuple

from sodflow.logging_config import get_logger
from sodflow.schemas.sod import LineItem
from sodflow.services.collaborators import Notifier

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    SALE_SHORTAGE = "WAREHOUSE_TO_SALE"  # Warehouse confirmed a shortage
    SOURCE_WAIT_DECISION = "SALE_TO_SOURCE"  # Sale chose to wait for Source
    SALE_SOURCE_PLAN = "SOURCE_TO_SALE"  # Source confirmed ETA and supplier
    WAREHOUSE_SHIP_DECISION = "SALE_TO_WAREHOUSE"  # Sale chose to ship what is available
    SALE_PARTIAL_SHIPMENT = "CHOTDON_HUYPHIEU"  # Close the order / cancel the remaining ticket


@dataclass(frozen=True)
class NotificationIntent:
    kind: NotificationKind
    item: LineItem
    quantity: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Outbox:
    """FIFO of pending notification intents with a background drainer."""

    def __init__(self, notifier: Notifier, *, auto_dispatch: bool = True):
        self.notifier = notifier
        self.auto_dispatch = auto_dispatch
        self._pending: List[NotificationIntent] = []
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> List[NotificationIntent]:
        return list(self._pending)

    def enqueue(self, intent: NotificationIntent) -> None:
        self._pending.append(intent)
        logger.debug(f"Queued {intent.kind.name} for SOD {intent.item.id}")

    def schedule_drain(self) -> Optional[asyncio.Task]:
        """Drain in the background when auto dispatch is on and a loop is running."""
        if not self.auto_dispatch or not self._pending:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        task = loop.create_task(self.drain())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> List[Tuple[NotificationIntent, bool]]:
        """Dispatch everything pending. Returns (intent, delivered) pairs."""
        batch, self._pending = self._pending, []
        results = []
        for intent in batch:
            results.append((intent, await self._dispatch(intent)))
        return results

    async def wait_idle(self) -> None:
        """Wait for background drains started by schedule_drain()."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> List[Tuple[NotificationIntent, bool]]:
        """Finish background drains and deliver whatever is still queued."""
        await self.wait_idle()
        return await self.drain()

    async def _dispatch(self, intent: NotificationIntent) -> bool:
        item = intent.item
        try:
            if intent.kind is NotificationKind.SALE_SHORTAGE:
                ok = await self.notifier.notify_sale_of_shortage(item)
            elif intent.kind is NotificationKind.SOURCE_WAIT_DECISION:
                ok = await self.notifier.notify_source_of_wait_decision(item)
            elif intent.kind is NotificationKind.SALE_SOURCE_PLAN:
                ok = await self.notifier.notify_sale_of_source_plan(item)
            elif intent.kind is NotificationKind.WAREHOUSE_SHIP_DECISION:
                ok = await self.notifier.notify_warehouse_of_ship_decision(item, intent.quantity or 0)
            elif intent.kind is NotificationKind.SALE_PARTIAL_SHIPMENT:
                ok = await self.notifier.trigger_partial_shipment(item, intent.quantity or 0)
            else:
                logger.error(f"Unknown notification kind {intent.kind!r}")
                return False
        except Exception as e:
            logger.error(
                f"Notification {intent.kind.name} for SOD {item.id} failed: {e}",
                exc_info=True,
            )
            return False

        if not ok:
            logger.warning(f"Notification {intent.kind.name} for SOD {item.id} was not delivered")
        return bool(ok)
