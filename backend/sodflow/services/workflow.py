"""
Workflow Orchestrator

Owns the line items of the session's active order and is the only place
where they change. Every mutation follows the same two-phase contract:

1. apply_item_update() - synchronous, local replacement of one item
2. commit_and_persist() - snapshot of ALL items written to the history store

Notifications produced by a transition are queued in the outbox before the
snapshot is written and delivered independently of it.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sodflow.core.status_config import SaleAction, UserRole
from sodflow.exceptions import FetchError, IntegrationError, NotFoundError
from sodflow.logging_config import get_logger
from sodflow.schemas.snapshot import SnapshotContext, WorkflowSnapshot
from sodflow.schemas.sod import Customer, LineItem, SalesOrder
from sodflow.services.collaborators import HistoryStore, OrderDetailProvider
from sodflow.services.history import build_snapshot, merge_snapshot_into_items
from sodflow.services.identifiers import RecordId, same_record
from sodflow.services.outbox import NotificationIntent, Outbox
from sodflow.services.sod_status import SODStatusService, Transition

logger = get_logger(__name__)

# Called with (record_id, error) when a snapshot write fails; error is None
# when the store reported failure without raising.
PersistenceObserver = Callable[[RecordId, Optional[BaseException]], None]


def log_persistence_failure(record_id: RecordId, error: Optional[BaseException]) -> None:
    if error is not None:
        logger.error(f"History save for request {record_id} failed: {error}")
    else:
        logger.error(f"History save for request {record_id} was rejected by the store")


@dataclass
class SessionContext:
    """Everything one user session knows: who acts, for which customer, on what."""
    session_id: str
    role: UserRole = UserRole.ADMIN
    department: Optional[str] = None
    sale_id: Optional[str] = None
    customer_id: Optional[str] = None
    record_id: RecordId = field(default_factory=lambda: RecordId(""))

    customer: Optional[Customer] = None
    orders: List[SalesOrder] = field(default_factory=list)

    snapshot: Optional[WorkflowSnapshot] = None
    snapshot_task: Optional["asyncio.Task"] = None  # History store read still in flight
    restored_from: Optional[str] = None  # URL, URL_RAW, DATAVERSE
    error: Optional[str] = None  # User-visible bootstrap error

    active_order: Optional[SalesOrder] = None
    items: List[LineItem] = field(default_factory=list)
    generation: int = 0  # Bumped by every order switch

    def find_order(self, order_id: Optional[str]) -> Optional[SalesOrder]:
        for order in self.orders:
            if same_record(order.id, order_id):
                return order
        return None


class WorkflowOrchestrator:
    """Applies role actions to the session's items and keeps the history record in sync."""

    def __init__(
        self,
        session: SessionContext,
        provider: OrderDetailProvider,
        history_store: HistoryStore,
        outbox: Outbox,
        status_service: Optional[SODStatusService] = None,
        *,
        on_persist_failure: PersistenceObserver = log_persistence_failure,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session = session
        self.provider = provider
        self.history_store = history_store
        self.outbox = outbox
        self.status_service = status_service or SODStatusService()
        self.on_persist_failure = on_persist_failure
        self.now = now

    # ========================================================================
    # ORDER SELECTION
    # ========================================================================

    async def select_order(self, order: SalesOrder) -> List[LineItem]:
        """
        Load an order's lines and overlay the saved workflow state.

        Raises FetchError when the lines cannot be loaded; the previous
        order and its items stay in place. A response that arrives after
        another selection (or a clear) started is dropped.
        """
        session = self.session
        session.generation += 1
        generation = session.generation

        try:
            fresh = await self.provider.fetch_line_items(order)
        except IntegrationError as e:
            if generation != session.generation:
                logger.info(f"Ignoring failed fetch for superseded order {order.so_number}")
                return session.items
            logger.error(f"Could not load lines of order {order.so_number}: {e.message}")
            raise FetchError(f"Could not load lines of order {order.so_number}", order_id=order.id) from e

        snapshot = await self.resolve_snapshot()

        if generation != session.generation:
            logger.info(f"Discarding late lines for order {order.so_number}")
            return session.items

        session.items = merge_snapshot_into_items(fresh, snapshot)
        session.active_order = order
        logger.info(f"Order {order.so_number}: {len(session.items)} line(s) loaded")
        return session.items

    def clear_order(self) -> None:
        """Drop the active order; any selection still loading is discarded."""
        self.session.generation += 1
        self.session.active_order = None
        self.session.items = []

    async def close(self) -> None:
        """End the session: stop the history read, deliver queued notifications."""
        session = self.session
        task, session.snapshot_task = session.snapshot_task, None
        if task is not None and not task.done():
            task.cancel()
        self.clear_order()
        await self.outbox.close()
        logger.info(f"Session {session.session_id} closed")

    async def resolve_snapshot(self) -> Optional[WorkflowSnapshot]:
        """Session snapshot, waiting for the history store read if it is still pending."""
        session = self.session
        task = session.snapshot_task
        if task is None:
            return session.snapshot

        # Overlapping selections all await the same read
        try:
            snapshot = await task
        except IntegrationError as e:
            if session.snapshot_task is task:
                logger.warning(f"Could not fetch history for request {session.record_id}: {e.message}")
            snapshot = None
        if session.snapshot_task is task:
            session.snapshot_task = None
            if snapshot is not None and session.snapshot is None:
                session.snapshot = snapshot
                session.restored_from = "DATAVERSE"
        return session.snapshot

    # ========================================================================
    # APPLY / PERSIST
    # ========================================================================

    def get_item(self, sod_id: str) -> LineItem:
        for item in self.session.items:
            if same_record(item.id, sod_id):
                return item
        raise NotFoundError("Line item", sod_id)

    def apply_item_update(self, updated: LineItem) -> List[LineItem]:
        """Replace one item in the collection. Local only."""
        items = self.session.items
        for index, item in enumerate(items):
            if same_record(item.id, updated.id):
                self.session.items = items[:index] + [updated] + items[index + 1:]
                return self.session.items
        raise NotFoundError("Line item", updated.id)

    async def commit_and_persist(self, items: Optional[List[LineItem]] = None) -> bool:
        """
        Snapshot the full collection and write it under the session's record id.

        Without a record id nothing is written. Failures go to the persistence
        observer; they are never raised and never retried.
        """
        session = self.session
        items = session.items if items is None else items
        context = SnapshotContext(
            order_id=session.active_order.id if session.active_order else None,
            order_number=session.active_order.so_number if session.active_order else None,
        )
        snapshot = build_snapshot(items, context, now=self.now())
        session.snapshot = snapshot

        if not session.record_id:
            logger.debug("No record id; snapshot kept in memory only")
            return False

        try:
            saved = await self.history_store.write_snapshot(session.record_id.value, snapshot)
        except Exception as e:
            self.on_persist_failure(session.record_id, e)
            return False

        if not saved:
            self.on_persist_failure(session.record_id, None)
        return bool(saved)

    async def notify_and_persist(self, item: LineItem, intents: List[NotificationIntent]) -> bool:
        for intent in intents:
            self.outbox.enqueue(intent)
        self.outbox.schedule_drain()
        self.apply_item_update(item)
        return await self.commit_and_persist()

    async def _commit(self, transition: Transition) -> Transition:
        if transition.changed:
            await self.notify_and_persist(transition.item, transition.intents)
        return transition

    # ========================================================================
    # ROLE ACTIONS
    # ========================================================================

    async def set_available(self, sod_id: str, quantity_available: int) -> Transition:
        item = self.get_item(sod_id)
        return await self._commit(
            self.status_service.set_available(item, quantity_available, self.session.role)
        )

    async def send_shortage_notice(self, sod_id: str) -> Transition:
        item = self.get_item(sod_id)
        return await self._commit(self.status_service.send_shortage_notice(item, self.session.role))

    async def decide(self, sod_id: str, decision: SaleAction, note: Optional[str] = None) -> Transition:
        item = self.get_item(sod_id)
        return await self._commit(
            self.status_service.decide(item, decision, self.session.role, note=note)
        )

    async def confirm_source_plan(
        self,
        sod_id: str,
        eta: str,
        supplier: Optional[str] = None,
    ) -> Transition:
        item = self.get_item(sod_id)
        return await self._commit(
            self.status_service.confirm_source_plan(item, eta, self.session.role, supplier=supplier)
        )
