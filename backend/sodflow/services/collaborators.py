"""
Collaborator contracts consumed by the workflow.

The workflow only talks to the outside world through these protocols:
the order/detail provider, the history store and the notifier. Concrete
implementations live in sodflow.integrations (Dataverse, Power Automate)
and sodflow.services.history_store (SQL).
"""
from typing import List, Optional, Protocol

from sodflow.schemas.sod import Customer, LineItem, SalesOrder
from sodflow.schemas.snapshot import WorkflowSnapshot


class OrderDetailProvider(Protocol):
    async def fetch_customer(self, customer_id: str) -> Customer:
        ...

    async def fetch_orders(self, customer_id: str) -> List[SalesOrder]:
        ...

    async def fetch_line_items(self, order: SalesOrder) -> List[LineItem]:
        """Lines with quantity_available=0 and the status that implies. No history applied."""
        ...


class HistoryStore(Protocol):
    async def read_snapshot(self, record_id: Optional[str]) -> Optional[WorkflowSnapshot]:
        """None when the record id is absent or the record holds no (valid) snapshot."""
        ...

    async def write_snapshot(self, record_id: Optional[str], snapshot: WorkflowSnapshot) -> bool:
        ...


class Notifier(Protocol):
    """One call per workflow edge. Implementations return False on failure."""

    async def notify_sale_of_shortage(self, item: LineItem) -> bool:
        ...

    async def notify_source_of_wait_decision(self, item: LineItem) -> bool:
        ...

    async def notify_sale_of_source_plan(self, item: LineItem) -> bool:
        ...

    async def notify_warehouse_of_ship_decision(self, item: LineItem, quantity: int) -> bool:
        ...

    async def trigger_partial_shipment(self, item: LineItem, shortage: int) -> bool:
        ...
