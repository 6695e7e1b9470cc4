"""
Line item listing helpers: search, status filter, shortage-first ordering
and the per-card view (derived quantities plus what the viewer may do).
"""
from typing import Any, Dict, Iterable, List, Optional, Union

from sodflow.core.status_config import SaleAction, SODStatus, UserRole
from sodflow.schemas.sod import LineItem
from sodflow.services.sod_status import (
    can_edit_inventory,
    can_notify_sale,
    can_sale_act,
    can_source_act,
    is_source_plan_confirmed,
    is_workflow_stopped_by_sale,
)

ALL_STATUSES = "ALL"


def _matches(item: LineItem, term: str) -> bool:
    haystack = (
        item.so_number,
        item.product.sku,
        item.product.name,
        item.detail_name,
        item.id,
    )
    return any(term in (value or "").lower() for value in haystack)


def filter_items(
    items: Iterable[LineItem],
    search: Optional[str] = None,
    status: Union[SODStatus, str, None] = ALL_STATUSES,
) -> List[LineItem]:
    """Case-insensitive search across order/product/line fields, then status filter."""
    term = (search or "").strip().lower()
    wanted = None if status in (None, "", ALL_STATUSES) else SODStatus(status)
    return [
        item
        for item in items
        if (not term or _matches(item, term)) and (wanted is None or item.status == wanted)
    ]


def sort_shortage_first(items: Iterable[LineItem]) -> List[LineItem]:
    """Lines with a shortage first; order otherwise preserved."""
    return sorted(items, key=lambda item: 0 if item.shortage > 0 else 1)


def decision_label(item: LineItem) -> Optional[str]:
    if item.sale_decision is None:
        return None
    available = item.quantity_available
    if item.sale_decision.action == SaleAction.SHIP_PARTIAL:
        return f"Ship {available} available" if available > 0 else "Ticket cancelled"
    return f"Hold {available} - waiting for Source" if available > 0 else "Waiting for Source"


def build_card(item: LineItem, role: UserRole) -> Dict[str, Any]:
    """Line item as shown to ``role``."""
    return {
        **item.model_dump(mode="json"),
        "remaining_to_ship": item.remaining_to_ship,
        "shortage": item.shortage,
        "is_sufficient": item.is_sufficient,
        "decision_label": decision_label(item),
        "source_plan_confirmed": is_source_plan_confirmed(item),
        "stopped_by_sale": is_workflow_stopped_by_sale(item),
        "can_edit_inventory": can_edit_inventory(item, role),
        "can_notify_sale": can_notify_sale(item, role),
        "can_sale_act": can_sale_act(item, role),
        "can_source_act": can_source_act(item, role),
    }
