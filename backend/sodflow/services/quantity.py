"""
Quantity model for line items.

    remaining_to_ship = max(0, ordered - delivered)
    shortage          = max(0, remaining_to_ship - available)
    sufficient       <=> shortage == 0
"""
from typing import TYPE_CHECKING

from sodflow.core.status_config import SODStatus

if TYPE_CHECKING:
    from sodflow.schemas.sod import LineItem


def remaining_to_ship(quantity_ordered: int, quantity_delivered: int) -> int:
    return max(0, quantity_ordered - quantity_delivered)


def shortage(remaining: int, quantity_available: int) -> int:
    return max(0, remaining - quantity_available)


def is_sufficient(remaining: int, quantity_available: int) -> bool:
    return shortage(remaining, quantity_available) == 0


def initial_status(quantity_ordered: int, quantity_delivered: int, quantity_available: int = 0) -> SODStatus:
    """Status of a freshly fetched line, before any history is applied."""
    remaining = remaining_to_ship(quantity_ordered, quantity_delivered)
    if is_sufficient(remaining, quantity_available):
        return SODStatus.SUFFICIENT
    return SODStatus.SHORTAGE_PENDING_SALE


def derive_status(item: "LineItem", candidate_available: int) -> SODStatus:
    """
    Status of ``item`` if its available quantity became ``candidate_available``.

    Becoming sufficient always wins. Entering shortage from SUFFICIENT always
    lands on SHORTAGE_PENDING_SALE. A line already in the shortage pipeline
    (or resolved) keeps its status: an inventory edit never skips or undoes
    Sale/Source review.
    """
    if is_sufficient(item.remaining_to_ship, candidate_available):
        return SODStatus.SUFFICIENT
    if item.status == SODStatus.SUFFICIENT:
        return SODStatus.SHORTAGE_PENDING_SALE
    return item.status
