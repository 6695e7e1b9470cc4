"""Status Configuration and Transition Rules

Defines the line-item (SOD) workflow statuses, the roles that drive them,
and the allowed status transitions. A transition outside this table never
happens: the state machine treats it as an ignored action.
"""
from enum import Enum
from typing import Dict, List, Set


# =============================================================================
# Roles
# =============================================================================

class UserRole(str, Enum):
    """Who is acting on a line item."""
    SALE = "SALE"
    SOURCE = "SOURCE"
    WAREHOUSE = "WAREHOUSE"
    VIEWER = "VIEWER"  # Read only
    ADMIN = "ADMIN"  # Bypasses role gating, never state gating


# =============================================================================
# Line Item (SOD) Status
# =============================================================================

class SODStatus(str, Enum):
    """Valid status values for a sales order detail line"""
    SUFFICIENT = "SUFFICIENT"
    SHORTAGE_PENDING_SALE = "SHORTAGE_PENDING_SALE"
    SHORTAGE_PENDING_SOURCE = "SHORTAGE_PENDING_SOURCE"
    RESOLVED = "RESOLVED"


SHORTAGE_STATUSES: Set[SODStatus] = {
    SODStatus.SHORTAGE_PENDING_SALE,
    SODStatus.SHORTAGE_PENDING_SOURCE,
}


class SaleAction(str, Enum):
    """Sale's answer to a shortage"""
    SHIP_PARTIAL = "SHIP_PARTIAL"  # Ship what is available (or cancel the ticket when nothing is)
    WAIT_ALL = "WAIT_ALL"  # Hand over to Source and wait for the full quantity


class SourcePlanStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    NO_STOCK = "NO_STOCK"


class OnReopenPolicy(str, Enum):
    """What happens to Sale/Source decisions when a sufficient line falls back into shortage"""
    PRESERVE = "preserve"
    CLEAR_DECISIONS = "clear_decisions"


# Allowed transitions: current_status -> set of allowed next statuses.
# Staying in the same status is always allowed.
SOD_TRANSITIONS: Dict[str, Set[str]] = {
    SODStatus.SUFFICIENT: {
        SODStatus.SHORTAGE_PENDING_SALE,  # Inventory decreased
        SODStatus.SHORTAGE_PENDING_SOURCE,  # Sale chose to wait
        SODStatus.RESOLVED,  # Sale chose to ship
    },
    SODStatus.SHORTAGE_PENDING_SALE: {
        SODStatus.SUFFICIENT,
        SODStatus.SHORTAGE_PENDING_SOURCE,
        SODStatus.RESOLVED,
    },
    SODStatus.SHORTAGE_PENDING_SOURCE: {
        SODStatus.SUFFICIENT,
        SODStatus.RESOLVED,  # Source confirmed a plan
    },
    SODStatus.RESOLVED: {
        SODStatus.SUFFICIENT,
        SODStatus.SHORTAGE_PENDING_SOURCE,
    },
}


def get_allowed_sod_transitions(current_status: str) -> List[str]:
    """Get list of allowed next statuses for a line item"""
    return [str(s.value) for s in SOD_TRANSITIONS.get(current_status, set())]


def is_valid_sod_transition(current_status: str, new_status: str) -> bool:
    """Check if a line item status transition is valid"""
    if current_status == new_status:
        return True
    allowed = SOD_TRANSITIONS.get(current_status, set())
    return new_status in allowed
