"""
SOD Status Management Service

Role-gated state machine for sales order detail lines in the shortage
workflow (Warehouse -> Sale -> Source).

Every action is a pure, synchronous function of (item, role, input) that
returns a Transition. Actions a role may not take, or that the item's state
does not allow, are ignored: the transition comes back unchanged with no
notifications. Nothing here raises.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sodflow.core.status_config import (
    OnReopenPolicy,
    SaleAction,
    SHORTAGE_STATUSES,
    SODStatus,
    SourcePlanStatus,
    UserRole,
    is_valid_sod_transition,
)
from sodflow.logging_config import get_logger
from sodflow.schemas.sod import LineItem, SaleDecision, SourcePlan
from sodflow.services.outbox import NotificationIntent, NotificationKind
from sodflow.services.quantity import derive_status

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Transition:
    """Outcome of a workflow action on one line item."""
    item: LineItem
    changed: bool = False
    intents: List[NotificationIntent] = field(default_factory=list)


# ============================================================================
# PERMISSION PREDICATES
# ============================================================================

def _acts_as(role: UserRole, *allowed: UserRole) -> bool:
    return role == UserRole.ADMIN or role in allowed


def is_source_plan_confirmed(item: LineItem) -> bool:
    """
    A source plan only counts when Sale asked to wait for it.

    A plan left over from an earlier cycle, or one attached while Sale chose
    to ship partially, is never authoritative.
    """
    return (
        item.source_plan is not None
        and item.source_plan.status == SourcePlanStatus.CONFIRMED
        and item.sale_decision is not None
        and item.sale_decision.action == SaleAction.WAIT_ALL
    )


def is_workflow_stopped_by_sale(item: LineItem) -> bool:
    return item.sale_decision is not None and item.sale_decision.action == SaleAction.SHIP_PARTIAL


def can_edit_inventory(item: LineItem, role: UserRole) -> bool:
    return _acts_as(role, UserRole.WAREHOUSE) and not item.notification_sent


def can_notify_sale(item: LineItem, role: UserRole) -> bool:
    return (
        _acts_as(role, UserRole.WAREHOUSE)
        and item.status in SHORTAGE_STATUSES
        and item.shortage > 0
        and item.sale_decision is None
        and not item.notification_sent
    )


def can_sale_act(item: LineItem, role: UserRole) -> bool:
    return _acts_as(role, UserRole.SALE) and item.sale_decision is None


def can_source_act(item: LineItem, role: UserRole) -> bool:
    return (
        _acts_as(role, UserRole.SOURCE)
        and item.status == SODStatus.SHORTAGE_PENDING_SOURCE
        and not is_source_plan_confirmed(item)
    )


class SODStatusService:
    """
    Applies Warehouse, Sale and Source actions to line items.

    Responsibilities:
    - Gate each action by role and by item state
    - Recompute status when inventory changes
    - Attach sale decisions and source plans
    - Emit the notification intent for whoever must act next
    """

    def __init__(
        self,
        reopen_policy: OnReopenPolicy = OnReopenPolicy.PRESERVE,
        default_supplier: str = "Kho Dataverse",
        now: Callable[[], datetime] = _utcnow,
    ):
        self.reopen_policy = OnReopenPolicy(reopen_policy)
        self.default_supplier = default_supplier
        self.now = now

    def _timestamp(self) -> str:
        return self.now().isoformat()

    def _apply(
        self,
        item: LineItem,
        action: str,
        update: dict,
        intents: Optional[List[NotificationIntent]] = None,
    ) -> Transition:
        new_status = update.get("status", item.status)
        if not is_valid_sod_transition(item.status, new_status):
            logger.warning(
                f"SOD {item.id}: {action} would move {item.status.value} → {new_status.value}; ignored"
            )
            return Transition(item=item)

        updated = item.model_copy(update=update)
        if updated.status != item.status:
            logger.info(f"SOD {item.id}: {item.status.value} → {updated.status.value} ({action})")
        else:
            logger.debug(f"SOD {item.id}: {action}")
        return Transition(item=updated, changed=True, intents=intents or [])

    def _ignored(self, item: LineItem, action: str, role: UserRole, reason: str) -> Transition:
        logger.debug(f"SOD {item.id}: {action} by {role.value} ignored ({reason})")
        return Transition(item=item)

    # ========================================================================
    # WAREHOUSE
    # ========================================================================

    def set_available(self, item: LineItem, quantity_available: int, role: UserRole) -> Transition:
        """
        Warehouse records the quantity on hand.

        Frozen once the shortage notice went out. Status follows derive_status();
        when the line falls from SUFFICIENT back into shortage the reopen policy
        decides whether earlier Sale/Source decisions survive.
        """
        action = "set_available"
        if not _acts_as(role, UserRole.WAREHOUSE):
            return self._ignored(item, action, role, "role")
        if item.notification_sent:
            return self._ignored(item, action, role, "shortage notice already sent")
        if quantity_available < 0:
            return self._ignored(item, action, role, "negative quantity")

        new_status = derive_status(item, quantity_available)
        update = {"quantity_available": quantity_available, "status": new_status}

        reopened = item.status == SODStatus.SUFFICIENT and new_status == SODStatus.SHORTAGE_PENDING_SALE
        if reopened and self.reopen_policy == OnReopenPolicy.CLEAR_DECISIONS:
            update["sale_decision"] = None
            update["source_plan"] = None

        return self._apply(item, action, update)

    def send_shortage_notice(self, item: LineItem, role: UserRole) -> Transition:
        """Warehouse confirms the shortage to Sale. Freezes quantity_available."""
        action = "send_shortage_notice"
        if not _acts_as(role, UserRole.WAREHOUSE):
            return self._ignored(item, action, role, "role")
        if not can_notify_sale(item, role):
            return self._ignored(item, action, role, "no open shortage to report")

        updated_preview = item.model_copy(update={"notification_sent": True})
        intents = [NotificationIntent(NotificationKind.SALE_SHORTAGE, updated_preview)]
        return self._apply(item, action, {"notification_sent": True}, intents)

    # ========================================================================
    # SALE
    # ========================================================================

    def decide(
        self,
        item: LineItem,
        decision: SaleAction,
        role: UserRole,
        note: Optional[str] = None,
    ) -> Transition:
        """
        Sale answers the shortage, once per cycle.

        SHIP_PARTIAL ends the workflow (RESOLVED) and tells Warehouse what to
        ship. With nothing available this is how a line gets cancelled.
        WAIT_ALL hands the line to Source and discards any stale source plan.
        """
        action = f"decide:{SaleAction(decision).value}"
        if not _acts_as(role, UserRole.SALE):
            return self._ignored(item, action, role, "role")
        if item.sale_decision is not None:
            return self._ignored(item, action, role, "decision already recorded")

        sale_decision = SaleDecision(action=decision, timestamp=self._timestamp(), note=note)

        if decision == SaleAction.SHIP_PARTIAL:
            update = {"status": SODStatus.RESOLVED, "sale_decision": sale_decision}
            preview = item.model_copy(update=update)
            intents = [
                NotificationIntent(NotificationKind.SALE_PARTIAL_SHIPMENT, preview, quantity=item.shortage),
                NotificationIntent(
                    NotificationKind.WAREHOUSE_SHIP_DECISION, preview, quantity=item.quantity_available
                ),
            ]
        else:
            update = {
                "status": SODStatus.SHORTAGE_PENDING_SOURCE,
                "sale_decision": sale_decision,
                "source_plan": None,
            }
            preview = item.model_copy(update=update)
            intents = [NotificationIntent(NotificationKind.SOURCE_WAIT_DECISION, preview)]

        return self._apply(item, action, update, intents)

    # ========================================================================
    # SOURCE
    # ========================================================================

    def confirm_source_plan(
        self,
        item: LineItem,
        eta: str,
        role: UserRole,
        supplier: Optional[str] = None,
    ) -> Transition:
        """Source commits to an ETA (and supplier) for a line Sale chose to wait for."""
        action = "confirm_source_plan"
        if not _acts_as(role, UserRole.SOURCE):
            return self._ignored(item, action, role, "role")
        if not can_source_act(item, role):
            return self._ignored(item, action, role, f"status {item.status.value}")
        if not eta or not eta.strip():
            return self._ignored(item, action, role, "missing ETA")

        plan = SourcePlan(
            status=SourcePlanStatus.CONFIRMED,
            eta=eta.strip(),
            supplier=(supplier or "").strip() or self.default_supplier,
            timestamp=self._timestamp(),
        )
        update = {"status": SODStatus.RESOLVED, "source_plan": plan}
        preview = item.model_copy(update=update)
        intents = [NotificationIntent(NotificationKind.SALE_SOURCE_PLAN, preview)]
        return self._apply(item, action, update, intents)


def build_status_service() -> SODStatusService:
    """Service configured from settings."""
    from sodflow.core.config import settings

    return SODStatusService(
        reopen_policy=OnReopenPolicy(settings.ON_REOPEN_POLICY),
        default_supplier=settings.DEFAULT_SOURCE_SUPPLIER,
    )


sod_status_service = SODStatusService()
