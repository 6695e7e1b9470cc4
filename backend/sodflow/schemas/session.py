"""
Session API schemas
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sodflow.core.status_config import SaleAction, SODStatus, UserRole
from sodflow.schemas.sod import Customer, Product, SaleDecision, SalesOrder, SourcePlan


# ============================================================================
# Requests
# ============================================================================

class SessionCreate(BaseModel):
    """Bootstrap parameters exactly as the host page received them"""
    params: Dict[str, str] = Field(
        default_factory=dict,
        description="customerId, recordId, saleID, historyValue, department/phongBan, role, data",
    )


class AvailableUpdate(BaseModel):
    quantity_available: int = Field(..., ge=0)


class SaleDecisionRequest(BaseModel):
    action: SaleAction
    note: Optional[str] = Field(None, max_length=1000)


class SourcePlanRequest(BaseModel):
    eta: str = Field(..., min_length=1, description="Expected arrival date (YYYY-MM-DD)")
    supplier: Optional[str] = Field(None, max_length=200)


# ============================================================================
# Responses
# ============================================================================

class SODCard(BaseModel):
    """Line item with derived quantities and what the session's role may do with it"""
    id: str
    detail_name: str
    so_number: str
    product: Product
    quantity_ordered: int
    quantity_delivered: int
    quantity_available: int
    warehouse_location: Optional[str] = None
    status: SODStatus
    notification_sent: bool
    sale_decision: Optional[SaleDecision] = None
    source_plan: Optional[SourcePlan] = None

    remaining_to_ship: int
    shortage: int
    is_sufficient: bool
    decision_label: Optional[str] = None
    source_plan_confirmed: bool
    stopped_by_sale: bool

    can_edit_inventory: bool
    can_notify_sale: bool
    can_sale_act: bool
    can_source_act: bool


class SessionResponse(BaseModel):
    session_id: str
    role: UserRole
    department: Optional[str] = None
    sale_id: Optional[str] = None
    record_id: Optional[str] = None
    customer: Optional[Customer] = None
    orders: List[SalesOrder] = []
    active_order: Optional[SalesOrder] = None
    restored_from: Optional[str] = None
    error: Optional[str] = None
    items: List[SODCard] = []


class ActionResponse(BaseModel):
    changed: bool
    item: SODCard
