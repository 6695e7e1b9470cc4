"""
Workflow snapshot schemas.

The snapshot is the persisted unit: the workflow state of every line item
of one order, keyed by line item id. Field aliases keep the key names used
by history records already stored in Dataverse, so old and new sessions
can read each other's snapshots.
"""
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from sodflow.core.status_config import SODStatus
from sodflow.schemas.sod import SaleDecision, SourcePlan


class SnapshotContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(None, alias="orderId")
    order_number: Optional[str] = Field(None, alias="orderNumber")


class SnapshotEntry(BaseModel):
    """Overlay-relevant state of one line item. Absent fields keep the fetched value."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantity_available: Optional[int] = Field(None, alias="qtyAvailable", ge=0)
    status: Optional[SODStatus] = None
    notification_sent: Optional[bool] = Field(None, alias="isNotificationSent")
    sale_decision: Optional[SaleDecision] = Field(None, alias="saleDecision")
    source_plan: Optional[SourcePlan] = Field(None, alias="sourcePlan")


class WorkflowSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timestamp: Optional[str] = None
    context: SnapshotContext = Field(default_factory=SnapshotContext)
    items: Dict[str, SnapshotEntry] = Field(default_factory=dict, alias="sods")
