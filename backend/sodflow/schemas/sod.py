"""
Sales order and line item (SOD) schemas.

A LineItem is the unit of work of the shortage workflow. Quantities that
depend on other fields (remaining to ship, shortage, sufficiency) are
derived properties and are never stored.
"""
from typing import Optional

from pydantic import BaseModel, Field

from sodflow.core.status_config import SaleAction, SODStatus, SourcePlanStatus
from sodflow.services import quantity


class Customer(BaseModel):
    id: str
    name: str


class SalesOrder(BaseModel):
    """Open sales order of a customer."""
    id: str
    so_number: str
    delivery_date: Optional[str] = None
    delivery_method: Optional[int] = None  # 283640000: single delivery, 283640001: scheduled
    priority: Optional[str] = None
    sod_count: Optional[int] = Field(None, description="Number of detail lines")


class Product(BaseModel):
    sku: str
    name: str
    image: Optional[str] = None


class SaleDecision(BaseModel):
    action: SaleAction
    timestamp: str
    note: Optional[str] = None


class SourcePlan(BaseModel):
    status: SourcePlanStatus
    eta: Optional[str] = None
    supplier: Optional[str] = None
    timestamp: str


class LineItem(BaseModel):
    """One sales order detail line tracked through the shortage workflow."""
    id: str
    detail_name: str = ""
    so_number: str = ""
    product: Product
    quantity_ordered: int = Field(0, ge=0)
    quantity_delivered: int = Field(0, ge=0)
    quantity_available: int = Field(0, ge=0)
    warehouse_location: Optional[str] = None

    status: SODStatus = SODStatus.SUFFICIENT
    notification_sent: bool = False
    sale_decision: Optional[SaleDecision] = None
    source_plan: Optional[SourcePlan] = None

    @property
    def remaining_to_ship(self) -> int:
        return quantity.remaining_to_ship(self.quantity_ordered, self.quantity_delivered)

    @property
    def shortage(self) -> int:
        return quantity.shortage(self.remaining_to_ship, self.quantity_available)

    @property
    def is_sufficient(self) -> bool:
        return self.shortage == 0
