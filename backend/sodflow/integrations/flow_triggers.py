"""
Power Automate flow triggers.

Implements the Notifier: each workflow edge posts a JSON payload to an HTTP
flow trigger. Delivery problems are logged and reported as False; nothing
is raised to the workflow.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from starlette.concurrency import run_in_threadpool

from sodflow.logging_config import get_logger
from sodflow.schemas.sod import LineItem

logger = get_logger(__name__)

PARTIAL_SHIPMENT_TYPE = "CHOTDON_HUYPHIEU"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FlowNotifier:
    """Notifier posting to the notification and sale-decision flows."""

    def __init__(
        self,
        notify_url: Optional[str],
        sale_decision_url: Optional[str],
        *,
        http: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.notify_url = notify_url
        self.sale_decision_url = sale_decision_url
        self.http = http or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "FlowNotifier":
        return cls(
            settings.FLOW_NOTIFY_URL,
            settings.FLOW_SALE_DECISION_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def _post(self, url: Optional[str], payload: Dict[str, Any], label: str) -> bool:
        if not url:
            logger.warning(f"[Flow] {label}: no trigger URL configured, skipped")
            return False
        logger.info(f"[Flow] {label}", extra={"payload": payload})
        try:
            response = self.http.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[Flow] {label} error: {e}")
            return False
        if not response.ok:
            logger.error(f"[Flow] {label} failed: {response.status_code} {response.reason}")
            return False
        return True

    def _notification(
        self,
        kind: str,
        item: LineItem,
        message: str,
        details: Any = None,
        timestamp: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "Type": kind,
            "SodId": item.id,
            "SodName": item.detail_name,
            "Sku": item.product.sku,
            "Message": message,
            "Timestamp": timestamp or _now(),
        }
        if details is not None:
            payload["Details"] = details
        return payload

    # ========================================================================
    # NOTIFIER
    # ========================================================================

    async def notify_sale_of_shortage(self, item: LineItem) -> bool:
        payload = self._notification(
            "WAREHOUSE_TO_SALE",
            item,
            f"Warehouse confirmed a shortage of {item.product.name}. "
            f"Missing quantity: {item.shortage}. Please decide.",
        )
        return await run_in_threadpool(self._post, self.notify_url, payload, "Notify Sale of shortage")

    async def notify_source_of_wait_decision(self, item: LineItem) -> bool:
        payload = self._notification(
            "SALE_TO_SOURCE",
            item,
            f"Sale handed over the shortage of {item.product.name} (order {item.so_number}).",
        )
        return await run_in_threadpool(self._post, self.notify_url, payload, "Notify Source")

    async def notify_sale_of_source_plan(self, item: LineItem) -> bool:
        plan = item.source_plan
        payload = self._notification(
            "SOURCE_TO_SALE",
            item,
            f"Source updated the plan for {item.product.name}. "
            f"ETA: {plan.eta if plan else None}. Supplier: {plan.supplier if plan else None}.",
            details=plan.model_dump(mode="json") if plan else None,
            # The flow schedules on the ETA date Source picked
            timestamp=(plan.eta if plan and plan.eta else None),
        )
        return await run_in_threadpool(self._post, self.notify_url, payload, "Notify Sale of source plan")

    async def notify_warehouse_of_ship_decision(self, item: LineItem, quantity: int) -> bool:
        payload = self._notification(
            "SALE_TO_WAREHOUSE",
            item,
            f"Sale decided to SHIP NOW {quantity} available unit(s) of {item.product.name}.",
            details={"quantityToShip": quantity},
        )
        return await run_in_threadpool(self._post, self.notify_url, payload, "Notify Warehouse")

    async def trigger_partial_shipment(self, item: LineItem, shortage: int) -> bool:
        payload = {
            "Tên đơn hàng SOD": item.detail_name,
            "ID đơn hàng SOD": item.id,
            "SL thiếu": shortage,
            "Type": PARTIAL_SHIPMENT_TYPE,
        }
        return await run_in_threadpool(
            self._post, self.sale_decision_url, payload, "Sale partial shipment"
        )
