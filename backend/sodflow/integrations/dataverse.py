"""
Dataverse Web API client.

Implements the order/detail provider and the history store on top of the
Dataverse OData endpoint:

- Access tokens come from a flow trigger and are cached until shortly
  before they expire.
- Collection queries follow @odata.nextLink until exhausted.
- Blocking HTTP calls (requests) run in the threadpool; every public
  method is a coroutine.
"""
from __future__ import annotations

import asyncio
import json
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
from starlette.concurrency import run_in_threadpool

from sodflow.exceptions import DataverseError
from sodflow.logging_config import get_logger
from sodflow.schemas.snapshot import WorkflowSnapshot
from sodflow.schemas.sod import Customer, LineItem, Product, SalesOrder, SourcePlan
from sodflow.core.status_config import SourcePlanStatus
from sodflow.services.history import dump_snapshot, parse_snapshot
from sodflow.services.identifiers import RecordId
from sodflow.services.quantity import initial_status

logger = get_logger(__name__)

DEFAULT_TOKEN_LIFETIME = 3599

# Picking plan lines: "out of stock" (283640005) and already scheduled (1)
PLAN_EXPAND = (
    "crdfd_kehoachsoanhangdetail_onbanchitiet_crdfd_saleorderdetail("
    "$select=crdfd_ton_kho_theo_ke_hoach;"
    "$filter=statecode eq 0 and crdfd_trangthai eq 283640005 and crdfd_trangthaikehoach eq 1"
    ")"
)
PLAN_NAV = "crdfd_kehoachsoanhangdetail_onbanchitiet_crdfd_saleorderdetail"


def _as_int(value: Any) -> int:
    try:
        return max(0, int(float(value or 0)))
    except (TypeError, ValueError):
        return 0


class DataverseClient:
    """Order/detail provider and history store backed by Dataverse."""

    def __init__(
        self,
        api_url: str,
        auth_trigger_url: Optional[str],
        *,
        http: Optional[requests.Session] = None,
        timeout: float = 30.0,
        refresh_margin: int = 300,
        delivered_status: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.api_url = api_url.rstrip("/")
        self.auth_trigger_url = auth_trigger_url
        self.http = http or requests.Session()
        self.timeout = timeout
        self.refresh_margin = refresh_margin
        self.delivered_status = delivered_status
        self.clock = clock

        self._token: Optional[str] = None
        self._token_expiry: float = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "DataverseClient":
        return cls(
            settings.dataverse_api_url,
            settings.DATAVERSE_AUTH_TRIGGER_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            refresh_margin=settings.TOKEN_REFRESH_MARGIN_SECONDS,
            delivered_status=settings.DATAVERSE_DELIVERED_STATUS,
        )

    # ========================================================================
    # AUTH
    # ========================================================================

    def get_access_token(self) -> str:
        """Cached token, refreshed when within refresh_margin seconds of expiry."""
        with self._token_lock:
            if self._token and self.clock() < self._token_expiry - self.refresh_margin:
                return self._token

            if not self.auth_trigger_url:
                raise DataverseError("No auth trigger URL configured")

            try:
                response = self.http.post(self.auth_trigger_url, json={}, timeout=self.timeout)
            except requests.RequestException as e:
                self._token, self._token_expiry = None, 0.0
                raise DataverseError(f"Token request failed: {e}") from e

            if not response.ok:
                self._token, self._token_expiry = None, 0.0
                raise DataverseError("Failed to fetch token from flow", status=response.status_code)

            token, expires_in = self._parse_token(response.json())
            if not token:
                self._token, self._token_expiry = None, 0.0
                raise DataverseError("Token not found in response")

            self._token = token
            self._token_expiry = self.clock() + expires_in
            logger.debug(f"Dataverse token refreshed, valid for {expires_in}s")
            return token

    @staticmethod
    def _parse_token(data: Dict[str, Any]) -> tuple:
        # The flow wraps the token in "body"; older flows return it at top level
        body = data.get("body") if isinstance(data.get("body"), dict) else None
        if body and body.get("access_token"):
            return body["access_token"], int(body.get("expires_in") or DEFAULT_TOKEN_LIFETIME)
        if data.get("access_token"):
            return data["access_token"], int(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME)
        if data.get("token"):
            return data["token"], DEFAULT_TOKEN_LIFETIME
        return None, DEFAULT_TOKEN_LIFETIME

    def _headers(self, annotations: bool = False) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if annotations:
            headers["Prefer"] = 'odata.include-annotations="*"'
        return headers

    # ========================================================================
    # LOW LEVEL HTTP
    # ========================================================================

    def _get(self, path_or_url: str, params: Optional[Dict[str, str]] = None, annotations: bool = False):
        url = path_or_url if path_or_url.startswith("http") else f"{self.api_url}/{path_or_url}"
        try:
            return self.http.get(url, params=params, headers=self._headers(annotations), timeout=self.timeout)
        except requests.RequestException as e:
            raise DataverseError(f"Network error: {e}") from e

    def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = self._get(path, params)
        if not response.ok:
            raise DataverseError(
                f"API error ({response.status_code}): {response.text or response.reason}",
                status=response.status_code,
            )
        return response.json()

    def _get_all(self, entity_set: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        """Fetch every page of a collection query."""
        records: List[Dict[str, Any]] = []
        url: Optional[str] = entity_set
        page_params: Optional[Dict[str, str]] = params
        while url:
            response = self._get(url, page_params, annotations=True)
            if not response.ok:
                raise DataverseError(
                    f"API error ({response.status_code}): {response.text or response.reason}",
                    status=response.status_code,
                )
            data = response.json()
            batch = data.get("value") or []
            records.extend(batch)
            url = data.get("@odata.nextLink")
            page_params = None  # nextLink already carries the query
        return records

    # ========================================================================
    # ORDER / DETAIL PROVIDER
    # ========================================================================

    async def fetch_customer(self, customer_id: str) -> Customer:
        return await run_in_threadpool(self._fetch_customer, customer_id)

    def _fetch_customer(self, customer_id: str) -> Customer:
        clean_id = RecordId.normalize(customer_id).value
        item = self._get_json(
            f"crdfd_customers({clean_id})",
            {"$select": "crdfd_customerid,crdfd_name"},
        )
        return Customer(
            id=item.get("crdfd_customerid") or clean_id,
            name=item.get("crdfd_name") or "Unnamed customer",
        )

    async def fetch_orders(self, customer_id: str) -> List[SalesOrder]:
        """Open orders of a customer, with a live detail-line count per order."""
        clean_id = RecordId.normalize(customer_id).value
        order_filter = f"_crdfd_khachhang_value eq {clean_id} and statecode eq 0"
        if self.delivered_status is not None:
            order_filter += f" and crdfd_trangthaigiaonhan1 ne {self.delivered_status}"
        params = {
            "$select": "crdfd_sale_orderid,crdfd_name,cr1bb_hinhthucgiaohang,crdfd_soonhangchitiet",
            "$filter": order_filter,
        }
        raw_orders = await run_in_threadpool(self._get_all, "crdfd_sale_orders", params)

        # The rollup count lags by hours; count detail lines directly instead
        counts = await asyncio.gather(
            *(run_in_threadpool(self._count_details, raw) for raw in raw_orders)
        )
        return [
            SalesOrder(
                id=raw["crdfd_sale_orderid"],
                so_number=raw.get("crdfd_name") or "SO (no number)",
                delivery_method=raw.get("cr1bb_hinhthucgiaohang"),
                priority="Normal",
                sod_count=count,
            )
            for raw, count in zip(raw_orders, counts)
        ]

    def _count_details(self, raw_order: Dict[str, Any]) -> int:
        fallback = _as_int(raw_order.get("crdfd_soonhangchitiet"))
        params = {
            "$filter": f"_crdfd_socode_value eq {raw_order['crdfd_sale_orderid']}",
            "$top": "0",
            "$count": "true",
        }
        try:
            response = self._get("crdfd_saleorderdetails", params, annotations=True)
            if response.ok:
                count = response.json().get("@odata.count")
                if isinstance(count, int):
                    return count
        except DataverseError as e:
            logger.warning(f"Could not fetch live line count for order {raw_order.get('crdfd_name')}: {e}")
        return fallback

    async def fetch_line_items(self, order: SalesOrder) -> List[LineItem]:
        return await run_in_threadpool(self._fetch_line_items, order)

    def _fetch_line_items(self, order: SalesOrder) -> List[LineItem]:
        clean_id = RecordId.normalize(order.id).value
        detail_filter = f"statecode eq 0 and _crdfd_socode_value eq {clean_id}"
        if self.delivered_status is not None:
            detail_filter += f" and crdfd_trangthaionhang1 ne {self.delivered_status}"
        params = {
            "$select": (
                "crdfd_name,crdfd_saleorderdetailid,crdfd_soluongconlaitheokhonew,"
                "crdfd_exdeliverrydate,crdfd_tensanphamtext,crdfd_masanpham,crdfd_vitrikho"
            ),
            "$filter": detail_filter,
            "$expand": PLAN_EXPAND,
        }
        records = self._get_all("crdfd_saleorderdetails", params)

        # $expand is a left join; keep only lines that actually have a plan line
        with_plan = [r for r in records if isinstance(r.get(PLAN_NAV), list) and r[PLAN_NAV]]
        now = datetime.now(timezone.utc).isoformat()
        return [self._map_line_item(raw, order.so_number, now) for raw in with_plan]

    @staticmethod
    def _map_line_item(raw: Dict[str, Any], so_number: str, now: str) -> LineItem:
        ordered = _as_int(raw.get("crdfd_soluongconlaitheokhonew"))
        return LineItem(
            id=raw["crdfd_saleorderdetailid"],
            detail_name=raw.get("crdfd_name") or "N/A",
            so_number=so_number or "",
            product=Product(
                sku=raw.get("crdfd_masanpham") or "UNKNOWN",
                name=raw.get("crdfd_tensanphamtext") or "Unnamed product",
            ),
            quantity_ordered=ordered,
            quantity_delivered=0,
            # Warehouse enters availability by hand
            quantity_available=0,
            warehouse_location=raw.get("crdfd_vitrikho"),
            status=initial_status(ordered, 0, 0),
            source_plan=SourcePlan(
                status=SourcePlanStatus.CONFIRMED,
                eta=raw.get("crdfd_exdeliverrydate"),
                supplier="",
                timestamp=now,
            ),
        )

    # ========================================================================
    # HISTORY STORE
    # ========================================================================

    async def read_snapshot(self, record_id: Optional[str]) -> Optional[WorkflowSnapshot]:
        key = RecordId.normalize(record_id)
        if not key:
            return None
        return await run_in_threadpool(self._read_history, key.value)

    def _read_history(self, key: str) -> Optional[WorkflowSnapshot]:
        response = self._get(f"crdfd_order_requests({key})", {"$select": "crdfd_history"})
        if not response.ok:
            logger.warning(f"Failed to fetch history for request {key}: HTTP {response.status_code}")
            return None
        raw = response.json().get("crdfd_history")
        if not raw:
            return None
        return parse_snapshot(raw)

    async def write_snapshot(self, record_id: Optional[str], snapshot: WorkflowSnapshot) -> bool:
        key = RecordId.normalize(record_id)
        if not key:
            return False
        return await run_in_threadpool(self._write_history, key.value, snapshot)

    def _write_history(self, key: str, snapshot: WorkflowSnapshot) -> bool:
        url = f"{self.api_url}/crdfd_order_requests({key})"
        try:
            headers = self._headers()
            headers["If-Match"] = "*"  # Update only, never create
            response = self.http.patch(
                url,
                data=json.dumps({"crdfd_history": dump_snapshot(snapshot)}),
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.RequestException, DataverseError) as e:
            logger.error(f"Update history error for request {key}: {e}")
            return False

        if not response.ok:
            logger.error(f"Failed to save history for request {key}: {response.text}")
            return False
        return True
