"""
Unit tests for the Dataverse client with a mocked requests.Session.
"""
import asyncio
import json
from unittest.mock import MagicMock

import pytest
import requests

from sodflow.core.status_config import SODStatus, SourcePlanStatus
from sodflow.exceptions import DataverseError
from sodflow.integrations.dataverse import PLAN_NAV, DataverseClient

from tests.factories import make_order, make_snapshot

API = "https://org.example.com/api/data/v9.2"


def _response(status=200, payload=None, text=""):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload if payload is not None else {}
    response.text = text
    response.reason = "Error" if not response.ok else "OK"
    return response


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def http():
    session = MagicMock(spec=requests.Session)
    session.post.return_value = _response(payload={"body": {"access_token": "tok-1", "expires_in": 3600}})
    return session


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def client(http, clock):
    return DataverseClient(API, "https://flow.example.com/token", http=http, clock=clock)


class TestToken:
    def test_token_cached_until_refresh_margin(self, client, http, clock):
        assert client.get_access_token() == "tok-1"
        clock.now += 3600 - 301
        assert client.get_access_token() == "tok-1"
        assert http.post.call_count == 1

        clock.now += 2  # Inside the 300s margin
        client.get_access_token()
        assert http.post.call_count == 2

    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"access_token": "flat", "expires_in": 100}, "flat"),
            ({"token": "legacy"}, "legacy"),
        ],
    )
    def test_token_response_shapes(self, client, http, payload, expected):
        http.post.return_value = _response(payload=payload)

        assert client.get_access_token() == expected

    def test_missing_token_raises(self, client, http):
        http.post.return_value = _response(payload={"nothing": True})

        with pytest.raises(DataverseError):
            client.get_access_token()

    def test_auth_http_error_raises(self, client, http):
        http.post.return_value = _response(status=401)

        with pytest.raises(DataverseError):
            client.get_access_token()


class TestQueries:
    def test_paging_follows_next_link(self, client, http):
        http.get.side_effect = [
            _response(payload={"value": [{"n": 1}], "@odata.nextLink": f"{API}/things?page=2"}),
            _response(payload={"value": [{"n": 2}]}),
        ]

        records = client._get_all("things", {"$select": "n"})

        assert records == [{"n": 1}, {"n": 2}]
        second_call = http.get.call_args_list[1]
        assert second_call.args[0] == f"{API}/things?page=2"
        assert second_call.kwargs["params"] is None

    def test_fetch_customer(self, client, http):
        http.get.return_value = _response(payload={"crdfd_customerid": "c-1", "crdfd_name": "ACME"})

        customer = asyncio.run(client.fetch_customer("{C-1}"))

        assert customer.name == "ACME"
        assert http.get.call_args.args[0] == f"{API}/crdfd_customers(c-1)"
        assert http.get.call_args.kwargs["headers"]["Authorization"] == "Bearer tok-1"

    def test_fetch_orders_counts_lines_with_rollup_fallback(self, client, http):
        orders_page = _response(
            payload={
                "value": [
                    {"crdfd_sale_orderid": "o-1", "crdfd_name": "SO-1", "crdfd_soonhangchitiet": 2},
                    {"crdfd_sale_orderid": "o-2", "crdfd_name": None, "crdfd_soonhangchitiet": 5},
                ]
            }
        )

        def get(url, params=None, headers=None, timeout=None):
            if url.endswith("crdfd_sale_orders"):
                return orders_page
            if "o-1" in params["$filter"]:
                return _response(payload={"@odata.count": 7, "value": []})
            return _response(status=500)

        http.get.side_effect = get

        orders = asyncio.run(client.fetch_orders("c-1"))

        assert [(o.id, o.so_number, o.sod_count) for o in orders] == [
            ("o-1", "SO-1", 7),
            ("o-2", "SO (no number)", 5),
        ]

    def test_delivered_status_filter_optional(self, http, clock):
        client = DataverseClient(API, "https://flow.example.com/token", http=http, clock=clock,
                                 delivered_status=191920001)
        http.get.return_value = _response(payload={"value": []})

        asyncio.run(client.fetch_orders("c-1"))

        assert "crdfd_trangthaigiaonhan1 ne 191920001" in http.get.call_args.kwargs["params"]["$filter"]

    def test_fetch_line_items_keeps_planned_lines_only(self, client, http):
        http.get.return_value = _response(
            payload={
                "value": [
                    {
                        "crdfd_saleorderdetailid": "d-1",
                        "crdfd_name": "SOD-1",
                        "crdfd_soluongconlaitheokhonew": 12.0,
                        "crdfd_masanpham": "SKU-1",
                        "crdfd_tensanphamtext": "Bolt",
                        "crdfd_exdeliverrydate": "2026-04-01",
                        PLAN_NAV: [{"crdfd_ton_kho_theo_ke_hoach": 0}],
                    },
                    {"crdfd_saleorderdetailid": "d-2", PLAN_NAV: []},
                ]
            }
        )

        items = asyncio.run(client.fetch_line_items(make_order(id="{O-1}", so_number="SO-1")))

        assert [i.id for i in items] == ["d-1"]
        item = items[0]
        assert item.quantity_ordered == 12
        assert item.quantity_available == 0
        assert item.status == SODStatus.SHORTAGE_PENDING_SALE
        assert item.source_plan.status == SourcePlanStatus.CONFIRMED
        assert item.source_plan.eta == "2026-04-01"
        assert "_crdfd_socode_value eq o-1" in http.get.call_args.kwargs["params"]["$filter"]

    def test_api_error_raises(self, client, http):
        http.get.return_value = _response(status=503, text="unavailable")

        with pytest.raises(DataverseError):
            asyncio.run(client.fetch_customer("c-1"))


class TestHistory:
    def test_read_snapshot(self, client, http):
        stored = json.dumps({"sods": {"A": {"qtyAvailable": 3}}})
        http.get.return_value = _response(payload={"crdfd_history": stored})

        snapshot = asyncio.run(client.read_snapshot("{REQ-1}"))

        assert snapshot.items["A"].quantity_available == 3
        assert http.get.call_args.args[0] == f"{API}/crdfd_order_requests(req-1)"

    def test_read_without_record_or_history(self, client, http):
        assert asyncio.run(client.read_snapshot("undefined")) is None
        http.get.return_value = _response(payload={"crdfd_history": None})
        assert asyncio.run(client.read_snapshot("req-1")) is None
        http.get.return_value = _response(status=404)
        assert asyncio.run(client.read_snapshot("req-1")) is None

    def test_write_snapshot_patches_existing_record(self, client, http):
        http.patch.return_value = _response(status=204)

        ok = asyncio.run(client.write_snapshot("req-1", make_snapshot({"A": {"quantity_available": 2}})))

        assert ok is True
        call = http.patch.call_args
        assert call.args[0] == f"{API}/crdfd_order_requests(req-1)"
        assert call.kwargs["headers"]["If-Match"] == "*"
        body = json.loads(call.kwargs["data"])
        assert json.loads(body["crdfd_history"])["sods"]["A"]["qtyAvailable"] == 2

    def test_write_failures_return_false(self, client, http):
        snapshot = make_snapshot({})
        http.patch.return_value = _response(status=412, text="precondition failed")
        assert asyncio.run(client.write_snapshot("req-1", snapshot)) is False

        http.patch.side_effect = requests.ConnectionError("down")
        assert asyncio.run(client.write_snapshot("req-1", snapshot)) is False

        assert asyncio.run(client.write_snapshot(None, snapshot)) is False
