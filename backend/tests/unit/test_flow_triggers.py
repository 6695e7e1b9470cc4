"""
Unit tests for the Power Automate notifier payloads.
"""
import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from sodflow.integrations.flow_triggers import FlowNotifier

from tests.factories import make_plan, make_sod

NOTIFY_URL = "https://flow.example.com/notify"
DECISION_URL = "https://flow.example.com/decision"


@pytest.fixture
def http():
    session = MagicMock(spec=requests.Session)
    session.post.return_value = MagicMock(ok=True, status_code=202)
    return session


@pytest.fixture
def flow(http):
    return FlowNotifier(NOTIFY_URL, DECISION_URL, http=http)


def _sent(http):
    call = http.post.call_args
    return call.args[0], call.kwargs["json"]


class TestPayloads:
    def test_shortage_notice(self, flow, http):
        sod = make_sod(id="d-1", detail_name="SOD-1", ordered=10, available=4)

        assert asyncio.run(flow.notify_sale_of_shortage(sod)) is True

        url, payload = _sent(http)
        assert url == NOTIFY_URL
        assert payload["Type"] == "WAREHOUSE_TO_SALE"
        assert payload["SodId"] == "d-1"
        assert payload["SodName"] == "SOD-1"
        assert payload["Sku"] == sod.product.sku
        assert "6" in payload["Message"]
        assert "Details" not in payload

    def test_source_plan_uses_eta_as_timestamp(self, flow, http):
        sod = make_sod(source_plan=make_plan(eta="2026-05-01", supplier="Acme"))

        asyncio.run(flow.notify_sale_of_source_plan(sod))

        _, payload = _sent(http)
        assert payload["Type"] == "SOURCE_TO_SALE"
        assert payload["Timestamp"] == "2026-05-01"
        assert payload["Details"]["supplier"] == "Acme"

    def test_warehouse_ship_decision(self, flow, http):
        asyncio.run(flow.notify_warehouse_of_ship_decision(make_sod(), 4))

        _, payload = _sent(http)
        assert payload["Type"] == "SALE_TO_WAREHOUSE"
        assert payload["Details"] == {"quantityToShip": 4}

    def test_wait_decision(self, flow, http):
        asyncio.run(flow.notify_source_of_wait_decision(make_sod()))

        assert _sent(http)[1]["Type"] == "SALE_TO_SOURCE"

    def test_partial_shipment_goes_to_decision_flow(self, flow, http):
        sod = make_sod(id="d-9", detail_name="SOD-9")

        asyncio.run(flow.trigger_partial_shipment(sod, 6))

        url, payload = _sent(http)
        assert url == DECISION_URL
        assert payload == {
            "Tên đơn hàng SOD": "SOD-9",
            "ID đơn hàng SOD": "d-9",
            "SL thiếu": 6,
            "Type": "CHOTDON_HUYPHIEU",
        }


class TestFailures:
    def test_http_error_returns_false(self, flow, http):
        http.post.return_value = MagicMock(ok=False, status_code=500, reason="Server Error")

        assert asyncio.run(flow.notify_sale_of_shortage(make_sod())) is False

    def test_network_error_returns_false(self, flow, http):
        http.post.side_effect = requests.Timeout("slow")

        assert asyncio.run(flow.trigger_partial_shipment(make_sod(), 1)) is False

    def test_unconfigured_url_skips(self, http):
        flow = FlowNotifier(None, None, http=http)

        assert asyncio.run(flow.notify_source_of_wait_decision(make_sod())) is False
        http.post.assert_not_called()
