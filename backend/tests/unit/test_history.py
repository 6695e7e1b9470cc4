"""
Unit tests for history reconciliation: merge, build, parse.
"""
import json
from urllib.parse import quote

from sodflow.core.status_config import SaleAction, SODStatus
from sodflow.schemas.snapshot import SnapshotContext
from sodflow.services.history import (
    build_snapshot,
    dump_snapshot,
    merge_snapshot_into_items,
    parse_embedded_snapshot,
    parse_snapshot,
)

from tests.factories import FIXED_NOW, make_decision, make_plan, make_snapshot, make_sod

OVERLAY_FIELDS = ("quantity_available", "status", "notification_sent", "sale_decision", "source_plan")


def _overlay(item):
    return {name: getattr(item, name) for name in OVERLAY_FIELDS}


class TestMerge:
    def test_none_snapshot_returns_items_unchanged(self):
        items = [make_sod(), make_sod()]

        assert merge_snapshot_into_items(items, None) == items

    def test_restores_resolved_decision_over_fresh_fetch(self):
        """A restarted session shows the earlier decision, not the fresh PENDING_SALE"""
        fresh = make_sod(id="X", ordered=10)
        assert fresh.status == SODStatus.SHORTAGE_PENDING_SALE
        snapshot = make_snapshot(
            {
                "X": {
                    "status": SODStatus.RESOLVED,
                    "sale_decision": make_decision(SaleAction.SHIP_PARTIAL),
                }
            }
        )

        [merged] = merge_snapshot_into_items([fresh], snapshot)

        assert merged.status == SODStatus.RESOLVED
        assert merged.sale_decision.action == SaleAction.SHIP_PARTIAL
        assert merged.quantity_available == 0

    def test_ids_match_after_normalization(self):
        fresh = make_sod(id="{ABC-123}")
        snapshot = make_snapshot({" abc-123 ": {"quantity_available": 7, "notification_sent": True}})

        [merged] = merge_snapshot_into_items([fresh], snapshot)

        assert merged.quantity_available == 7
        assert merged.notification_sent is True

    def test_missing_fields_keep_fetched_values(self):
        plan = make_plan()
        fresh = make_sod(id="A", ordered=10, available=0, source_plan=plan, notification_sent=True)
        snapshot = make_snapshot({"A": {}})

        [merged] = merge_snapshot_into_items([fresh], snapshot)

        assert merged.quantity_available == 0
        assert merged.status == fresh.status
        assert merged.source_plan == plan
        # An entry without the flag means "not sent"
        assert merged.notification_sent is False

    def test_stored_null_plan_keeps_fetched_plan(self):
        """A null sourcePlan in history does not clear the plan the fetch attached"""
        plan = make_plan()
        fresh = make_sod(id="A", ordered=10, source_plan=plan)
        snapshot = make_snapshot({"A": {"status": SODStatus.SHORTAGE_PENDING_SOURCE, "source_plan": None}})

        [merged] = merge_snapshot_into_items([fresh], snapshot)

        assert merged.status == SODStatus.SHORTAGE_PENDING_SOURCE
        assert merged.source_plan == plan

    def test_unmatched_on_both_sides_ignored(self):
        fresh = make_sod(id="A")
        snapshot = make_snapshot({"B": {"quantity_available": 3}})

        assert merge_snapshot_into_items([fresh], snapshot) == [fresh]

    def test_merge_is_idempotent(self):
        items = [make_sod(id="A", ordered=10), make_sod(id="B", ordered=5)]
        snapshot = make_snapshot(
            {
                "a": {"quantity_available": 4, "notification_sent": True},
                "B": {"status": SODStatus.RESOLVED, "sale_decision": make_decision()},
            }
        )

        once = merge_snapshot_into_items(items, snapshot)
        twice = merge_snapshot_into_items(once, snapshot)

        assert twice == once

    def test_build_then_merge_reproduces_overlay(self):
        items = [
            make_sod(id="A", ordered=10, available=4, notification_sent=True, sale_decision=make_decision()),
            make_sod(id="B", ordered=5, available=5),
            make_sod(id="C", ordered=8, source_plan=make_plan(), status=SODStatus.RESOLVED),
        ]
        fresh = [make_sod(id=i.id, ordered=i.quantity_ordered) for i in items]

        snapshot = build_snapshot(items, SnapshotContext(order_id="o-1"))
        merged = merge_snapshot_into_items(fresh, snapshot)

        assert [_overlay(m) for m in merged] == [_overlay(i) for i in items]


class TestBuildAndDump:
    def test_keys_by_raw_id_and_records_context(self):
        item = make_sod(id="{ABC}", available=3)

        snapshot = build_snapshot([item], SnapshotContext(order_id="o-1", order_number="SO-1"), now=FIXED_NOW)

        assert list(snapshot.items) == ["{ABC}"]
        assert snapshot.timestamp == FIXED_NOW.isoformat()
        assert snapshot.context.order_number == "SO-1"

    def test_dump_uses_stored_field_names(self):
        item = make_sod(id="A", available=3, notification_sent=True)
        snapshot = build_snapshot([item], SnapshotContext(order_id="o-1", order_number="SO-1"), now=FIXED_NOW)

        data = json.loads(dump_snapshot(snapshot))

        assert data["context"] == {"orderId": "o-1", "orderNumber": "SO-1"}
        entry = data["sods"]["A"]
        assert entry["qtyAvailable"] == 3
        assert entry["isNotificationSent"] is True
        assert "saleDecision" in entry and "sourcePlan" in entry


class TestParse:
    STORED = {
        "timestamp": "2026-01-01T00:00:00Z",
        "context": {"orderId": "o-1", "orderNumber": "SO-1"},
        "sods": {"A": {"qtyAvailable": 2, "status": "SHORTAGE_PENDING_SOURCE", "extra": 1}},
    }

    def test_parses_dict_and_json_text(self):
        for raw in (self.STORED, json.dumps(self.STORED)):
            snapshot = parse_snapshot(raw)
            assert snapshot.context.order_id == "o-1"
            assert snapshot.items["A"].quantity_available == 2
            assert snapshot.items["A"].status == SODStatus.SHORTAGE_PENDING_SOURCE

    def test_parses_url_encoded_text(self):
        snapshot = parse_snapshot(quote(json.dumps(self.STORED)))

        assert snapshot is not None
        assert snapshot.items["A"].quantity_available == 2

    def test_malformed_payloads_mean_no_history(self):
        assert parse_snapshot(None) is None
        assert parse_snapshot("") is None
        assert parse_snapshot("{not json") is None
        assert parse_snapshot("[1, 2]") is None
        assert parse_snapshot({"sods": {"A": {"status": "BOGUS"}}}) is None

    def test_embedded_value_reports_source(self):
        text = json.dumps(self.STORED)

        snapshot, source = parse_embedded_snapshot(quote(text))
        assert snapshot is not None and source == "URL"

        assert parse_embedded_snapshot("garbage") == (None, None)
        assert parse_embedded_snapshot(None) == (None, None)
