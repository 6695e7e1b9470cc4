"""
History reconciliation.

Freshly fetched line items know nothing about decisions taken in earlier
sessions. A workflow snapshot carries that state; merging it onto the fresh
items (by normalized id) restores the session. The reverse direction,
build_snapshot(), serializes the in-memory state for persistence.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote

from pydantic import ValidationError as PydanticValidationError

from sodflow.logging_config import get_logger
from sodflow.schemas.snapshot import SnapshotContext, SnapshotEntry, WorkflowSnapshot
from sodflow.schemas.sod import LineItem
from sodflow.services.identifiers import RecordId

logger = get_logger(__name__)


def merge_snapshot_into_items(
    fresh_items: Iterable[LineItem],
    snapshot: Optional[WorkflowSnapshot],
) -> List[LineItem]:
    """
    Overlay saved workflow state onto freshly fetched line items.

    For a matching entry: quantity_available and status are taken when present,
    notification_sent defaults to False, sale_decision and source_plan replace
    the fetched value only when the snapshot has one. Items without an entry,
    and snapshot keys without an item, are left alone.
    """
    items = list(fresh_items)
    if snapshot is None or not snapshot.items:
        return items

    by_id: Dict[RecordId, SnapshotEntry] = {
        RecordId.normalize(key): entry for key, entry in snapshot.items.items()
    }

    merged = []
    for item in items:
        entry = by_id.get(RecordId.normalize(item.id))
        if entry is None:
            merged.append(item)
            continue

        update: Dict[str, Any] = {"notification_sent": bool(entry.notification_sent)}
        if entry.quantity_available is not None:
            update["quantity_available"] = entry.quantity_available
        if entry.status is not None:
            update["status"] = entry.status
        if entry.sale_decision is not None:
            update["sale_decision"] = entry.sale_decision
        if entry.source_plan is not None:
            update["source_plan"] = entry.source_plan
        merged.append(item.model_copy(update=update))

    return merged


def build_snapshot(
    items: Iterable[LineItem],
    context: SnapshotContext,
    now: Optional[datetime] = None,
) -> WorkflowSnapshot:
    """Serialize the overlay-relevant state of every item, keyed by its id as received."""
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    entries = {
        item.id: SnapshotEntry(
            quantity_available=item.quantity_available,
            status=item.status,
            notification_sent=item.notification_sent,
            sale_decision=item.sale_decision,
            source_plan=item.source_plan,
        )
        for item in items
    }
    return WorkflowSnapshot(timestamp=timestamp, context=context.model_copy(), items=entries)


def dump_snapshot(snapshot: WorkflowSnapshot) -> str:
    """JSON text in the stored wire format."""
    return snapshot.model_dump_json(by_alias=True)


def parse_snapshot(raw: Any) -> Optional[WorkflowSnapshot]:
    """
    Read a snapshot from a dict, JSON text or URL-encoded JSON text.

    Anything unreadable means "no history": the caller proceeds as if the
    session were new.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, WorkflowSnapshot):
        return raw

    data = raw
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data = _loads_lenient(text)
        if data is None:
            logger.warning("Ignoring snapshot: not valid JSON")
            return None

    if not isinstance(data, dict):
        logger.warning(f"Ignoring snapshot: expected an object, got {type(data).__name__}")
        return None

    try:
        return WorkflowSnapshot.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"Ignoring snapshot: {e.error_count()} invalid field(s)")
        return None


def _loads_lenient(text: str) -> Any:
    # URL-decoded first, raw second
    for candidate in (unquote(text), text):
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
    return None


def parse_embedded_snapshot(value: Optional[str]) -> Tuple[Optional[WorkflowSnapshot], Optional[str]]:
    """
    Snapshot passed inline in the bootstrap parameters.

    Returns (snapshot, source) where source is "URL" when the value had to be
    URL-decoded first and "URL_RAW" when only the raw text parsed.
    """
    if not value:
        return None, None
    for source, candidate in (("URL", unquote(value)), ("URL_RAW", value)):
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        snapshot = parse_snapshot(data)
        return (snapshot, source) if snapshot is not None else (None, None)
    logger.warning("Failed to parse history from bootstrap parameters")
    return None, None
