"""
SQL-backed history store.

Keeps one JSON snapshot per order request row. Reads and writes run in the
threadpool so the event loop is never blocked by the database driver.
"""
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sodflow.logging_config import get_logger
from sodflow.models.order_request import OrderRequest
from sodflow.schemas.snapshot import WorkflowSnapshot
from sodflow.services.history import dump_snapshot, parse_snapshot
from sodflow.services.identifiers import RecordId

logger = get_logger(__name__)


class SqlHistoryStore:
    """HistoryStore over the order_requests table. Last writer wins."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def read_snapshot(self, record_id: Optional[str]) -> Optional[WorkflowSnapshot]:
        key = RecordId.normalize(record_id)
        if not key:
            return None
        raw = await run_in_threadpool(self._read, key.value)
        if not raw:
            return None
        return parse_snapshot(raw)

    async def write_snapshot(self, record_id: Optional[str], snapshot: WorkflowSnapshot) -> bool:
        key = RecordId.normalize(record_id)
        if not key:
            return False
        try:
            await run_in_threadpool(self._write, key.value, dump_snapshot(snapshot))
        except SQLAlchemyError as e:
            logger.error(f"Failed to save history for request {key}: {e}")
            return False
        return True

    def _read(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            row = db.get(OrderRequest, key)
            return row.history if row else None
        finally:
            db.close()

    def _write(self, key: str, payload: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(OrderRequest, key)
            if row is None:
                row = OrderRequest(id=key)
                db.add(row)
            row.history = payload
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
