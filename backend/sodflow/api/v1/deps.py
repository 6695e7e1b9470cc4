"""
API Dependencies

Collaborators built from settings and the in-memory session registry.
Each getter is a FastAPI dependency so tests can swap it through
app.dependency_overrides.
"""
from functools import lru_cache
from typing import Dict

from fastapi import Depends

from sodflow.core.config import settings
from sodflow.exceptions import NotFoundError
from sodflow.integrations.dataverse import DataverseClient
from sodflow.integrations.flow_triggers import FlowNotifier
from sodflow.logging_config import get_logger
from sodflow.services.collaborators import HistoryStore, Notifier, OrderDetailProvider
from sodflow.services.sod_status import SODStatusService, build_status_service
from sodflow.services.workflow import WorkflowOrchestrator

logger = get_logger(__name__)


class SessionRegistry:
    """Live sessions by id. Sessions end with the process."""

    def __init__(self):
        self._sessions: Dict[str, WorkflowOrchestrator] = {}

    def add(self, orchestrator: WorkflowOrchestrator) -> None:
        self._sessions[orchestrator.session.session_id] = orchestrator

    def get(self, session_id: str) -> WorkflowOrchestrator:
        orchestrator = self._sessions.get(session_id)
        if orchestrator is None:
            raise NotFoundError("Session", session_id)
        return orchestrator

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


session_registry = SessionRegistry()


def get_registry() -> SessionRegistry:
    return session_registry


@lru_cache
def _dataverse_client() -> DataverseClient:
    return DataverseClient.from_settings(settings)


def get_provider() -> OrderDetailProvider:
    return _dataverse_client()


@lru_cache
def _sql_history_store():
    from sodflow.db.session import SessionLocal
    from sodflow.services.history_store import SqlHistoryStore

    return SqlHistoryStore(SessionLocal)


def get_history_store() -> HistoryStore:
    if settings.HISTORY_BACKEND == "database":
        return _sql_history_store()
    return _dataverse_client()


@lru_cache
def get_notifier() -> Notifier:
    return FlowNotifier.from_settings(settings)


@lru_cache
def get_status_service() -> SODStatusService:
    return build_status_service()


def get_orchestrator(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> WorkflowOrchestrator:
    """Resolve the session named in the path"""
    return registry.get(session_id)
