"""
Shared test fixtures for SOD Flow tests

Provides fake collaborators, a clock-pinned status service and an API
client wired to the fakes.
"""
import os

# Notifications are drained explicitly in tests
os.environ.setdefault("OUTBOX_AUTO_DISPATCH", "false")
os.environ.setdefault("HISTORY_BACKEND", "dataverse")

import pytest
from fastapi.testclient import TestClient

from sodflow.api.v1 import deps
from sodflow.main import app
from sodflow.services.outbox import Outbox
from sodflow.services.sod_status import SODStatusService
from sodflow.services.workflow import SessionContext, WorkflowOrchestrator

from tests.factories import (
    FakeHistoryStore,
    FakeNotifier,
    FakeProvider,
    fixed_clock,
    reset_sequences,
)


@pytest.fixture(autouse=True)
def _reset_sequences():
    reset_sequences()
    yield


@pytest.fixture
def status_service():
    return SODStatusService(now=fixed_clock)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def history_store():
    return FakeHistoryStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def outbox(notifier):
    return Outbox(notifier, auto_dispatch=False)


@pytest.fixture
def make_orchestrator(provider, history_store, outbox, status_service):
    """Factory for an orchestrator over the fakes, with an optional record id."""
    def _make(record_id: str = "req-1", role="ADMIN", items=None, **kwargs):
        from sodflow.core.status_config import UserRole
        from sodflow.services.identifiers import RecordId

        session = SessionContext(
            session_id="test-session",
            role=UserRole(role),
            record_id=RecordId.normalize(record_id),
            items=list(items or []),
        )
        return WorkflowOrchestrator(
            session, provider, history_store, outbox, status_service, now=fixed_clock, **kwargs
        )
    return _make


@pytest.fixture
def client(provider, history_store, notifier, status_service):
    """Create a test client with collaborator overrides"""
    registry = deps.SessionRegistry()

    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_provider] = lambda: provider
    app.dependency_overrides[deps.get_history_store] = lambda: history_store
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_status_service] = lambda: status_service
    with TestClient(app) as test_client:
        test_client.registry = registry
        yield test_client
    app.dependency_overrides.clear()
