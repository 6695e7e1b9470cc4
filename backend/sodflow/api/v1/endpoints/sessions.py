"""
Session endpoints: bootstrap, state, order selection, close.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from sodflow.api.v1.deps import (
    SessionRegistry,
    get_history_store,
    get_notifier,
    get_orchestrator,
    get_provider,
    get_registry,
    get_status_service,
)
from sodflow.core.config import settings
from sodflow.core.status_config import SODStatus
from sodflow.exceptions import NotFoundError, ValidationError
from sodflow.logging_config import get_logger
from sodflow.schemas.session import SessionCreate, SessionResponse, SODCard
from sodflow.services.bootstrap import initialize_session
from sodflow.services.collaborators import HistoryStore, Notifier, OrderDetailProvider
from sodflow.services.outbox import Outbox
from sodflow.services.sod_filters import ALL_STATUSES, build_card, filter_items, sort_shortage_first
from sodflow.services.sod_status import SODStatusService
from sodflow.services.workflow import WorkflowOrchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def build_session_response(
    orchestrator: WorkflowOrchestrator,
    search: Optional[str] = None,
    status_filter: Optional[str] = ALL_STATUSES,
) -> SessionResponse:
    session = orchestrator.session
    items = sort_shortage_first(filter_items(session.items, search, status_filter))
    return SessionResponse(
        session_id=session.session_id,
        role=session.role,
        department=session.department,
        sale_id=session.sale_id,
        record_id=session.record_id.value or None,
        customer=session.customer,
        orders=session.orders,
        active_order=session.active_order,
        restored_from=session.restored_from,
        error=session.error,
        items=[SODCard.model_validate(build_card(item, session.role)) for item in items],
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreate,
    registry: SessionRegistry = Depends(get_registry),
    provider: OrderDetailProvider = Depends(get_provider),
    history_store: HistoryStore = Depends(get_history_store),
    notifier: Notifier = Depends(get_notifier),
    status_service: SODStatusService = Depends(get_status_service),
):
    """
    Open a session from the host's bootstrap parameters.

    Initialization problems (no customer, data platform unreachable) come
    back in ``error`` on a created session rather than as an HTTP error.
    """
    outbox = Outbox(notifier, auto_dispatch=settings.OUTBOX_AUTO_DISPATCH)
    orchestrator = await initialize_session(
        body.params, provider, history_store, outbox, status_service
    )
    registry.add(orchestrator)
    return build_session_response(orchestrator)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    search: Optional[str] = Query(None, description="Search SO number, SKU, product, line"),
    status_filter: str = Query(ALL_STATUSES, alias="status"),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    if status_filter != ALL_STATUSES:
        try:
            SODStatus(status_filter)
        except ValueError:
            raise ValidationError("Unknown status filter", field="status", value=status_filter)
    return build_session_response(orchestrator, search, status_filter)


@router.post("/{session_id}/orders/{order_id}/select", response_model=SessionResponse)
async def select_order(
    order_id: str,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    order = orchestrator.session.find_order(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    await orchestrator.select_order(order)
    return build_session_response(orchestrator)


@router.delete("/{session_id}/order", response_model=SessionResponse)
async def clear_order(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    orchestrator.clear_order()
    return build_session_response(orchestrator)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
):
    """Close a session: queued notifications are delivered before it is dropped."""
    orchestrator = registry.get(session_id)
    await orchestrator.close()
    registry.remove(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
