"""
Line item (SOD) actions.

Each action runs as the session's role. An action the role or the line's
state does not allow returns 200 with ``changed: false``.
"""
from fastapi import APIRouter, Depends

from sodflow.api.v1.deps import get_orchestrator
from sodflow.schemas.session import (
    ActionResponse,
    AvailableUpdate,
    SaleDecisionRequest,
    SODCard,
    SourcePlanRequest,
)
from sodflow.services.sod_filters import build_card
from sodflow.services.sod_status import Transition
from sodflow.services.workflow import WorkflowOrchestrator

router = APIRouter(prefix="/sessions/{session_id}/sods", tags=["sods"])


def _action_response(orchestrator: WorkflowOrchestrator, transition: Transition) -> ActionResponse:
    card = build_card(transition.item, orchestrator.session.role)
    return ActionResponse(changed=transition.changed, item=SODCard.model_validate(card))


@router.put("/{sod_id}/available", response_model=ActionResponse)
async def set_available(
    sod_id: str,
    body: AvailableUpdate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Warehouse: record the quantity on hand"""
    transition = await orchestrator.set_available(sod_id, body.quantity_available)
    return _action_response(orchestrator, transition)


@router.post("/{sod_id}/notify-sale", response_model=ActionResponse)
async def notify_sale(
    sod_id: str,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Warehouse: confirm the shortage to Sale"""
    transition = await orchestrator.send_shortage_notice(sod_id)
    return _action_response(orchestrator, transition)


@router.post("/{sod_id}/sale-decision", response_model=ActionResponse)
async def sale_decision(
    sod_id: str,
    body: SaleDecisionRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Sale: ship what is available, or wait for Source"""
    transition = await orchestrator.decide(sod_id, body.action, note=body.note)
    return _action_response(orchestrator, transition)


@router.post("/{sod_id}/source-plan", response_model=ActionResponse)
async def source_plan(
    sod_id: str,
    body: SourcePlanRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """Source: commit to an ETA and supplier"""
    transition = await orchestrator.confirm_source_plan(sod_id, body.eta, supplier=body.supplier)
    return _action_response(orchestrator, transition)
