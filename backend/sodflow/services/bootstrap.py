"""
Session bootstrap.

Turns the parameter set a session is opened with into a ready SessionContext:
role, customer, open orders, saved workflow state, and (when the parameters
point at one) the auto-selected order with its lines.

Saved state comes from the "historyValue" parameter when present, otherwise
from the history store. The store read runs in the background while the
customer and orders load; only the first order-detail merge waits for it.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl, unquote

from sodflow.core.config import settings
from sodflow.core.roles import resolve_role
from sodflow.core.status_config import UserRole
from sodflow.exceptions import BootstrapError, FetchError, IntegrationError
from sodflow.logging_config import get_logger
from sodflow.services.collaborators import HistoryStore, OrderDetailProvider
from sodflow.services.history import parse_embedded_snapshot
from sodflow.services.identifiers import RecordId
from sodflow.services.outbox import Outbox
from sodflow.services.sod_status import SODStatusService
from sodflow.services.workflow import SessionContext, WorkflowOrchestrator

logger = get_logger(__name__)


@dataclass
class BootstrapContext:
    """Resolved bootstrap parameters."""
    customer_id: Optional[str] = None
    record_id: RecordId = field(default_factory=lambda: RecordId(""))
    sale_id: Optional[str] = None
    history_value: Optional[str] = None
    department: Optional[str] = None
    role_hint: Optional[str] = None


def decode_wrapped_params(data: Optional[str]) -> Dict[str, str]:
    """
    Parse the wrapped ``data`` parameter, itself a query string.

    Hosts encode it once or twice; a second decode is kept only when it
    leaves no escape sequences behind.
    """
    if not data:
        return {}
    decoded = unquote(data)
    if "%" in decoded or "http" in decoded:
        second = unquote(decoded)
        if "%" not in second:
            decoded = second
    return dict(parse_qsl(decoded.lstrip("?"), keep_blank_values=False))


def resolve_bootstrap_params(params: Mapping[str, str]) -> BootstrapContext:
    """
    Merge top-level and wrapped parameters.

    Wrapped values win for customerId and recordId; top-level values win
    for department, saleID and historyValue.
    """
    wrapped = decode_wrapped_params(params.get("data"))

    def first(*values: Optional[str]) -> Optional[str]:
        for value in values:
            if value:
                return value
        return None

    return BootstrapContext(
        customer_id=first(wrapped.get("customerId"), params.get("customerId")),
        record_id=RecordId.normalize(first(wrapped.get("recordId"), params.get("recordId"))),
        sale_id=first(params.get("saleID"), wrapped.get("saleID")),
        history_value=first(params.get("historyValue"), wrapped.get("historyValue")),
        department=first(
            params.get("department"),
            params.get("phongBan"),
            wrapped.get("department"),
            wrapped.get("phongBan"),
        ),
        role_hint=params.get("role"),
    )


def _default_role() -> UserRole:
    try:
        return UserRole(settings.DEFAULT_ROLE)
    except ValueError:
        return UserRole.ADMIN


async def initialize_session(
    params: Mapping[str, str],
    provider: OrderDetailProvider,
    history_store: HistoryStore,
    outbox: Outbox,
    status_service: Optional[SODStatusService] = None,
    *,
    session_id: Optional[str] = None,
    default_customer_id: Optional[str] = None,
) -> WorkflowOrchestrator:
    """
    Build a session from its bootstrap parameters.

    Errors are recorded on session.error (one user-visible message) rather
    than raised, so the caller always gets a session back.
    """
    ctx = resolve_bootstrap_params(params)
    session = SessionContext(
        session_id=session_id or uuid.uuid4().hex,
        role=resolve_role(ctx.role_hint, ctx.department, default=_default_role()),
        department=ctx.department,
        sale_id=ctx.sale_id,
        record_id=ctx.record_id,
    )
    orchestrator = WorkflowOrchestrator(session, provider, history_store, outbox, status_service)
    logger.info(
        f"Session {session.session_id}: role {session.role.value}",
        extra={"department": ctx.department, "record_id": str(ctx.record_id) or None},
    )

    # Saved state: inline parameter first, history store second
    snapshot, source = parse_embedded_snapshot(ctx.history_value)
    if snapshot is not None:
        session.snapshot = snapshot
        session.restored_from = source
    elif session.record_id:
        session.snapshot_task = asyncio.ensure_future(
            history_store.read_snapshot(session.record_id.value)
        )

    customer_id = RecordId.normalize(ctx.customer_id) or RecordId.normalize(
        default_customer_id if default_customer_id is not None else settings.DEFAULT_CUSTOMER_ID
    )
    if not customer_id:
        session.error = "Customer id (customerId) was not found."
        logger.warning(f"Session {session.session_id}: no customer id")
        await _settle_snapshot(orchestrator)
        return orchestrator
    session.customer_id = customer_id.value

    try:
        session.customer, session.orders = await asyncio.gather(
            provider.fetch_customer(customer_id.value),
            provider.fetch_orders(customer_id.value),
        )
    except (IntegrationError, BootstrapError) as e:
        session.error = f"Failed to initialize data: {e.message}"
        logger.error(f"Session {session.session_id}: {session.error}")
        await _settle_snapshot(orchestrator)
        return orchestrator

    target = session.find_order(session.record_id.value) if session.record_id else None
    if target is None:
        snapshot = await orchestrator.resolve_snapshot()
        if snapshot is not None and snapshot.context.order_id:
            target = session.find_order(snapshot.context.order_id)
            if target is not None:
                logger.info(f"Auto-selecting order {target.so_number} from history context")

    if target is not None:
        try:
            await orchestrator.select_order(target)
        except FetchError as e:
            session.error = f"Failed to initialize data: {e.message}"
            await _settle_snapshot(orchestrator)

    return orchestrator


async def _settle_snapshot(orchestrator: WorkflowOrchestrator) -> None:
    # Nothing will merge it; do not leave the read dangling
    if orchestrator.session.snapshot_task is not None:
        await orchestrator.resolve_snapshot()
