"""
System endpoints
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from sodflow.api.v1.deps import SessionRegistry, get_registry
from sodflow.core.config import settings

router = APIRouter(tags=["system"])


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    history_backend: str
    active_sessions: int
    timestamp: str


@router.get("/health", response_model=HealthResponse)
async def health_check(registry: SessionRegistry = Depends(get_registry)):
    return HealthResponse(
        status="healthy",
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        history_backend=settings.HISTORY_BACKEND,
        active_sessions=len(registry),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
