"""
API v1 Router
"""
from fastapi import APIRouter

from sodflow.api.v1.endpoints import sessions, sods, system

router = APIRouter()

# Session bootstrap and order selection
router.include_router(sessions.router)

# Warehouse / Sale / Source actions
router.include_router(sods.router)

# Health
router.include_router(system.router)
