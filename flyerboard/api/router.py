"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from flyerboard.api.admin import router as admin_router
from flyerboard.api.events import router as events_router
from flyerboard.api.health import router as health_router
from flyerboard.api.submissions import router as submissions_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(submissions_router)
api_router.include_router(events_router)
api_router.include_router(admin_router)
