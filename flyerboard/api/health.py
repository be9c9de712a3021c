"""
Health check endpoints.
/health always returns 200; database trouble is reported in the body.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Liveness plus a database probe and the selected capabilities."""
    settings = request.app.state.settings
    db_ok = False
    db_error = None
    try:
        async with request.app.state.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            db_ok = result.scalar() == 1
    except Exception as e:
        db_error = str(e)[:200]

    response = {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "pipeline_version": settings.PIPELINE_VERSION,
        "database": "connected" if db_ok else "unreachable",
        "capabilities": request.app.state.pipeline.capabilities.describe(),
    }
    if db_error:
        response["database_error"] = db_error

    return response


@router.get("/health/ready")
async def readiness_check(request: Request):
    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
            return {"ready": True}
    except Exception:
        return {"ready": False}
