"""
FastAPI dependency injection.
Everything is built once in the application lifespan and kept on app.state.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.config import Settings
from flyerboard.pipeline.orchestrator import SubmissionPipeline
from flyerboard.pipeline.promotion import CandidatePromoter
from flyerboard.storage.artifact_store import ArtifactStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_artifact_store(request: Request) -> ArtifactStore:
    return request.app.state.store


def get_pipeline(request: Request) -> SubmissionPipeline:
    return request.app.state.pipeline


def get_promoter(request: Request) -> CandidatePromoter:
    return request.app.state.pipeline.promoter


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an async DB session; commit on success, roll back on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    settings: Settings = Depends(get_app_settings),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key
