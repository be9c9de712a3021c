"""
/v1/submissions endpoints.
Upload runs the whole pipeline inline and answers with the final status.
"""

import uuid

import structlog
from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.config import Settings
from flyerboard.dependencies import (
    get_app_settings,
    get_artifact_store,
    get_db,
    get_pipeline,
    verify_api_key,
)
from flyerboard.pipeline.errors import ExtractionFailure
from flyerboard.pipeline.orchestrator import SubmissionPipeline
from flyerboard.publishing.intake import create_submission
from flyerboard.publishing.status import build_submission_status
from flyerboard.schemas.submissions import SubmissionStatusView
from flyerboard.storage.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/submissions", tags=["submissions"])


@router.post("", response_model=SubmissionStatusView, status_code=status.HTTP_201_CREATED)
async def upload_submission(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
):
    """Upload a bulletin-board photo and process it."""
    file_bytes = await file.read()
    submission = await create_submission(
        session, store, file_bytes, settings.max_upload_bytes, file_name=file.filename
    )
    submission_id = submission.submission_id
    # The pipeline works in its own session
    await session.commit()

    try:
        await pipeline.process(submission_id)
    except ExtractionFailure as e:
        logger.warning("upload_extraction_failed", submission_id=str(submission_id),
                       error_code=e.error_code)
        view = await build_submission_status(session, submission_id)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=view.model_dump(mode="json", by_alias=True),
        )

    return await build_submission_status(session, submission_id)


@router.get("/{submission_id}", response_model=SubmissionStatusView)
async def get_submission_status(
    submission_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
):
    return await build_submission_status(session, submission_id)


@router.post(
    "/{submission_id}/reprocess",
    response_model=SubmissionStatusView,
    dependencies=[Depends(verify_api_key)],
)
async def reprocess_submission(
    submission_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    """Run a finished or failed submission through the pipeline again."""
    try:
        await pipeline.process(submission_id, reprocess=True)
    except ExtractionFailure:
        view = await build_submission_status(session, submission_id)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=view.model_dump(mode="json", by_alias=True),
        )
    return await build_submission_status(session, submission_id)
