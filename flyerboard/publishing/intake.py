"""
Upload intake: validate a photo, store it, create the Submission.
Validation happens first, so a rejected upload leaves no trace.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.models.enums import SubmissionStatus
from flyerboard.models.tables import Submission
from flyerboard.observability.metrics import (
    submissions_rejected_total,
    submissions_uploaded_total,
)
from flyerboard.pipeline.errors import InputValidationError
from flyerboard.pipeline.images import validate_image
from flyerboard.storage.artifact_store import ArtifactStore
from flyerboard.storage.paths import image_hash, raw_image_path

logger = structlog.get_logger(__name__)


async def create_submission(
    session: AsyncSession,
    store: ArtifactStore,
    data: bytes,
    max_bytes: int,
    file_name: Optional[str] = None,
) -> Submission:
    """Raises InputValidationError before anything is written."""
    try:
        info = validate_image(data, max_bytes)
    except InputValidationError as e:
        submissions_rejected_total.labels(error_code=e.error_code).inc()
        logger.info("upload_rejected", error_code=e.error_code, file_name=file_name,
                    size_bytes=len(data))
        raise

    submission_id = uuid.uuid4()
    relative_path = raw_image_path(str(submission_id), info.extension)
    store.save_bytes(relative_path, data)

    submission = Submission(
        submission_id=submission_id,
        image_uri=relative_path,
        file_name=file_name or f"upload.{info.extension}",
        content_type=info.content_type,
        size_bytes=info.size_bytes,
        image_hash=image_hash(data),
        status=SubmissionStatus.UPLOADED.value,
    )
    try:
        session.add(submission)
        await session.flush()
    except SQLAlchemyError:
        store.delete_submission_artifacts(str(submission_id))
        raise

    submissions_uploaded_total.inc()
    logger.info(
        "submission_created",
        submission_id=str(submission_id),
        content_type=info.content_type,
        size_bytes=info.size_bytes,
        image_hash=submission.image_hash,
    )
    return submission
