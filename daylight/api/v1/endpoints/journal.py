from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Request, status

from daylight.api.v1.dependencies import get_job_service
from daylight.core.auth import get_current_user
from daylight.core.config import settings
from daylight.core.exceptions import AppError
from daylight.schemas.auth import CurrentUser
from daylight.schemas.common import ApiResponse
from daylight.schemas.jobs import ExtractionSubmitRequest, JobRecord, JobSubmissionResponse
from daylight.services.job_service import JobService
from daylight.utils.logging import get_logger
from daylight.utils.responses import create_api_response, http_exception_from_error

LOGGER = get_logger(__name__)

router = APIRouter()


def _submission(record: JobRecord, message: str) -> JobSubmissionResponse:
    return JobSubmissionResponse(
        job_id=record.id,
        journal_entry_id=record.journal_entry_id,
        status=record.status,
        stream_url=f"{settings.api_v1_prefix}/jobs/{record.id}/stream",
        message=message,
    )


@router.post(
    "/{journal_entry_id}/submit",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a journal entry for extraction",
    operation_id="submit_journal_entry",
)
async def submit_journal_entry(
    request: Request,
    journal_entry_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    job_service: Annotated[JobService, Depends(get_job_service)],
    payload: Annotated[Optional[ExtractionSubmitRequest], Body()] = None,
) -> ApiResponse:
    """Create an extraction job. The result arrives through the job stream."""
    payload = payload or ExtractionSubmitRequest()
    try:
        record = await job_service.submit_extraction(
            user_id=current_user.id,
            journal_entry_id=journal_entry_id,
            evidence_ids=payload.evidence_ids,
            timezone=payload.timezone,
        )
    except AppError as e:
        LOGGER.warning(f"Submission rejected for entry {journal_entry_id}: {e.message}")
        raise http_exception_from_error(e, request) from e

    return create_api_response(
        data=_submission(record, "Extraction started"),
        message="Journal entry submitted for processing",
        request=request,
    )


@router.post(
    "/{journal_entry_id}/reprocess",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Discard previous events and extract again",
    operation_id="reprocess_journal_entry",
)
async def reprocess_journal_entry(
    request: Request,
    journal_entry_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    job_service: Annotated[JobService, Depends(get_job_service)],
    payload: Annotated[Optional[ExtractionSubmitRequest], Body()] = None,
) -> ApiResponse:
    payload = payload or ExtractionSubmitRequest()
    try:
        record = await job_service.reprocess_entry(
            user_id=current_user.id,
            journal_entry_id=journal_entry_id,
            timezone=payload.timezone,
        )
    except AppError as e:
        LOGGER.warning(f"Reprocess rejected for entry {journal_entry_id}: {e.message}")
        raise http_exception_from_error(e, request) from e

    return create_api_response(
        data=_submission(record, "Reprocessing started"),
        message="Journal entry submitted for reprocessing",
        request=request,
    )
