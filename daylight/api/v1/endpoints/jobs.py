from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from daylight.api.v1.dependencies import get_job_service, get_sse_manager
from daylight.core.auth import get_current_user, get_current_user_from_query
from daylight.core.exceptions import AppError
from daylight.schemas.auth import CurrentUser
from daylight.schemas.common import ApiResponse
from daylight.services.job_service import JobService
from daylight.services.notifications.messages import format_job_message
from daylight.services.notifications.sse_manager import JobSSEManager
from daylight.utils.responses import create_api_response, http_exception_from_error

router = APIRouter()


@router.get(
    "/active",
    response_model=ApiResponse,
    summary="List the caller's pending and processing jobs",
    operation_id="list_active_jobs",
)
async def list_active_jobs(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> ApiResponse:
    """Used by clients to re-track in-flight jobs after a reload."""
    try:
        jobs = await job_service.list_active_jobs(current_user.id)
    except AppError as e:
        raise http_exception_from_error(e, request) from e
    return create_api_response(data=jobs, message=f"{len(jobs)} active job(s)", request=request)


@router.get(
    "/{job_id}",
    response_model=ApiResponse,
    summary="Get a job",
    operation_id="get_job",
)
async def get_job(
    request: Request,
    job_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> ApiResponse:
    try:
        record = await job_service.get_job(current_user.id, job_id)
    except AppError as e:
        raise http_exception_from_error(e, request) from e
    return create_api_response(data=record, message=format_job_message(record), request=request)


@router.post(
    "/{job_id}/cancel",
    response_model=ApiResponse,
    summary="Cancel a job that has not started",
    operation_id="cancel_job",
)
async def cancel_job(
    request: Request,
    job_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    job_service: Annotated[JobService, Depends(get_job_service)],
) -> ApiResponse:
    try:
        record = await job_service.cancel_job(current_user.id, job_id)
    except AppError as e:
        raise http_exception_from_error(e, request) from e
    return create_api_response(data=record, message="Job cancelled", request=request)


@router.get(
    "/{job_id}/stream",
    summary="Stream job status changes",
    operation_id="stream_job_events",
)
async def stream_job_events(
    request: Request,
    job_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user_from_query)],
    job_service: Annotated[JobService, Depends(get_job_service)],
    sse_manager: Annotated[JobSSEManager, Depends(get_sse_manager)],
) -> StreamingResponse:
    """Server-sent events for one job, closed after its terminal event."""
    try:
        await job_service.get_job(current_user.id, job_id)
    except AppError as e:
        raise http_exception_from_error(e, request) from e

    return StreamingResponse(
        sse_manager.stream_job_events(job_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
