from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException, Request, status as http_status

from daylight.core.exceptions import (
    AppError,
    InvalidJobStateError,
    JobConflictError,
    NotFoundError,
    ValidationError,
)
from daylight.schemas.common import ApiResponse, ErrorDetail, ResponseMeta

# Most specific first; the first isinstance match wins.
_ERROR_STATUS = (
    (ValidationError, http_status.HTTP_400_BAD_REQUEST, "Invalid Request"),
    (NotFoundError, http_status.HTTP_404_NOT_FOUND, "Not Found"),
    (JobConflictError, http_status.HTTP_409_CONFLICT, "Extraction Already In Progress"),
    (InvalidJobStateError, http_status.HTTP_409_CONFLICT, "Invalid Job State"),
)


def _request_id(request: Optional[Request]) -> str:
    if request is not None and hasattr(request.state, "correlation_id"):
        return request.state.correlation_id
    return str(uuid4())


def create_api_response(
    data: Any,
    message: str = "Operation successful",
    status: bool = True,
    request: Optional[Request] = None,
    api_version: str = "v1",
) -> Dict[str, Any]:
    """Create a standardized API response as a dictionary."""
    meta = ResponseMeta(
        timestamp=datetime.now(timezone.utc),
        request_id=_request_id(request),
        api_version=api_version,
    )

    if isinstance(data, dict):
        data_dict = data
    elif hasattr(data, "model_dump"):
        data_dict = data.model_dump(mode="json")
    elif isinstance(data, list):
        data_dict = {
            "items": [item.model_dump(mode="json") if hasattr(item, "model_dump") else item for item in data]
        }
    elif data is None:
        data_dict = {}
    else:
        data_dict = {"value": data}

    response = ApiResponse(status=status, message=message, data=data_dict, meta=meta)
    return response.model_dump(mode="json")


def create_error_detail(
    title: str,
    status: int,
    detail: str,
    request: Optional[Request] = None,
    instance: Optional[str] = None,
) -> ErrorDetail:
    """Create a standardized error detail (RFC 7807)."""
    return ErrorDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance or (request.url.path if request else None),
        request_id=_request_id(request),
        timestamp=datetime.now(timezone.utc),
    )


def http_exception_from_error(error: AppError, request: Optional[Request] = None) -> HTTPException:
    """Translate an application error into an HTTPException with problem details."""
    status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR
    title = "Internal Server Error"
    for error_type, code, error_title in _ERROR_STATUS:
        if isinstance(error, error_type):
            status_code, title = code, error_title
            break

    detail = create_error_detail(title=title, status=status_code, detail=error.message, request=request)
    return HTTPException(status_code=status_code, detail=detail.model_dump(mode="json"))
