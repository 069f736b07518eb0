"""Temporal activities for journal extraction jobs.

Each activity is one step of ``JournalExtractionHandler``. Errors that a retry
cannot fix are raised as non-retryable ``ApplicationError``s so the workflow
moves straight to ``mark_extraction_failed``.
"""

from typing import Optional
from uuid import UUID

from temporalio import activity
from temporalio.exceptions import ApplicationError

from daylight.core.exceptions import (
    AppError,
    ConfigurationError,
    ExtractionFailedError,
    InvalidJobStateError,
    JobConflictError,
    NotFoundError,
    ValidationError,
)
from daylight.schemas.extraction import ExtractionOutcome
from daylight.schemas.jobs import JobStatus
from daylight.services.extraction.extraction_handler import (
    GENERIC_FAILURE_MESSAGE,
    JournalExtractionHandler,
)
from daylight.temporal.core.activity_registry import ActivityRegistry
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

NON_RETRYABLE_ERRORS = (
    JobConflictError,
    InvalidJobStateError,
    ValidationError,
    NotFoundError,
    ConfigurationError,
)


def get_handler() -> JournalExtractionHandler:
    return JournalExtractionHandler()


def _to_application_error(error: Exception) -> ApplicationError:
    if isinstance(error, AppError):
        return ApplicationError(
            error.message,
            type=type(error).__name__,
            non_retryable=isinstance(error, NON_RETRYABLE_ERRORS),
        )
    return ApplicationError(GENERIC_FAILURE_MESSAGE, type="UnexpectedError")


@ActivityRegistry.register("journal", "claim_extraction_job")
@activity.defn(name="claim_extraction_job")
async def claim_extraction_job(job_id: str) -> dict:
    """Move the job to processing.

    Returns:
        ``{"claimed": True, "job": {...}}``, or ``{"claimed": False, "status": ...}``
        when the job already reached a terminal state
    """
    handler = get_handler()
    try:
        record = await handler.claim(UUID(job_id))
    except InvalidJobStateError as e:
        LOGGER.info(f"Job {job_id} not claimed: {e.message}")
        stored = await handler.get_job(UUID(job_id))
        return {"claimed": False, "job_id": job_id, "status": stored.status.value if stored else e.status}
    except AppError as e:
        LOGGER.warning(f"Claim failed for job {job_id}: {e.message}")
        raise _to_application_error(e) from e

    return {"claimed": True, "job_id": job_id, "job": record.model_dump(mode="json")}


@ActivityRegistry.register("journal", "extract_journal_events")
@activity.defn(name="extract_journal_events")
async def extract_journal_events(job_id: str, timezone: Optional[str] = None) -> dict:
    """Build the context and call the model. Returns a serialized ``ExtractionOutcome``."""
    handler = get_handler()
    LOGGER.info(
        f"Extracting events for job {job_id} (attempt {activity.info().attempt})",
        extra={"job_id": job_id},
    )
    try:
        record = await handler.get_job(UUID(job_id))
        if record is None:
            raise NotFoundError(f"Job {job_id} not found")
        if record.status != JobStatus.PROCESSING:
            raise InvalidJobStateError(f"Job {job_id} is {record.status.value}", status=record.status.value)
        outcome = await handler.extract(record, timezone=timezone)
    except ExtractionFailedError as e:
        LOGGER.warning(f"Extraction failed for job {job_id} ({e.reason}): {e.message}")
        raise _to_application_error(e) from e
    except AppError as e:
        raise _to_application_error(e) from e
    except Exception as e:
        LOGGER.error(f"Unexpected extraction error for job {job_id}: {e}", exc_info=True)
        raise _to_application_error(e) from e

    return outcome.model_dump(mode="json")


@ActivityRegistry.register("journal", "persist_extraction_result")
@activity.defn(name="persist_extraction_result")
async def persist_extraction_result(job_id: str, outcome: dict) -> dict:
    """Atomically write the extraction and complete the job."""
    handler = get_handler()
    try:
        record = await handler.persist(UUID(job_id), ExtractionOutcome.model_validate(outcome))
    except AppError as e:
        LOGGER.error(f"Persisting job {job_id} failed: {e.message}")
        raise _to_application_error(e) from e
    except Exception as e:
        LOGGER.error(f"Unexpected persistence error for job {job_id}: {e}", exc_info=True)
        raise _to_application_error(e) from e

    return record.model_dump(mode="json")


@ActivityRegistry.register("journal", "mark_extraction_failed")
@activity.defn(name="mark_extraction_failed")
async def mark_extraction_failed(job_id: str, message: str) -> dict:
    """Terminal failure. A job that already finished is left as it is."""
    record = await get_handler().fail(UUID(job_id), message or GENERIC_FAILURE_MESSAGE)
    if record is None:
        return {"id": job_id, "status": None}
    return record.model_dump(mode="json")
