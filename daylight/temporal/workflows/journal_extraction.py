"""Workflow driving one journal extraction job."""

from datetime import timedelta
from typing import Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

from daylight.temporal.core.constants import (
    CLAIM_ACTIVITY_TIMEOUT_SECONDS,
    DEFAULT_INITIAL_INTERVAL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    EXTRACT_ACTIVITY_TIMEOUT_SECONDS,
    MAX_RETRY_INTERVAL_SECONDS,
    PERSIST_ACTIVITY_TIMEOUT_SECONDS,
)
from daylight.temporal.core.workflow_registry import WorkflowRegistry, WorkflowType

FALLBACK_FAILURE_MESSAGE = "Extraction failed. Please try again."


def failure_message(error: ActivityError) -> str:
    """Human-readable message from the activity's final failure."""
    cause = error.cause
    message = getattr(cause, "message", None) or (str(cause) if cause else "")
    return message or FALLBACK_FAILURE_MESSAGE


@WorkflowRegistry.register(category=WorkflowType.EXTRACTION)
@workflow.defn
class JournalExtractionWorkflow:
    """claim -> extract -> persist, with ``mark_extraction_failed`` on any final error."""

    def __init__(self):
        self._status = "initialized"
        self._current_step: Optional[str] = None
        self._job_id: Optional[str] = None

    @workflow.query
    def get_status(self) -> dict:
        """Query handler for real-time status updates."""
        return {
            "job_id": self._job_id,
            "status": self._status,
            "current_step": self._current_step,
        }

    @workflow.run
    async def run(self, payload: Dict) -> dict:
        self._job_id = payload["job_id"]
        timezone = payload.get("timezone")
        retry_policy = RetryPolicy(
            maximum_attempts=payload.get("max_attempts") or DEFAULT_MAX_ATTEMPTS,
            initial_interval=timedelta(
                seconds=payload.get("initial_interval_seconds") or DEFAULT_INITIAL_INTERVAL_SECONDS
            ),
            maximum_interval=timedelta(seconds=MAX_RETRY_INTERVAL_SECONDS),
            backoff_coefficient=2.0,
        )
        self._status = "running"

        try:
            self._current_step = "claim"
            claim = await workflow.execute_activity(
                "claim_extraction_job",
                args=[self._job_id],
                start_to_close_timeout=timedelta(seconds=CLAIM_ACTIVITY_TIMEOUT_SECONDS),
                retry_policy=retry_policy,
            )
            if not claim.get("claimed"):
                workflow.logger.info(f"Job {self._job_id} already {claim.get('status')}, nothing to do")
                self._status = claim.get("status") or "skipped"
                self._current_step = None
                return claim

            self._current_step = "extract"
            outcome = await workflow.execute_activity(
                "extract_journal_events",
                args=[self._job_id, timezone],
                start_to_close_timeout=timedelta(seconds=EXTRACT_ACTIVITY_TIMEOUT_SECONDS),
                retry_policy=retry_policy,
            )

            self._current_step = "persist"
            result = await workflow.execute_activity(
                "persist_extraction_result",
                args=[self._job_id, outcome],
                start_to_close_timeout=timedelta(seconds=PERSIST_ACTIVITY_TIMEOUT_SECONDS),
                retry_policy=retry_policy,
            )
        except ActivityError as e:
            message = failure_message(e)
            workflow.logger.warning(f"Job {self._job_id} failed at {self._current_step}: {message}")
            self._current_step = "mark_failed"
            result = await workflow.execute_activity(
                "mark_extraction_failed",
                args=[self._job_id, message],
                start_to_close_timeout=timedelta(seconds=PERSIST_ACTIVITY_TIMEOUT_SECONDS),
                retry_policy=RetryPolicy(maximum_attempts=10, backoff_coefficient=2.0),
            )

        self._status = result.get("status") or "unknown"
        self._current_step = None
        return result
