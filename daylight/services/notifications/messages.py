from typing import Optional

from daylight.schemas.jobs import JobRecord, JobResultSummary, JobStatus

SUCCESS_TITLE = "Journal entry ready!"
EMPTY_SUCCESS_TITLE = "Processing complete"
FAILURE_TITLE = "Processing failed"
DEFAULT_FAILURE_MESSAGE = "Please try again"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def format_result_summary(summary: Optional[JobResultSummary]) -> str:
    """Human-readable summary of what a completed job produced."""
    summary = summary or JobResultSummary()
    if summary.events_created == 0:
        return "No events were found in this entry"

    parts = [f"{_plural(summary.events_created, 'event')} extracted"]
    if summary.action_items_created:
        parts.append(_plural(summary.action_items_created, "action item"))
    if summary.evidence_processed:
        parts.append(f"{summary.evidence_processed} evidence item(s) linked")
    return ", ".join(parts)


def format_job_title(record: JobRecord) -> str:
    if record.status == JobStatus.COMPLETED:
        events = record.result_summary.events_created if record.result_summary else 0
        return SUCCESS_TITLE if events else EMPTY_SUCCESS_TITLE
    if record.status == JobStatus.FAILED:
        return FAILURE_TITLE
    return f"Job {record.status.value}"


def format_job_message(record: JobRecord) -> str:
    """Message shown with the completion or failure signal for a job."""
    if record.status == JobStatus.COMPLETED:
        return format_result_summary(record.result_summary)
    if record.status == JobStatus.FAILED:
        return record.error_message or DEFAULT_FAILURE_MESSAGE
    templates = {
        JobStatus.PENDING: "Waiting to start",
        JobStatus.PROCESSING: "Extracting events from your entry",
        JobStatus.CANCELLED: "Extraction was cancelled",
    }
    return templates.get(record.status, f"Job is {record.status.value}")
