"""Job records, request/response payloads and change notifications."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


ACTIVE_JOB_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})
TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class JobType(str, Enum):
    JOURNAL_EXTRACTION = "journal_extraction"
    EVIDENCE_PROCESSING = "evidence_processing"


class JournalEntryStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    REVIEW = "review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class JobResultSummary(BaseModel):
    events_created: int = 0
    evidence_processed: int = 0
    action_items_created: int = 0
    event_ids: List[str] = Field(default_factory=list)


class JobRecord(BaseModel):
    """Job row as seen by the orchestrator and by job trackers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    type: JobType = JobType.JOURNAL_EXTRACTION
    status: JobStatus
    journal_entry_id: Optional[UUID] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result_summary: Optional[JobResultSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExtractionSubmitRequest(BaseModel):
    """Body for submitting a journal entry for extraction."""

    evidence_ids: List[UUID] = Field(default_factory=list, description="Evidence to attach before extraction")
    timezone: Optional[str] = Field(default=None, description="IANA zone or UTC offset, overrides the profile")


class JobSubmissionResponse(BaseModel):
    job_id: UUID
    journal_entry_id: UUID
    status: JobStatus
    stream_url: str
    message: str


class JobChangeEvent(BaseModel):
    """Row-level change notification for a single job."""

    job_id: UUID
    status: JobStatus
    record: JobRecord
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobChangeEvent":
        return cls(job_id=record.id, status=record.status, record=record)


class JobStreamEventType(str, Enum):
    SNAPSHOT = "job:snapshot"
    UPDATED = "job:updated"
    COMPLETED = "job:completed"
    FAILED = "job:failed"
    CANCELLED = "job:cancelled"
    HEARTBEAT = "heartbeat"


class JobStreamEvent(BaseModel):
    event_type: JobStreamEventType
    job_id: UUID
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict[str, Any] = Field(default_factory=dict)
