"""Submission, reprocessing and cancellation of journal extraction jobs."""

import uuid
from typing import Any, List, Optional, Protocol, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.core.config import settings
from daylight.core.exceptions import (
    AppError,
    InvalidJobStateError,
    JobConflictError,
    NotFoundError,
    ValidationError,
)
from daylight.database.models import Job, utcnow
from daylight.repositories.event_repository import EventRepository
from daylight.repositories.evidence_repository import EvidenceRepository
from daylight.repositories.job_repository import JobRepository
from daylight.repositories.journal_repository import JournalEntryRepository
from daylight.schemas.jobs import JobRecord, JobStatus, JournalEntryStatus
from daylight.services.base_service import BaseService
from daylight.services.extraction.extraction_handler import evidence_summary_text
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

WORKFLOW_ID_PREFIX = "journal-extraction-"


def workflow_id_for(job_id: uuid.UUID) -> str:
    return f"{WORKFLOW_ID_PREFIX}{job_id}"


class JobEnqueuer(Protocol):
    async def enqueue(self, job: JobRecord, timezone: Optional[str] = None) -> None:
        ...


class TemporalJobEnqueuer:
    """Starts one ``JournalExtractionWorkflow`` per job.

    The workflow id is derived from the job id, so enqueuing the same job twice
    is rejected by Temporal instead of running twice.
    """

    async def enqueue(self, job: JobRecord, timezone: Optional[str] = None) -> None:
        from daylight.core.temporal_client import get_temporal_client
        from daylight.temporal.workflows.journal_extraction import JournalExtractionWorkflow

        client = await get_temporal_client()
        handle = await client.start_workflow(
            JournalExtractionWorkflow.run,
            {
                "job_id": str(job.id),
                "timezone": timezone,
                "max_attempts": settings.temporal.activity_max_attempts,
                "initial_interval_seconds": settings.temporal.activity_initial_interval_seconds,
            },
            id=workflow_id_for(job.id),
            task_queue=settings.temporal_task_queue,
        )
        LOGGER.info(
            f"Started extraction workflow {handle.id}",
            extra={"job_id": str(job.id), "workflow_id": handle.id},
        )


class JobService(BaseService):
    """Entry point for everything a client may do to a job.

    Validation and conflict errors are raised synchronously and leave no job
    row behind. Once a job is enqueued, its outcome is only reported through
    the job row.
    """

    def __init__(self, session: AsyncSession, enqueuer: Optional[JobEnqueuer] = None):
        super().__init__()
        self.session = session
        self.enqueuer = enqueuer or TemporalJobEnqueuer()
        self.jobs = JobRepository(session)
        self.entries = JournalEntryRepository(session)
        self.evidence = EvidenceRepository(session)
        self.events = EventRepository(session)

    async def submit_extraction(
        self,
        user_id: uuid.UUID,
        journal_entry_id: uuid.UUID,
        evidence_ids: Optional[Sequence[uuid.UUID]] = None,
        timezone: Optional[str] = None,
    ) -> JobRecord:
        """Create and enqueue an extraction job for a journal entry.

        Raises:
            ValidationError: Missing user, empty entry text or unusable evidence
            NotFoundError: If the entry does not exist for this user
            JobConflictError: If the entry already has an active job
        """
        return await self.execute(
            action="submit",
            user_id=user_id,
            journal_entry_id=journal_entry_id,
            evidence_ids=list(evidence_ids or []),
            timezone=timezone,
        )

    async def reprocess_entry(
        self,
        user_id: uuid.UUID,
        journal_entry_id: uuid.UUID,
        timezone: Optional[str] = None,
    ) -> JobRecord:
        """Start a new job for an entry, superseding everything earlier jobs extracted from it."""
        return await self.execute(
            action="reprocess",
            user_id=user_id,
            journal_entry_id=journal_entry_id,
            evidence_ids=[],
            timezone=timezone,
        )

    async def cancel_job(self, user_id: uuid.UUID, job_id: uuid.UUID) -> JobRecord:
        """Cancel a job that has not started yet.

        Raises:
            InvalidJobStateError: If the job is no longer pending
        """
        return await self.execute(action="cancel", user_id=user_id, job_id=job_id)

    async def get_job(self, user_id: uuid.UUID, job_id: uuid.UUID) -> JobRecord:
        return await self.execute(action="get", user_id=user_id, job_id=job_id)

    async def list_active_jobs(self, user_id: uuid.UUID, limit: Optional[int] = None) -> List[JobRecord]:
        return await self.execute(
            action="list_active",
            user_id=user_id,
            limit=limit or settings.extraction.recover_jobs_limit,
        )

    def validate(self, *args, **kwargs):
        if not kwargs.get("user_id"):
            raise ValidationError("An authenticated user is required")
        action = kwargs.get("action")
        if action in ("submit", "reprocess") and not kwargs.get("journal_entry_id"):
            raise ValidationError("journal_entry_id is required")
        if action in ("cancel", "get") and not kwargs.get("job_id"):
            raise ValidationError("job_id is required")

    async def run(self, *args, **kwargs) -> Any:
        action = kwargs.get("action")
        if action == "submit":
            return await self._submit(
                kwargs["user_id"], kwargs["journal_entry_id"], kwargs["evidence_ids"], kwargs.get("timezone")
            )
        if action == "reprocess":
            return await self._submit(
                kwargs["user_id"], kwargs["journal_entry_id"], [], kwargs.get("timezone"), reprocess=True
            )
        if action == "cancel":
            return await self._cancel(kwargs["user_id"], kwargs["job_id"])
        if action == "get":
            return await self._get(kwargs["user_id"], kwargs["job_id"])
        if action == "list_active":
            jobs = await self.jobs.list_active_for_user(kwargs["user_id"], limit=kwargs["limit"])
            return [JobRecord.model_validate(job) for job in jobs]
        raise ValidationError(f"Unknown action: {action}")

    async def _submit(
        self,
        user_id: uuid.UUID,
        journal_entry_id: uuid.UUID,
        evidence_ids: List[uuid.UUID],
        timezone: Optional[str],
        reprocess: bool = False,
    ) -> JobRecord:
        entry = await self.entries.get_for_user(journal_entry_id, user_id)
        if entry is None:
            raise NotFoundError(f"Journal entry {journal_entry_id} not found")
        if not (entry.event_text or "").strip():
            raise ValidationError("Journal entry text is empty")

        active = await self.jobs.get_active_for_entry(entry.id)
        if active is not None:
            raise JobConflictError(
                f"Journal entry {entry.id} already has an active job",
                journal_entry_id=entry.id,
                active_job_id=active.id,
            )

        try:
            if evidence_ids:
                await self._attach_evidence(entry.id, user_id, evidence_ids)
            await self._check_evidence_ready(entry.id)

            job = await self.jobs.create_job(user_id=user_id, journal_entry_id=entry.id)
            if reprocess:
                await self._supersede_previous_extraction(entry.id, job.id)
            await self.entries.set_status(entry.id, JournalEntryStatus.PROCESSING, processing_error=None)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise JobConflictError(
                f"Journal entry {entry.id} already has an active job",
                journal_entry_id=entry.id,
                original_error=e,
            ) from e
        except Exception:
            await self.session.rollback()
            raise

        record = JobRecord.model_validate(job)
        LOGGER.info(
            f"Created extraction job {record.id}",
            extra={"job_id": str(record.id), "journal_entry_id": str(entry.id), "reprocess": reprocess},
        )
        await self._enqueue(record, timezone)
        return record

    async def _attach_evidence(
        self, journal_entry_id: uuid.UUID, user_id: uuid.UUID, evidence_ids: List[uuid.UUID]
    ) -> None:
        owned = await self.evidence.get_owned(evidence_ids, user_id)
        missing = sorted({str(evidence_id) for evidence_id in evidence_ids} - {str(item.id) for item in owned})
        if missing:
            raise ValidationError(f"Unknown evidence: {', '.join(missing)}")
        await self.evidence.attach(journal_entry_id, evidence_ids)

    async def _check_evidence_ready(self, journal_entry_id: uuid.UUID) -> None:
        if not settings.extraction.require_processed_evidence:
            return
        linked = await self.evidence.get_linked(journal_entry_id)
        pending = [str(item.id) for _, item in linked if evidence_summary_text(item) is None]
        if pending:
            raise ValidationError(f"Evidence is still being processed: {', '.join(pending)}")

    async def _supersede_previous_extraction(self, journal_entry_id: uuid.UUID, job_id: uuid.UUID) -> None:
        superseded = await self.events.supersede_for_entry(journal_entry_id, job_id, utcnow())
        LOGGER.info(
            f"Superseded {superseded} event(s) of entry {journal_entry_id} before reprocessing",
            extra={"job_id": str(job_id), "journal_entry_id": str(journal_entry_id)},
        )

    async def _enqueue(self, record: JobRecord, timezone: Optional[str]) -> None:
        try:
            await self.enqueuer.enqueue(record, timezone=timezone)
        except Exception as e:
            LOGGER.error(f"Failed to enqueue job {record.id}: {e}", exc_info=True)
            message = "Could not start extraction. Please try again."
            await self.jobs.transition(
                record.id,
                from_statuses=[JobStatus.PENDING],
                to_status=JobStatus.FAILED,
                error_message=message,
                completed_at=utcnow(),
            )
            await self.entries.set_status(record.journal_entry_id, JournalEntryStatus.FAILED, processing_error=message)
            await self.session.commit()
            raise AppError(message, original_error=e) from e

    async def _cancel(self, user_id: uuid.UUID, job_id: uuid.UUID) -> JobRecord:
        job = await self.jobs.get_for_user(job_id, user_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")

        cancelled = await self.jobs.transition(
            job.id,
            from_statuses=[JobStatus.PENDING],
            to_status=JobStatus.CANCELLED,
            completed_at=utcnow(),
        )
        if not cancelled:
            await self.session.rollback()
            current: Optional[Job] = await self.jobs.reload(job_id)
            status = current.status if current else None
            raise InvalidJobStateError(f"Only pending jobs can be cancelled (job is {status})", status=status)

        if job.journal_entry_id is not None:
            await self.entries.set_status(job.journal_entry_id, JournalEntryStatus.DRAFT)
        await self.session.commit()
        LOGGER.info(f"Cancelled job {job_id}", extra={"job_id": str(job_id)})
        return JobRecord.model_validate(await self.jobs.reload(job_id))

    async def _get(self, user_id: uuid.UUID, job_id: uuid.UUID) -> JobRecord:
        job = await self.jobs.get_for_user(job_id, user_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return JobRecord.model_validate(job)
