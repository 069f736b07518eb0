"""Journal extraction job handler.

Drives one extraction job through ``pending -> processing -> completed|failed``.
Every step opens its own session so the handler can be called one step per
Temporal activity or end to end through ``run``.
"""

import uuid
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from daylight.core.config import settings
from daylight.core.database import async_session_maker
from daylight.core.exceptions import (
    AppError,
    InvalidJobStateError,
    JobConflictError,
    NotFoundError,
    ValidationError,
)
from daylight.database.models import Evidence, utcnow
from daylight.repositories.evidence_repository import EvidenceRepository
from daylight.repositories.job_repository import JobRepository
from daylight.repositories.journal_repository import JournalEntryRepository
from daylight.repositories.profile_repository import CaseRepository, ProfileRepository
from daylight.schemas.extraction import EvidenceSummary, ExtractionContext, ExtractionOutcome
from daylight.schemas.jobs import JobChangeEvent, JobRecord, JobStatus, JournalEntryStatus
from daylight.services.extraction.context_builder import (
    CaseContext,
    ContextInputs,
    build_extraction_context,
)
from daylight.services.extraction.extraction_invoker import ExtractionInvoker
from daylight.services.extraction.extraction_writer import ExtractionWriter
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

GENERIC_FAILURE_MESSAGE = "Extraction failed due to an unexpected error. Please try again."


def evidence_summary_text(evidence: Evidence) -> Optional[str]:
    """Processed summary for an evidence item, or None if not processed yet."""
    raw = evidence.extraction_raw or {}
    nested = raw.get("extraction") if isinstance(raw, dict) else None
    if isinstance(nested, dict) and isinstance(nested.get("summary"), str) and nested["summary"].strip():
        return nested["summary"].strip()
    if evidence.summary and evidence.summary.strip():
        return evidence.summary.strip()
    return None


class JournalExtractionHandler:
    """Job state machine for journal extraction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        invoker: Optional[ExtractionInvoker] = None,
        channel=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            session_factory: Session factory; each step uses its own session
            invoker: Extraction invoker, built from settings when omitted
            channel: Optional ``JobChannel`` notified after terminal commits
            clock: Source of the current time
        """
        self.session_factory = session_factory
        self._invoker = invoker
        self.channel = channel
        self.clock = clock

    @property
    def invoker(self) -> ExtractionInvoker:
        if self._invoker is None:
            from daylight.core.llm_client import create_llm_client

            self._invoker = ExtractionInvoker(
                create_llm_client(settings),
                timeout_seconds=settings.llm.extraction_timeout_seconds,
                temperature=settings.llm.extraction_temperature,
            )
        return self._invoker

    async def get_job(self, job_id: uuid.UUID) -> Optional[JobRecord]:
        async with self.session_factory() as session:
            job = await JobRepository(session).get_by_id(job_id)
            return JobRecord.model_validate(job) if job else None

    async def claim(self, job_id: uuid.UUID) -> JobRecord:
        """Check-and-set ``pending -> processing``.

        A job that is already ``processing`` is returned as-is so a redelivered
        attempt can continue.

        Raises:
            NotFoundError: If the job does not exist
            InvalidJobStateError: If the job is already terminal
            JobConflictError: If another active job owns the same entry
        """
        async with self.session_factory() as session:
            jobs = JobRepository(session)
            job = await jobs.get_by_id(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")

            status = JobStatus(job.status)
            if status.is_terminal:
                raise InvalidJobStateError(f"Job {job_id} is already {status.value}", status=status.value)
            if status == JobStatus.PROCESSING:
                LOGGER.info(f"Job {job_id} already processing, resuming", extra={"job_id": str(job_id)})
                return JobRecord.model_validate(job)

            other = await jobs.get_active_for_entry(job.journal_entry_id, exclude_job_id=job.id)
            if other is not None:
                raise JobConflictError(
                    f"Journal entry {job.journal_entry_id} already has an active job {other.id}",
                    journal_entry_id=job.journal_entry_id,
                    active_job_id=other.id,
                )

            now = self.clock()
            claimed = await jobs.transition(
                job.id, from_statuses=[JobStatus.PENDING], to_status=JobStatus.PROCESSING, started_at=now
            )
            if not claimed:
                await session.rollback()
                current = await jobs.reload(job_id)
                if current is not None and current.status == JobStatus.PROCESSING.value:
                    return JobRecord.model_validate(current)
                raise InvalidJobStateError(
                    f"Job {job_id} could not be claimed",
                    status=current.status if current else None,
                )

            if job.journal_entry_id is not None:
                await JournalEntryRepository(session).set_status(
                    job.journal_entry_id, JournalEntryStatus.PROCESSING, processed_at=now
                )
            await session.commit()
            record = JobRecord.model_validate(await jobs.reload(job_id))

        LOGGER.info(f"Claimed job {job_id}", extra={"job_id": str(job_id)})
        await self._publish(record)
        return record

    async def build_context(self, job: JobRecord, timezone: Optional[str] = None) -> ExtractionContext:
        """Load the entry, profile, case and processed evidence and build the prompt.

        Raises:
            NotFoundError: If the journal entry is gone
            ValidationError: If the entry has no text
        """
        async with self.session_factory() as session:
            entry = await JournalEntryRepository(session).get_by_id(job.journal_entry_id)
            if entry is None:
                raise NotFoundError(f"Journal entry {job.journal_entry_id} not found")
            if not (entry.event_text or "").strip():
                raise ValidationError(f"Journal entry {entry.id} has no text to extract")

            profile = await ProfileRepository(session).get_by_id(job.user_id)
            case = await CaseRepository(session).latest_for_user(job.user_id)
            linked = await EvidenceRepository(session).get_linked(entry.id)

        evidence: List[EvidenceSummary] = []
        skipped: List[str] = []
        for link, item in linked:
            summary = evidence_summary_text(item)
            if summary is None:
                skipped.append(str(item.id))
                continue
            evidence.append(
                EvidenceSummary(evidence_id=str(item.id), annotation=item.user_annotation or "", summary=summary)
            )
        if skipped:
            LOGGER.warning(
                f"Excluding {len(skipped)} unprocessed evidence item(s) from job {job.id}",
                extra={"job_id": str(job.id), "evidence_ids": skipped},
            )

        tz_name = timezone or (profile.timezone if profile else None) or settings.extraction.default_timezone
        inputs = ContextInputs(
            entry_text=entry.event_text,
            reference_date=entry.reference_date,
            timezone=tz_name,
            user_display_name=profile.full_name if profile else None,
            case=CaseContext.model_validate(case) if case else None,
            evidence=evidence,
        )
        return build_extraction_context(inputs, now=self.clock())

    async def extract(self, job: JobRecord, timezone: Optional[str] = None) -> ExtractionOutcome:
        """Build the context and run the invoker. Nothing is written."""
        context = await self.build_context(job, timezone=timezone)
        payload = await self.invoker.extract(context)
        LOGGER.info(
            f"Extraction returned {len(payload.events)} event(s) for job {job.id}",
            extra={"job_id": str(job.id), "action_items": len(payload.action_items)},
        )
        return ExtractionOutcome(extraction=payload, evidence_ids=context.evidence_ids, timezone=context.timezone)

    async def persist(self, job_id: uuid.UUID, outcome: ExtractionOutcome) -> JobRecord:
        """Atomically write the extraction and complete the job.

        A job that already completed is returned unchanged.
        """
        async with self.session_factory() as session:
            jobs = JobRepository(session)
            job = await jobs.get_by_id(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            if job.status == JobStatus.COMPLETED.value:
                LOGGER.info(f"Job {job_id} already completed, skipping write", extra={"job_id": str(job_id)})
                return JobRecord.model_validate(job)

            try:
                await ExtractionWriter(session).write(
                    JobRecord.model_validate(job),
                    outcome.extraction,
                    evidence_ids=outcome.evidence_ids,
                    timezone=outcome.timezone,
                    now=self.clock(),
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            record = JobRecord.model_validate(await jobs.reload(job_id))

        await self._publish(record)
        return record

    async def fail(self, job_id: uuid.UUID, message: str) -> Optional[JobRecord]:
        """Move an active job to ``failed``. Terminal jobs are left untouched."""
        async with self.session_factory() as session:
            jobs = JobRepository(session)
            job = await jobs.get_by_id(job_id)
            if job is None:
                LOGGER.warning(f"Cannot fail missing job {job_id}")
                return None

            now = self.clock()
            failed = await jobs.transition(
                job.id,
                from_statuses=[JobStatus.PENDING, JobStatus.PROCESSING],
                to_status=JobStatus.FAILED,
                error_message=message,
                completed_at=now,
            )
            if failed and job.journal_entry_id is not None:
                await JournalEntryRepository(session).set_status(
                    job.journal_entry_id, JournalEntryStatus.FAILED, processing_error=message
                )
            await session.commit()
            record = JobRecord.model_validate(await jobs.reload(job_id))

        if failed:
            LOGGER.warning(f"Job {job_id} failed: {message}", extra={"job_id": str(job_id)})
            await self._publish(record)
        return record

    async def run(self, job_id: uuid.UUID, timezone: Optional[str] = None) -> JobRecord:
        """Run a job end to end. Always leaves the job in a terminal state.

        Redelivery of a job that already reached a terminal state returns the
        stored record without re-running anything.
        """
        try:
            job = await self.claim(job_id)
        except InvalidJobStateError:
            stored = await self.get_job(job_id)
            if stored is not None and stored.status.is_terminal:
                return stored
            raise
        except JobConflictError as e:
            return await self.fail(job_id, e.message)

        try:
            outcome = await self.extract(job, timezone=timezone)
            return await self.persist(job_id, outcome)
        except AppError as e:
            LOGGER.error(f"Job {job_id} failed: {e.message}", extra={"job_id": str(job_id)})
            return await self.fail(job_id, e.message)
        except Exception as e:
            LOGGER.error(f"Unexpected error in job {job_id}: {e}", exc_info=True, extra={"job_id": str(job_id)})
            return await self.fail(job_id, GENERIC_FAILURE_MESSAGE)

    async def _publish(self, record: JobRecord) -> None:
        if self.channel is None:
            return
        try:
            await self.channel.publish(JobChangeEvent.from_record(record))
        except Exception as e:
            LOGGER.warning(f"Failed to publish change for job {record.id}: {e}")
