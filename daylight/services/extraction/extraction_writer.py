"""Terminal write for a successful extraction.

Everything a completed job produces is written inside the caller's single
transaction. Nothing is committed here; if any step raises, the caller rolls
back and the job, the entry and all derived rows stay as they were.
"""

import uuid
from datetime import datetime
from typing import List, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.core.exceptions import InvalidJobStateError, PersistenceError
from daylight.database.models import utcnow
from daylight.repositories.event_repository import EventRepository
from daylight.repositories.evidence_repository import EvidenceRepository
from daylight.repositories.job_repository import JobRepository
from daylight.repositories.journal_repository import JournalEntryRepository
from daylight.schemas.extraction import ExtractionPayload, ExtractionResult
from daylight.schemas.jobs import JobRecord, JobResultSummary, JobStatus, JournalEntryStatus
from daylight.services.extraction.type_mapper import (
    build_event_row,
    build_evidence_mention_rows,
    build_participant_rows,
)
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractionWriter:
    """Persists an ``ExtractionPayload`` and completes its job."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.jobs = JobRepository(session)
        self.entries = JournalEntryRepository(session)
        self.evidence = EvidenceRepository(session)
        self.events = EventRepository(session)

    async def write(
        self,
        job: JobRecord,
        payload: ExtractionPayload,
        evidence_ids: Sequence[str] = (),
        timezone: str = "UTC",
        now: datetime = None,
    ) -> JobResultSummary:
        """Write events, links, action items and both terminal statuses.

        Args:
            job: The job being completed; must still be ``processing``
            payload: Validated extraction
            evidence_ids: Processed evidence that was part of the prompt
            timezone: User timezone for timestamp normalization
            now: Completion time

        Returns:
            JobResultSummary stored on the job row

        Raises:
            InvalidJobStateError: If the job is no longer ``processing``
            PersistenceError: If the database rejects the write
        """
        now = now or utcnow()
        evidence_uuids = [uuid.UUID(str(evidence_id)) for evidence_id in evidence_ids]

        try:
            event_ids = self._stage_events(job, payload, timezone)
            self._stage_event_evidence(event_ids, evidence_uuids)
            action_items_created = self._stage_action_items(job, payload, event_ids)

            if evidence_uuids and job.journal_entry_id is not None:
                await self.evidence.attach(job.journal_entry_id, evidence_uuids)
                await self.evidence.mark_processed(job.journal_entry_id, evidence_uuids, now)

            summary = JobResultSummary(
                events_created=len(event_ids),
                evidence_processed=len(evidence_uuids),
                action_items_created=action_items_created,
                event_ids=[str(event_id) for event_id in event_ids],
            )

            if job.journal_entry_id is not None:
                await self.entries.set_status(
                    job.journal_entry_id,
                    JournalEntryStatus.COMPLETED,
                    extraction_raw=ExtractionResult(extraction=payload).model_dump(mode="json"),
                    processing_error=None,
                    completed_at=now,
                )

            completed = await self.jobs.transition(
                job.id,
                from_statuses=[JobStatus.PROCESSING],
                to_status=JobStatus.COMPLETED,
                completed_at=now,
                error_message=None,
                result_summary=summary.model_dump(mode="json"),
            )
            if not completed:
                raise InvalidJobStateError(
                    f"Job {job.id} is no longer processing; extraction result discarded",
                    status=JobStatus.PROCESSING.value,
                )

            await self.session.flush()
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Failed to persist extraction for job {job.id}: {e}",
                exc_info=True,
                extra={"job_id": str(job.id)},
            )
            raise PersistenceError(f"Failed to persist extraction for job {job.id}", e) from e

        LOGGER.info(
            f"Persisted extraction for job {job.id}",
            extra={
                "job_id": str(job.id),
                "events_created": summary.events_created,
                "evidence_processed": summary.evidence_processed,
                "action_items_created": summary.action_items_created,
            },
        )
        return summary

    def _stage_events(self, job: JobRecord, payload: ExtractionPayload, timezone: str) -> List[uuid.UUID]:
        event_ids = []
        for event in payload.events:
            event_id = uuid.uuid4()
            self.events.add_event(
                build_event_row(
                    event,
                    event_id=event_id,
                    user_id=job.user_id,
                    journal_entry_id=job.journal_entry_id,
                    job_id=job.id,
                    timezone=timezone,
                ),
                participant_rows=build_participant_rows(event, event_id=event_id, user_id=job.user_id),
                mention_rows=build_evidence_mention_rows(event, event_id=event_id, user_id=job.user_id),
            )
            event_ids.append(event_id)
        return event_ids

    def _stage_event_evidence(self, event_ids: List[uuid.UUID], evidence_ids: List[uuid.UUID]) -> None:
        # Evidence is only tied to an event when the entry produced exactly one
        if len(event_ids) != 1:
            return
        for index, evidence_id in enumerate(evidence_ids):
            self.events.link_evidence(event_ids[0], evidence_id, is_primary=index == 0)

    def _stage_action_items(self, job: JobRecord, payload: ExtractionPayload, event_ids: List[uuid.UUID]) -> int:
        first_event_id = event_ids[0] if event_ids else None
        for item in payload.action_items:
            self.events.add_action_item(
                user_id=job.user_id,
                event_id=first_event_id,
                job_id=job.id,
                priority=item.priority,
                type=item.type,
                description=item.description,
                deadline=item.deadline,
                status="open",
            )
        return len(payload.action_items)
