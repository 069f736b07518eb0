import asyncio
import json
import uuid
from datetime import datetime
from typing import AsyncGenerator, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from daylight.core.database import async_session_maker
from daylight.repositories.job_repository import JobRepository
from daylight.schemas.jobs import JobRecord, JobStatus, JobStreamEvent, JobStreamEventType
from daylight.services.notifications.messages import format_job_message, format_job_title
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

TERMINAL_EVENT_TYPES = {
    JobStatus.COMPLETED: JobStreamEventType.COMPLETED,
    JobStatus.FAILED: JobStreamEventType.FAILED,
    JobStatus.CANCELLED: JobStreamEventType.CANCELLED,
}


class JobSSEManager:
    """Streams a job's state changes as server-sent events until it is terminal."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        poll_interval: float = 2.0,
    ):
        self.session_factory = session_factory
        self.poll_interval = poll_interval

    async def stream_job_events(self, job_id: uuid.UUID) -> AsyncGenerator[str, None]:
        """Stream SSE events for one job."""
        record = await self._load(job_id)
        if record is None:
            yield self._format_sse(
                JobStreamEvent(
                    event_type=JobStreamEventType.FAILED,
                    job_id=job_id,
                    data={"message": "Job not found"},
                )
            )
            return

        yield self._format_sse(self._record_event(JobStreamEventType.SNAPSHOT, record))
        if record.status.is_terminal:
            yield self._format_sse(self._record_event(TERMINAL_EVENT_TYPES[record.status], record))
            return

        last_marker: Tuple[JobStatus, Optional[datetime]] = (record.status, record.updated_at)
        try:
            while True:
                yield self._format_sse(
                    JobStreamEvent(
                        event_type=JobStreamEventType.HEARTBEAT,
                        job_id=job_id,
                        data={"message": "keep-alive"},
                    )
                )

                record = await self._load(job_id)
                if record is None:
                    break

                marker = (record.status, record.updated_at)
                if marker != last_marker:
                    last_marker = marker
                    if record.status.is_terminal:
                        yield self._format_sse(self._record_event(TERMINAL_EVENT_TYPES[record.status], record))
                        break
                    yield self._format_sse(self._record_event(JobStreamEventType.UPDATED, record))

                await asyncio.sleep(self.poll_interval)

        except asyncio.CancelledError:
            LOGGER.info(f"SSE connection cancelled for job {job_id}")
        except Exception as e:
            LOGGER.error(f"Error in SSE stream for job {job_id}: {e}", exc_info=True)
            yield self._format_sse(
                JobStreamEvent(
                    event_type=JobStreamEventType.FAILED,
                    job_id=job_id,
                    data={"message": f"Stream error: {str(e)}"},
                )
            )

    async def _load(self, job_id: uuid.UUID) -> Optional[JobRecord]:
        async with self.session_factory() as session:
            job = await JobRepository(session).get_by_id(job_id)
            return JobRecord.model_validate(job) if job else None

    def _record_event(self, event_type: JobStreamEventType, record: JobRecord) -> JobStreamEvent:
        return JobStreamEvent(
            event_type=event_type,
            job_id=record.id,
            data={
                "job": record.model_dump(mode="json"),
                "title": format_job_title(record),
                "message": format_job_message(record),
            },
        )

    def _format_sse(self, event: JobStreamEvent) -> str:
        """Format a JobStreamEvent as a raw SSE message."""
        data = event.model_dump(mode="json")
        return f"event: {data['event_type']}\ndata: {json.dumps(data)}\n\n"
