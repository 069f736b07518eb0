"""Client-side registry of in-flight extraction jobs.

One tracker is constructed per client session and passed to whoever submits
jobs. Every tracked job leaves the registry through exactly one of:

* a terminal notification (``completed``, ``failed`` or ``cancelled``)
* the stale-job timeout
* ``cleanup_all`` when the session ends
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Literal, Optional

from daylight.core.config import settings
from daylight.schemas.jobs import JobChangeEvent, JobRecord, JobStatus
from daylight.services.notifications.channel import JobChannel, Subscription
from daylight.services.notifications.messages import format_job_message, format_job_title
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)


JobSource = Callable[[uuid.UUID, int], Awaitable[List[JobRecord]]]


@dataclass(frozen=True)
class JobSignal:
    """User-visible outcome of a tracked job."""

    kind: Literal["success", "failure"]
    job_id: uuid.UUID
    journal_entry_id: Optional[uuid.UUID]
    title: str
    message: str


Notifier = Callable[[JobSignal], None]


@dataclass
class TrackedJob:
    job_id: uuid.UUID
    journal_entry_id: Optional[uuid.UUID]
    status: JobStatus
    silent: bool
    tracked_at: float
    subscription: Subscription
    timer: Optional[asyncio.TimerHandle] = None


class ClientJobTracker:
    """Tracks submitted jobs and emits one signal per terminal outcome."""

    def __init__(
        self,
        channel: JobChannel,
        notifier: Notifier,
        job_source: Optional[JobSource] = None,
        timeout_seconds: Optional[float] = None,
        recover_limit: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            channel: Where job change events are subscribed
            notifier: Receives success and failure signals
            job_source: Loads a user's active jobs for ``recover_jobs``
            timeout_seconds: Silent removal after this long without a terminal update
                (defaults to ``JOB_TRACKER_TIMEOUT_SECONDS``)
            recover_limit: Maximum jobs re-tracked by ``recover_jobs``
                (defaults to ``RECOVER_JOBS_LIMIT``)
            clock: Monotonic time source
        """
        self.channel = channel
        self.notifier = notifier
        self.job_source = job_source
        self.timeout_seconds = timeout_seconds or settings.extraction.job_tracker_timeout_seconds
        self.recover_limit = recover_limit or settings.extraction.recover_jobs_limit
        self.clock = clock
        self._jobs: Dict[uuid.UUID, TrackedJob] = {}
        self._recovered = False

    def track(
        self,
        job_id: uuid.UUID,
        journal_entry_id: Optional[uuid.UUID] = None,
        status: Optional[JobStatus] = None,
        silent: bool = False,
    ) -> bool:
        """Start tracking a job. Tracking the same job twice is a no-op.

        Returns:
            True if the job was added to the registry
        """
        status = JobStatus(status) if status else JobStatus.PENDING
        if job_id in self._jobs or status.is_terminal:
            return False

        subscription = self.channel.subscribe(job_id, self._on_change)
        tracked = TrackedJob(
            job_id=job_id,
            journal_entry_id=journal_entry_id,
            status=status,
            silent=silent,
            tracked_at=self.clock(),
            subscription=subscription,
        )
        tracked.timer = self._arm_timer(job_id)
        self._jobs[job_id] = tracked
        LOGGER.debug(f"Tracking job {job_id}", extra={"job_id": str(job_id), "silent": silent})
        return True

    def handle_update(self, record: JobRecord) -> Optional[JobSignal]:
        """Apply a job record update.

        Returns:
            The emitted signal, if the update produced one
        """
        tracked = self._jobs.get(record.id)
        if tracked is None:
            return None

        tracked.status = record.status
        if not record.status.is_terminal:
            return None

        signal = None
        if record.status == JobStatus.COMPLETED and not tracked.silent:
            signal = self._signal("success", record, tracked)
        elif record.status == JobStatus.FAILED and not tracked.silent:
            signal = self._signal("failure", record, tracked)

        # Remove before notifying so a re-entrant duplicate update is ignored
        self.cleanup(record.id)
        if signal is not None:
            self.notifier(signal)
        return signal

    def cleanup(self, job_id: uuid.UUID) -> bool:
        """Stop tracking one job.

        Returns:
            True if the job was tracked
        """
        tracked = self._jobs.pop(job_id, None)
        if tracked is None:
            return False
        if tracked.timer is not None:
            tracked.timer.cancel()
        self.channel.unsubscribe(tracked.subscription)
        return True

    def cleanup_all(self) -> int:
        """Session teardown: unsubscribe and forget every tracked job.

        Returns:
            Number of jobs removed
        """
        removed = 0
        for job_id in list(self._jobs):
            removed += int(self.cleanup(job_id))
        self._recovered = False
        if removed:
            LOGGER.info(f"Stopped tracking {removed} job(s)")
        return removed

    def expire_stale(self, now: Optional[float] = None) -> List[uuid.UUID]:
        """Silently drop jobs tracked for longer than the timeout."""
        now = self.clock() if now is None else now
        expired = [
            job_id for job_id, tracked in self._jobs.items() if now - tracked.tracked_at >= self.timeout_seconds
        ]
        for job_id in expired:
            LOGGER.warning(f"Job {job_id} timed out without a terminal update", extra={"job_id": str(job_id)})
            self.cleanup(job_id)
        return expired

    async def recover_jobs(self, user_id: uuid.UUID) -> int:
        """Re-track the user's active jobs. Runs once per session.

        Returns:
            Number of jobs added to the registry
        """
        if self._recovered:
            return 0
        if self.job_source is None:
            LOGGER.warning("No job source configured, skipping job recovery")
            return 0

        self._recovered = True
        records = await self.job_source(user_id, self.recover_limit)
        recovered = 0
        for record in records[: self.recover_limit]:
            if self.track(record.id, record.journal_entry_id, status=record.status):
                recovered += 1
        if recovered:
            LOGGER.info(f"Recovered {recovered} active job(s) for user {user_id}")
        return recovered

    def active_job_count(self) -> int:
        return len(self._jobs)

    def has_active_jobs(self) -> bool:
        return bool(self._jobs)

    def get_job_status(self, job_id: uuid.UUID) -> Optional[JobStatus]:
        tracked = self._jobs.get(job_id)
        return tracked.status if tracked else None

    def _on_change(self, event: JobChangeEvent) -> None:
        self.handle_update(event.record)

    def _signal(self, kind: str, record: JobRecord, tracked: TrackedJob) -> JobSignal:
        return JobSignal(
            kind=kind,
            job_id=record.id,
            journal_entry_id=record.journal_entry_id or tracked.journal_entry_id,
            title=format_job_title(record),
            message=format_job_message(record),
        )

    def _arm_timer(self, job_id: uuid.UUID) -> Optional[asyncio.TimerHandle]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return loop.call_later(self.timeout_seconds, self._expire, job_id)

    def _expire(self, job_id: uuid.UUID) -> None:
        if self.cleanup(job_id):
            LOGGER.warning(f"Job {job_id} timed out without a terminal update", extra={"job_id": str(job_id)})
