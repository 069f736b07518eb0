"""Per-job change notifications.

Subscribers register a callback for one job id and receive a
``JobChangeEvent`` carrying the full job record whenever that job changes.
"""

import asyncio
import inspect
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Protocol, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from daylight.core.database import async_session_maker
from daylight.database.models import Job
from daylight.schemas.jobs import JobChangeEvent, JobRecord, JobStatus
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

JobCallback = Callable[[JobChangeEvent], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class Subscription:
    job_id: uuid.UUID
    callback: JobCallback = field(compare=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class JobChannel(Protocol):
    def subscribe(self, job_id: uuid.UUID, callback: JobCallback) -> Subscription:
        ...

    def unsubscribe(self, subscription: Subscription) -> None:
        ...

    async def publish(self, event: JobChangeEvent) -> None:
        ...


class InProcessJobChannel:
    """Subscriptions keyed by job id, delivered in the publishing task."""

    def __init__(self):
        self._subscriptions: Dict[uuid.UUID, Dict[str, Subscription]] = {}

    def subscribe(self, job_id: uuid.UUID, callback: JobCallback) -> Subscription:
        subscription = Subscription(job_id=job_id, callback=callback)
        self._subscriptions.setdefault(job_id, {})[subscription.id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.job_id)
        if not subscribers:
            return
        subscribers.pop(subscription.id, None)
        if not subscribers:
            del self._subscriptions[subscription.job_id]

    def subscription_count(self, job_id: Optional[uuid.UUID] = None) -> int:
        if job_id is not None:
            return len(self._subscriptions.get(job_id, {}))
        return sum(len(subscribers) for subscribers in self._subscriptions.values())

    async def publish(self, event: JobChangeEvent) -> None:
        for subscription in list(self._subscriptions.get(event.job_id, {}).values()):
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                LOGGER.error(
                    f"Subscriber failed for job {event.job_id}: {e}",
                    exc_info=True,
                    extra={"job_id": str(event.job_id), "subscription_id": subscription.id},
                )


class PollingJobChannel(InProcessJobChannel):
    """Channel that derives change events by polling subscribed job rows.

    A change is a new ``(status, updated_at)`` pair for a job. The first poll
    after subscribing publishes the current state.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        poll_interval: float = 2.0,
    ):
        super().__init__()
        self.session_factory = session_factory
        self.poll_interval = poll_interval
        self._last_seen: Dict[uuid.UUID, Tuple[JobStatus, Optional[datetime]]] = {}

    def unsubscribe(self, subscription: Subscription) -> None:
        super().unsubscribe(subscription)
        if subscription.job_id not in self._subscriptions:
            self._last_seen.pop(subscription.job_id, None)

    async def poll_once(self) -> int:
        """Publish changes for every subscribed job.

        Returns:
            Number of change events published
        """
        job_ids = list(self._subscriptions)
        if not job_ids:
            return 0

        async with self.session_factory() as session:
            result = await session.execute(select(Job).where(Job.id.in_(job_ids)))
            records = [JobRecord.model_validate(job) for job in result.scalars().all()]

        published = 0
        for record in records:
            marker = (record.status, record.updated_at)
            if self._last_seen.get(record.id) == marker:
                continue
            self._last_seen[record.id] = marker
            await self.publish(JobChangeEvent.from_record(record))
            published += 1
        return published

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop_event`` is set or the task is cancelled."""
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                LOGGER.error(f"Job polling failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
