import asyncio

import pytest
from sqlalchemy import update

from conftest import make_record
from daylight.database.models import Job
from daylight.schemas.jobs import JobChangeEvent, JobStatus
from daylight.services.notifications.channel import InProcessJobChannel, PollingJobChannel


class TestInProcessChannel:

    @pytest.mark.asyncio
    async def test_delivers_to_subscribers_of_that_job_only(self):
        channel = InProcessJobChannel()
        record = make_record(JobStatus.PROCESSING)
        received, other = [], []

        channel.subscribe(record.id, received.append)
        channel.subscribe(make_record().id, other.append)
        await channel.publish(JobChangeEvent.from_record(record))

        assert [event.job_id for event in received] == [record.id]
        assert other == []

    @pytest.mark.asyncio
    async def test_async_callbacks_and_failing_subscribers(self):
        channel = InProcessJobChannel()
        record = make_record(JobStatus.COMPLETED)
        received = []

        async def async_callback(event):
            received.append(event.status)

        def broken(event):
            raise RuntimeError("subscriber bug")

        channel.subscribe(record.id, broken)
        channel.subscribe(record.id, async_callback)
        await channel.publish(JobChangeEvent.from_record(record))

        assert received == [JobStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        channel = InProcessJobChannel()
        record = make_record()
        received = []

        subscription = channel.subscribe(record.id, received.append)
        assert channel.subscription_count(record.id) == 1
        channel.unsubscribe(subscription)
        channel.unsubscribe(subscription)
        await channel.publish(JobChangeEvent.from_record(record))

        assert received == []
        assert channel.subscription_count() == 0


class TestPollingChannel:

    @pytest.mark.asyncio
    async def test_publishes_each_change_once(self, session_factory, seed, user_id):
        entry = await seed.entry(user_id)
        job = await seed.job(user_id, entry.id)
        channel = PollingJobChannel(session_factory, poll_interval=0.01)
        received = []
        channel.subscribe(job.id, received.append)

        assert await channel.poll_once() == 1
        assert await channel.poll_once() == 0

        async with session_factory() as session:
            await session.execute(update(Job).where(Job.id == job.id).values(status="processing"))
            await session.commit()

        assert await channel.poll_once() == 1
        assert [event.status for event in received] == [JobStatus.PENDING, JobStatus.PROCESSING]

    @pytest.mark.asyncio
    async def test_nothing_to_poll_without_subscribers(self, session_factory):
        assert await PollingJobChannel(session_factory).poll_once() == 0

    @pytest.mark.asyncio
    async def test_run_stops_on_event(self, session_factory, seed, user_id):
        entry = await seed.entry(user_id)
        job = await seed.job(user_id, entry.id, status="completed")
        channel = PollingJobChannel(session_factory, poll_interval=0.01)
        received = asyncio.Event()
        channel.subscribe(job.id, lambda event: received.set())
        stop = asyncio.Event()

        task = asyncio.create_task(channel.run(stop))
        await asyncio.wait_for(received.wait(), timeout=2)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

        assert task.done()
