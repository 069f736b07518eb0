import asyncio
import uuid
from unittest.mock import AsyncMock, Mock, patch

import pytest

from conftest import make_record
from daylight.core.config import settings
from daylight.schemas.jobs import JobChangeEvent, JobStatus
from daylight.services.notifications.channel import InProcessJobChannel
from daylight.services.notifications.job_tracker import ClientJobTracker


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def notifier() -> Mock:
    return Mock()


@pytest.fixture
def channel() -> InProcessJobChannel:
    return InProcessJobChannel()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(channel, notifier, clock) -> ClientJobTracker:
    return ClientJobTracker(channel, notifier, timeout_seconds=600, clock=clock)


class TestTracking:

    def test_limits_default_to_settings(self, channel, notifier):
        with patch.object(settings.extraction, "job_tracker_timeout_seconds", 42.0), patch.object(
            settings.extraction, "recover_jobs_limit", 4
        ):
            tracker = ClientJobTracker(channel, notifier)

        assert tracker.timeout_seconds == 42.0
        assert tracker.recover_limit == 4

    def test_tracking_is_idempotent(self, tracker, channel):
        job_id = uuid.uuid4()

        assert tracker.track(job_id) is True
        assert tracker.track(job_id) is False
        assert tracker.active_job_count() == 1
        assert channel.subscription_count(job_id) == 1

    def test_terminal_jobs_are_not_tracked(self, tracker):
        assert tracker.track(uuid.uuid4(), status=JobStatus.COMPLETED) is False
        assert tracker.has_active_jobs() is False

    def test_completion_signals_once(self, tracker, notifier, channel):
        record = make_record(JobStatus.COMPLETED, result_summary={"events_created": 1})
        tracker.track(record.id, record.journal_entry_id)

        signal = tracker.handle_update(record)
        assert tracker.handle_update(record) is None

        assert signal.kind == "success"
        assert signal.title == "Journal entry ready!"
        assert signal.message == "1 event extracted"
        assert signal.journal_entry_id == record.journal_entry_id
        notifier.assert_called_once_with(signal)
        assert tracker.active_job_count() == 0
        assert channel.subscription_count() == 0

    def test_failure_signal_carries_the_error(self, tracker, notifier):
        record = make_record(JobStatus.FAILED, error_message="Extraction service unavailable")
        tracker.track(record.id)

        signal = tracker.handle_update(record)

        assert signal.kind == "failure"
        assert signal.title == "Processing failed"
        assert signal.message == "Extraction service unavailable"
        notifier.assert_called_once()

    def test_progress_updates_do_not_signal(self, tracker, notifier):
        record = make_record(JobStatus.PROCESSING)
        tracker.track(record.id)

        assert tracker.handle_update(record) is None
        assert tracker.get_job_status(record.id) == JobStatus.PROCESSING
        notifier.assert_not_called()

    def test_silent_jobs_are_cleaned_up_without_a_signal(self, tracker, notifier):
        record = make_record(JobStatus.COMPLETED)
        tracker.track(record.id, silent=True)

        assert tracker.handle_update(record) is None
        assert tracker.active_job_count() == 0
        notifier.assert_not_called()

    def test_cancellation_is_silent(self, tracker, notifier):
        record = make_record(JobStatus.CANCELLED)
        tracker.track(record.id)

        assert tracker.handle_update(record) is None
        assert tracker.get_job_status(record.id) is None
        notifier.assert_not_called()

    def test_untracked_updates_are_ignored(self, tracker, notifier):
        assert tracker.handle_update(make_record(JobStatus.COMPLETED)) is None
        notifier.assert_not_called()


class TestCleanup:

    def test_cleanup_all(self, tracker, channel):
        for _ in range(3):
            tracker.track(uuid.uuid4())

        assert tracker.cleanup_all() == 3
        assert tracker.active_job_count() == 0
        assert channel.subscription_count() == 0
        assert tracker.cleanup_all() == 0

    def test_stale_jobs_expire_silently(self, tracker, notifier, clock):
        old, fresh = uuid.uuid4(), uuid.uuid4()
        tracker.track(old)
        clock.now += 400
        tracker.track(fresh)
        clock.now += 200

        assert tracker.expire_stale() == [old]
        assert tracker.get_job_status(fresh) == JobStatus.PENDING
        notifier.assert_not_called()

    @pytest.mark.asyncio
    async def test_timer_expires_jobs_inside_a_running_loop(self, channel, notifier):
        tracker = ClientJobTracker(channel, notifier, timeout_seconds=0.01)
        job_id = uuid.uuid4()
        tracker.track(job_id)

        await asyncio.sleep(0.05)

        assert tracker.active_job_count() == 0
        assert channel.subscription_count() == 0
        notifier.assert_not_called()

    @pytest.mark.asyncio
    async def test_terminal_update_cancels_the_timer(self, channel, notifier):
        tracker = ClientJobTracker(channel, notifier, timeout_seconds=0.05)
        record = make_record(JobStatus.FAILED)
        tracker.track(record.id)

        await channel.publish(JobChangeEvent.from_record(record))
        await asyncio.sleep(0.1)

        notifier.assert_called_once()


class TestRecovery:

    @pytest.mark.asyncio
    async def test_recover_runs_once_per_session(self, channel, notifier):
        user_id = uuid.uuid4()
        records = [make_record(JobStatus.PENDING, user_id=user_id), make_record(JobStatus.PROCESSING, user_id=user_id)]
        source = AsyncMock(return_value=records)
        tracker = ClientJobTracker(channel, notifier, job_source=source, recover_limit=5)

        assert await tracker.recover_jobs(user_id) == 2
        assert await tracker.recover_jobs(user_id) == 0
        source.assert_awaited_once_with(user_id, 5)
        assert tracker.get_job_status(records[1].id) == JobStatus.PROCESSING

        tracker.cleanup_all()
        assert await tracker.recover_jobs(user_id) == 2

    @pytest.mark.asyncio
    async def test_recover_respects_limit_and_existing_jobs(self, channel, notifier):
        records = [make_record(JobStatus.PENDING) for _ in range(4)]
        tracker = ClientJobTracker(channel, notifier, job_source=AsyncMock(return_value=records), recover_limit=3)
        tracker.track(records[0].id)

        assert await tracker.recover_jobs(uuid.uuid4()) == 2
        assert tracker.active_job_count() == 3

    @pytest.mark.asyncio
    async def test_recover_without_source(self, tracker):
        assert await tracker.recover_jobs(uuid.uuid4()) == 0

    @pytest.mark.asyncio
    async def test_recovered_job_signals_through_the_channel(self, channel, notifier):
        record = make_record(JobStatus.PROCESSING)
        tracker = ClientJobTracker(channel, notifier, job_source=AsyncMock(return_value=[record]))
        await tracker.recover_jobs(record.user_id)

        done = record.model_copy(update={"status": JobStatus.COMPLETED})
        await channel.publish(JobChangeEvent.from_record(done))

        assert notifier.call_args.args[0].kind == "success"
        assert tracker.has_active_jobs() is False
