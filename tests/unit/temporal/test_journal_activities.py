import uuid
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from conftest import FakeLLMClient, make_event, make_extraction
from daylight.core.exceptions import ConfigurationError
from daylight.database.models import Event, Job
from daylight.services.extraction.extraction_handler import JournalExtractionHandler
from daylight.temporal.activities import journal_extraction as activities
from daylight.temporal.workflows.journal_extraction import FALLBACK_FAILURE_MESSAGE, failure_message


@pytest.fixture
def use_handler(make_handler):
    """Point the activities at a handler backed by the test database."""

    def _use(llm: FakeLLMClient):
        handler = make_handler(llm)
        return patch.object(activities, "get_handler", return_value=handler)

    return _use


@pytest.mark.asyncio
async def test_full_activity_sequence(use_handler, seed, user_id):
    entry = await seed.entry(user_id)
    job = await seed.job(user_id, entry.id)
    env = ActivityEnvironment()

    with use_handler(FakeLLMClient(make_extraction(events=[make_event()]))):
        claim = await env.run(activities.claim_extraction_job, str(job.id))
        outcome = await env.run(activities.extract_journal_events, str(job.id), "America/New_York")
        result = await env.run(activities.persist_extraction_result, str(job.id), outcome)

    assert claim["claimed"] is True
    assert claim["job"]["status"] == "processing"
    assert outcome["timezone"] == "America/New_York"
    assert len(outcome["extraction"]["events"]) == 1
    assert result["status"] == "completed"
    assert result["result_summary"]["events_created"] == 1
    assert await seed.count(Event) == 1


@pytest.mark.asyncio
async def test_claim_of_finished_job_is_skipped(use_handler, seed, user_id):
    entry = await seed.entry(user_id)
    job = await seed.job(user_id, entry.id, status="cancelled")

    with use_handler(FakeLLMClient()):
        claim = await ActivityEnvironment().run(activities.claim_extraction_job, str(job.id))

    assert claim == {"claimed": False, "job_id": str(job.id), "status": "cancelled"}


@pytest.mark.asyncio
async def test_missing_job_is_not_retried(use_handler):
    with use_handler(FakeLLMClient()):
        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(activities.claim_extraction_job, str(uuid.uuid4()))

    assert exc_info.value.non_retryable is True
    assert exc_info.value.type == "NotFoundError"


@pytest.mark.asyncio
async def test_schema_violation_is_retryable(use_handler, seed, user_id):
    entry = await seed.entry(user_id)
    job = await seed.job(user_id, entry.id, status="processing")

    with use_handler(FakeLLMClient("not json")):
        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(activities.extract_journal_events, str(job.id), None)

    assert exc_info.value.non_retryable is False
    assert exc_info.value.type == "ExtractionFailedError"
    assert (await seed.get(Job, job.id)).status == "processing"


@pytest.mark.asyncio
async def test_missing_llm_configuration_is_not_retried(session_factory, seed, user_id):
    entry = await seed.entry(user_id)
    job = await seed.job(user_id, entry.id, status="processing")
    handler = JournalExtractionHandler(session_factory=session_factory)

    with patch.object(activities, "get_handler", return_value=handler), patch(
        "daylight.core.llm_client.create_llm_client",
        side_effect=ConfigurationError("GEMINI_API_KEY is not set"),
    ):
        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(activities.extract_journal_events, str(job.id), None)

    assert exc_info.value.non_retryable is True
    assert exc_info.value.type == "ConfigurationError"


@pytest.mark.asyncio
async def test_extract_requires_a_claimed_job(use_handler, seed, user_id):
    entry = await seed.entry(user_id)
    job = await seed.job(user_id, entry.id)
    llm = FakeLLMClient(make_extraction())

    with use_handler(llm):
        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(activities.extract_journal_events, str(job.id), None)

    assert exc_info.value.non_retryable is True
    assert llm.calls == []


@pytest.mark.asyncio
async def test_unexpected_errors_hide_details(use_handler, seed, user_id):
    entry = await seed.entry(user_id)
    job = await seed.job(user_id, entry.id, status="processing")

    with use_handler(FakeLLMClient(error=RuntimeError("connection reset by peer"))):
        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(activities.extract_journal_events, str(job.id), None)

    assert "connection reset" not in exc_info.value.message


@pytest.mark.asyncio
async def test_mark_extraction_failed(use_handler, seed, user_id):
    entry = await seed.entry(user_id)
    job = await seed.job(user_id, entry.id, status="processing")

    with use_handler(FakeLLMClient()):
        result = await ActivityEnvironment().run(
            activities.mark_extraction_failed, str(job.id), "Extraction timed out after 120 seconds"
        )
        missing = await ActivityEnvironment().run(activities.mark_extraction_failed, str(uuid.uuid4()), "")

    assert result["status"] == "failed"
    assert result["error_message"] == "Extraction timed out after 120 seconds"
    assert missing["status"] is None


def test_failure_message_uses_the_activity_cause():
    assert failure_message(SimpleNamespace(cause=ApplicationError("Extraction timed out"))) == "Extraction timed out"
    assert failure_message(SimpleNamespace(cause=None)) == FALLBACK_FAILURE_MESSAGE
