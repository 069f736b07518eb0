import json

import pytest

from conftest import FakeLLMClient, make_action_item, make_event, make_extraction
from daylight.core.exceptions import APIClientError, APITimeoutError, ExtractionFailedError
from daylight.schemas.extraction import ExtractionContext
from daylight.services.extraction.extraction_invoker import ExtractionInvoker, schema_instruction


@pytest.fixture
def context() -> ExtractionContext:
    return ExtractionContext(
        system_prompt="You are an extraction engine for Project Daylight.",
        entry_text="Yesterday at 7pm pickup was late.",
        reference_date="2026-01-30",
        timezone="America/New_York",
    )


@pytest.mark.asyncio
async def test_valid_response(context):
    llm = FakeLLMClient(make_extraction(events=[make_event()], action_items=[make_action_item()]))
    invoker = ExtractionInvoker(llm, temperature=0.0)

    payload = await invoker.extract(context)

    assert len(payload.events) == 1
    assert payload.events[0].type.value == "coparent_conflict"
    assert len(payload.action_items) == 1

    call = llm.calls[0]
    assert call["contents"] == "Yesterday at 7pm pickup was late."
    assert call["system_instruction"].startswith("You are an extraction engine")
    assert schema_instruction() in call["system_instruction"]
    assert call["generation_config"] == {"temperature": 0.0, "response_mime_type": "application/json"}


@pytest.mark.asyncio
async def test_fenced_response_is_accepted(context):
    llm = FakeLLMClient(f"```json\n{json.dumps(make_extraction())}\n```")
    payload = await ExtractionInvoker(llm).extract(context)
    assert payload.events == []


@pytest.mark.asyncio
async def test_timeout(context):
    llm = FakeLLMClient(make_extraction(), delay=1.0)

    with pytest.raises(ExtractionFailedError) as exc_info:
        await ExtractionInvoker(llm, timeout_seconds=0.01).extract(context)

    assert exc_info.value.reason == ExtractionFailedError.TIMEOUT


@pytest.mark.asyncio
async def test_provider_timeout_is_a_timeout(context):
    llm = FakeLLMClient(error=APITimeoutError("OpenRouter request timed out"))

    with pytest.raises(ExtractionFailedError) as exc_info:
        await ExtractionInvoker(llm).extract(context)

    assert exc_info.value.reason == ExtractionFailedError.TIMEOUT


@pytest.mark.asyncio
async def test_provider_failure(context):
    llm = FakeLLMClient(error=APIClientError("API Client Error 503: overloaded"))

    with pytest.raises(ExtractionFailedError) as exc_info:
        await ExtractionInvoker(llm).extract(context)

    assert exc_info.value.reason == ExtractionFailedError.UNAVAILABLE
    assert "overloaded" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        "",
        "I could not find any events.",
        '{"extraction": {"events": [',
        json.dumps({"events": []}),
        json.dumps(make_extraction(events=[make_event(type="sleepover")])),
        json.dumps(make_extraction(events=[make_event(confidence=0.8)])),
    ],
)
async def test_schema_violations(context, response):
    with pytest.raises(ExtractionFailedError) as exc_info:
        await ExtractionInvoker(FakeLLMClient(response)).extract(context)

    assert exc_info.value.reason == ExtractionFailedError.SCHEMA_VIOLATION


def test_missing_nullable_key_is_a_violation():
    event = make_event()
    del event["location"]

    with pytest.raises(ExtractionFailedError) as exc_info:
        ExtractionInvoker.validate_response(json.dumps(make_extraction(events=[event])))

    assert any("location" in error for error in exc_info.value.errors)
