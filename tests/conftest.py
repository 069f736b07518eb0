"""Pytest configuration and shared fixtures."""

import asyncio
import json
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SUPABASE_URL"] = "https://test-project.supabase.co"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["LLM_PROVIDER"] = "gemini"
os.environ["LOG_LEVEL"] = "WARNING"

import jwt
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from daylight.core.database import Base
from daylight.database import models
from daylight.main import app
from daylight.schemas.jobs import JobRecord, JobResultSummary, JobStatus
from daylight.services.extraction.extraction_handler import JournalExtractionHandler
from daylight.services.extraction.extraction_invoker import ExtractionInvoker
from daylight.services.notifications.channel import InProcessJobChannel

SUPABASE_URL = os.environ["SUPABASE_URL"]
JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]

FIXED_NOW = datetime(2026, 1, 30, 15, 0, tzinfo=timezone.utc)

LATE_PICKUP_TEXT = (
    "Yesterday at 7pm the other parent showed up 45 minutes late for pickup at school. "
    "I have the text message where they said they were running late."
)


def make_event(**overrides) -> Dict[str, Any]:
    """A schema-valid extracted event. Keys can be overridden."""
    event = {
        "type": "coparent_conflict",
        "title": "Late pickup",
        "description": "The other parent arrived 45 minutes late for the scheduled pickup.",
        "primary_timestamp": "2026-01-29T19:00:00Z",
        "timestamp_precision": "exact",
        "duration_minutes": 45,
        "location": "School parking lot",
        "participants": {"primary": ["co-parent", "child"], "witnesses": ["Ms. Patel"], "professionals": []},
        "child_involved": True,
        "evidence_mentioned": [
            {"type": "text", "description": "Text message saying they were running late", "status": "have"}
        ],
        "child_statements": [],
        "coparent_interaction": {
            "your_tone": "neutral",
            "their_tone": "defensive",
            "your_response_appropriate": True,
        },
        "patterns_noted": [
            {
                "pattern_type": "schedule_violation",
                "description": "Third late pickup this month",
                "frequency": "recurring",
            }
        ],
        "custody_relevance": {
            "agreement_violation": True,
            "safety_concern": False,
            "welfare_impact": {"category": "routine", "direction": "negative", "severity": "moderate"},
        },
    }
    event.update(overrides)
    return event


def make_action_item(**overrides) -> Dict[str, Any]:
    item = {
        "priority": "normal",
        "type": "document",
        "description": "Save the text message about the late pickup",
        "deadline": None,
    }
    item.update(overrides)
    return item


def make_extraction(events: Optional[List[dict]] = None, action_items: Optional[List[dict]] = None) -> Dict[str, Any]:
    return {
        "extraction": {
            "events": events if events is not None else [],
            "action_items": action_items if action_items is not None else [],
            "metadata": {"extraction_confidence": 0.9, "ambiguities": []},
        }
    }


def make_record(status: JobStatus = JobStatus.PENDING, **overrides) -> JobRecord:
    values = {
        "id": uuid.uuid4(),
        "user_id": uuid.uuid4(),
        "status": status,
        "journal_entry_id": uuid.uuid4(),
    }
    values.update(overrides)
    if isinstance(values.get("result_summary"), dict):
        values["result_summary"] = JobResultSummary(**values["result_summary"])
    return JobRecord(**values)


class FakeLLMClient:
    """Stands in for the Gemini/OpenRouter clients."""

    def __init__(self, response: Any = None, error: Optional[Exception] = None, delay: float = 0.0):
        if isinstance(response, dict):
            response = json.dumps(response)
        self.response = response
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def generate_content(self, contents, system_instruction=None, generation_config=None) -> str:
        self.calls.append(
            {
                "contents": contents,
                "system_instruction": system_instruction,
                "generation_config": generation_config,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class RecordingEnqueuer:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[tuple] = []

    async def enqueue(self, job: JobRecord, timezone: Optional[str] = None) -> None:
        self.calls.append((job, timezone))
        if self.error is not None:
            raise self.error


class Seeder:
    """Writes fixture rows, each in its own committed session."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _add(self, obj):
        async with self.session_factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def profile(self, user_id: uuid.UUID, timezone: Optional[str] = "America/New_York", full_name="Alex Rivera"):
        return await self._add(models.Profile(id=user_id, timezone=timezone, full_name=full_name))

    async def case(self, user_id: uuid.UUID, **values):
        values.setdefault("title", "Rivera v. Rivera")
        values.setdefault("jurisdiction_state", "VA")
        return await self._add(models.Case(user_id=user_id, **values))

    async def entry(
        self,
        user_id: uuid.UUID,
        text: Optional[str] = LATE_PICKUP_TEXT,
        reference_date: Optional[str] = "2026-01-30",
        status: str = "draft",
    ):
        return await self._add(
            models.JournalEntry(user_id=user_id, event_text=text, reference_date=reference_date, status=status)
        )

    async def evidence(self, user_id: uuid.UUID, summary: Optional[str] = "Screenshot of a text: 'running late'", **values):
        return await self._add(models.Evidence(user_id=user_id, summary=summary, **values))

    async def link(self, entry_id: uuid.UUID, evidence_id: uuid.UUID, sort_order: int = 0):
        return await self._add(
            models.JournalEntryEvidence(journal_entry_id=entry_id, evidence_id=evidence_id, sort_order=sort_order)
        )

    async def job(self, user_id: uuid.UUID, entry_id: Optional[uuid.UUID], status: str = "pending", **values):
        return await self._add(models.Job(user_id=user_id, journal_entry_id=entry_id, status=status, **values))

    async def get(self, model, obj_id):
        async with self.session_factory() as session:
            return await session.get(model, obj_id)

    async def all(self, model, *criteria):
        async with self.session_factory() as session:
            result = await session.execute(select(model).where(*criteria))
            return list(result.scalars().all())

    async def count(self, model, *criteria) -> int:
        async with self.session_factory() as session:
            query = select(func.count()).select_from(model)
            if criteria:
                query = query.where(*criteria)
            return (await session.execute(query)).scalar_one()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'daylight.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def channel() -> InProcessJobChannel:
    return InProcessJobChannel()


@pytest.fixture
def make_handler(session_factory, channel):
    """Build a handler around a fake LLM client and the test database."""

    def _make(llm: FakeLLMClient, timeout_seconds: float = 5.0) -> JournalExtractionHandler:
        return JournalExtractionHandler(
            session_factory=session_factory,
            invoker=ExtractionInvoker(llm, timeout_seconds=timeout_seconds),
            channel=channel,
            clock=lambda: FIXED_NOW,
        )

    return _make


def make_token(user_id: uuid.UUID, **overrides) -> str:
    now = int(time.time())
    claims = {
        "sub": str(user_id),
        "email": "parent@example.com",
        "role": "authenticated",
        "aud": "authenticated",
        "iss": f"{SUPABASE_URL}/auth/v1",
        "iat": now,
        "exp": now + 3600,
    }
    claims.update(overrides)
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers(user_id) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}
