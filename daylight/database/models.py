"""SQLAlchemy models for the journal extraction tables."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from daylight.core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

ACTIVE_JOB_STATUSES_SQL = "status IN ('pending', 'processing')"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class Profile(TimestampMixin, Base):
    """Per-user profile. The id is the authenticated user's id."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Case(TimestampMixin, Base):
    """Custody case metadata used as extraction context."""

    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    case_number: Mapped[str | None] = mapped_column(String, nullable=True)
    jurisdiction_state: Mapped[str | None] = mapped_column(String, nullable=True)
    jurisdiction_county: Mapped[str | None] = mapped_column(String, nullable=True)
    court_name: Mapped[str | None] = mapped_column(String, nullable=True)
    case_type: Mapped[str | None] = mapped_column(String, nullable=True)
    stage: Mapped[str | None] = mapped_column(String, nullable=True)
    your_role: Mapped[str | None] = mapped_column(String, nullable=True)
    opposing_party_name: Mapped[str | None] = mapped_column(String, nullable=True)
    opposing_party_role: Mapped[str | None] = mapped_column(String, nullable=True)
    children_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    children_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    parenting_schedule: Mapped[str | None] = mapped_column(Text, nullable=True)
    goals_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_flags: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    next_court_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class JournalEntry(TimestampMixin, Base):
    """Narrative entry submitted for extraction."""

    __tablename__ = "journal_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    event_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reference_time_description: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="draft"
    )  # draft | processing | review | completed | cancelled | failed
    extraction_raw: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Evidence(Base):
    """Attached artifact. Usable as context once its summary is populated."""

    __tablename__ = "evidence"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False, default="photo")
    storage_path: Mapped[str | None] = mapped_column(String, nullable=True)
    original_filename: Mapped[str | None] = mapped_column(String, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    user_annotation: Mapped[str | None] = mapped_column(Text, nullable=True)
    extraction_raw: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class JournalEntryEvidence(Base):
    """Evidence attached to a journal entry, in display order."""

    __tablename__ = "journal_entry_evidence"
    __table_args__ = (UniqueConstraint("journal_entry_id", "evidence_id", name="uq_entry_evidence"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    evidence_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class Job(TimestampMixin, Base):
    """One extraction attempt for a journal entry."""

    __tablename__ = "jobs"
    __table_args__ = (
        # At most one pending/processing job per journal entry
        Index(
            "uq_jobs_active_journal_entry",
            "journal_entry_id",
            unique=True,
            postgresql_where=text(ACTIVE_JOB_STATUSES_SQL),
            sqlite_where=text(ACTIVE_JOB_STATUSES_SQL),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="journal_extraction"
    )  # journal_extraction | evidence_processing
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="pending"
    )  # pending | processing | completed | failed | cancelled
    journal_entry_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=True, index=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_summary: Mapped[dict | None] = mapped_column(JSONType, nullable=True)


class Event(TimestampMixin, Base):
    """Extracted event.

    ``type`` and ``welfare_impact`` are the legacy columns; ``type_v2`` and the
    ``welfare_*`` triple are the current ones. Rows written before the migration
    only carry the legacy columns.
    """

    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    journal_entry_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("journal_entries.id", ondelete="SET NULL"), nullable=True, index=True
    )
    job_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    type_v2: Mapped[str | None] = mapped_column(String(32), nullable=True)
    title: Mapped[str] = mapped_column(String, nullable=False, default="Untitled event")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    timestamp_precision: Mapped[str] = mapped_column(String(16), nullable=False, default="unknown")
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location: Mapped[str | None] = mapped_column(String, nullable=True)
    child_involved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    agreement_violation: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    safety_concern: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    welfare_impact: Mapped[str] = mapped_column(String(16), nullable=False, default="unknown")
    welfare_category: Mapped[str | None] = mapped_column(String(16), nullable=True)
    welfare_direction: Mapped[str | None] = mapped_column(String(16), nullable=True)
    welfare_severity: Mapped[str | None] = mapped_column(String(16), nullable=True)
    child_statements: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    coparent_interaction: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    patterns_noted_v2: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    # Set when a reprocess replaced this row; the owning job keeps its count
    superseded_by_job_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class EventParticipant(Base):
    __tablename__ = "event_participants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)  # primary | witness | professional
    label: Mapped[str] = mapped_column(String, nullable=False)


class EvidenceMention(Base):
    __tablename__ = "evidence_mentions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # have | need_to_get | need_to_create


class EventEvidence(Base):
    __tablename__ = "event_evidence"
    __table_args__ = (UniqueConstraint("event_id", "evidence_id", name="uq_event_evidence"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    evidence_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ActionItem(Base):
    """Follow-up task extracted alongside events."""

    __tablename__ = "action_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    event_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )
    job_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    priority: Mapped[str] = mapped_column(String(16), nullable=False)  # urgent | high | normal | low
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    deadline: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    superseded_by_job_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
