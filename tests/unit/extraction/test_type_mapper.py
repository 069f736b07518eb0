import uuid
from datetime import datetime, timezone

import pytest

from conftest import make_event
from daylight.schemas.extraction import EventType, ExtractedEvent, LegacyEventType, WelfareImpact
from daylight.services.extraction.type_mapper import (
    DEFAULT_EVENT_TYPE,
    EVENT_TYPE_LABELS,
    build_event_row,
    build_evidence_mention_rows,
    build_participant_rows,
    event_type_label,
    map_legacy_to_v2,
    map_v2_to_legacy,
    map_welfare_to_legacy,
    resolve_event_type,
)


class TestTypeMaps:

    @pytest.mark.parametrize("event_type", list(EventType))
    def test_every_current_type_has_a_legacy_type(self, event_type):
        assert isinstance(map_v2_to_legacy(event_type), LegacyEventType)
        assert event_type in EVENT_TYPE_LABELS

    @pytest.mark.parametrize("legacy", list(LegacyEventType))
    def test_every_legacy_type_has_a_current_type(self, legacy):
        assert isinstance(map_legacy_to_v2(legacy), EventType)

    def test_known_pairs(self):
        assert map_v2_to_legacy("gatekeeping") == LegacyEventType.INCIDENT
        assert map_v2_to_legacy("caregiving") == LegacyEventType.POSITIVE
        assert map_legacy_to_v2("incident") == EventType.COPARENT_CONFLICT
        assert map_legacy_to_v2("positive") == EventType.PARENTING_TIME

    def test_unknown_values_are_rejected(self):
        with pytest.raises(ValueError):
            map_v2_to_legacy("sleepover")
        with pytest.raises(ValueError):
            map_legacy_to_v2("sleepover")

    def test_resolve_event_type_prefers_current_column(self):
        assert resolve_event_type("gatekeeping", "incident") == EventType.GATEKEEPING

    def test_resolve_event_type_for_legacy_rows(self):
        assert resolve_event_type(None, "incident") == EventType.COPARENT_CONFLICT
        assert resolve_event_type("bogus", "school") == EventType.SCHOOL
        assert resolve_event_type(None, None) == DEFAULT_EVENT_TYPE

    def test_labels(self):
        assert event_type_label("household") == "Household / Chores"


@pytest.mark.parametrize(
    "welfare,expected",
    [
        (None, "unknown"),
        ({"category": "social", "direction": "positive", "severity": None}, "positive"),
        ({"category": "routine", "direction": "neutral", "severity": "moderate"}, "none"),
        ({"category": "routine", "direction": "negative", "severity": "minimal"}, "minor"),
        ({"category": "emotional", "direction": "negative", "severity": "significant"}, "significant"),
        ({"category": "emotional", "direction": "negative", "severity": None}, "unknown"),
    ],
)
def test_map_welfare_to_legacy(welfare, expected):
    impact = WelfareImpact(**welfare) if welfare else None
    assert map_welfare_to_legacy(impact) == expected


class TestBuildEventRow:

    def _row(self, event: dict, tz: str = "America/New_York") -> dict:
        return build_event_row(
            ExtractedEvent.model_validate(event),
            event_id=uuid.uuid4(),
            user_id=uuid.uuid4(),
            journal_entry_id=uuid.uuid4(),
            job_id=uuid.uuid4(),
            timezone=tz,
        )

    def test_dual_writes_both_representations(self):
        row = self._row(make_event())

        assert row["type_v2"] == "coparent_conflict"
        assert row["type"] == "incident"
        assert row["welfare_category"] == "routine"
        assert row["welfare_direction"] == "negative"
        assert row["welfare_severity"] == "moderate"
        assert row["welfare_impact"] == "moderate"
        assert row["agreement_violation"] is True
        assert row["patterns_noted_v2"][0]["pattern_type"] == "schedule_violation"
        assert row["coparent_interaction"]["their_tone"] == "defensive"

    def test_timestamp_is_local_wall_clock_time(self):
        row = self._row(make_event(primary_timestamp="2026-01-29T19:00:00Z"))
        assert row["primary_timestamp"] == datetime(2026, 1, 30, 0, 0, tzinfo=timezone.utc)
        assert row["timestamp_precision"] == "exact"

    def test_missing_timestamp_has_unknown_precision(self):
        row = self._row(make_event(primary_timestamp=None, timestamp_precision="day"))
        assert row["primary_timestamp"] is None
        assert row["timestamp_precision"] == "unknown"

    def test_duration_is_rounded(self):
        assert self._row(make_event(duration_minutes=44.6))["duration_minutes"] == 45
        assert self._row(make_event(duration_minutes=None))["duration_minutes"] is None

    def test_blank_title_gets_placeholder(self):
        assert self._row(make_event(title="   "))["title"] == "Untitled event"


def test_participant_and_mention_rows():
    event = ExtractedEvent.model_validate(
        make_event(participants={"primary": ["co-parent"], "witnesses": ["Coach Dana", " "], "professionals": ["Dr. Lee"]})
    )
    event_id, user_id = uuid.uuid4(), uuid.uuid4()

    participants = build_participant_rows(event, event_id=event_id, user_id=user_id)
    assert [(row["role"], row["label"]) for row in participants] == [
        ("primary", "co-parent"),
        ("witness", "Coach Dana"),
        ("professional", "Dr. Lee"),
    ]

    mentions = build_evidence_mention_rows(event, event_id=event_id, user_id=user_id)
    assert len(mentions) == 1
    assert mentions[0]["status"] == "have"
    assert mentions[0]["event_id"] == event_id
