"""Mapping between the legacy and current event representations.

New events are dual-written: the current columns (``type_v2``, ``welfare_*``,
JSON enrichment fields) and the legacy columns (``type``, ``welfare_impact``)
so older readers keep working. Existing legacy-only rows are never rewritten;
readers resolve their current type through ``resolve_event_type``.
"""

import uuid
from typing import Any, Dict, List, Mapping, Optional, Union

from daylight.schemas.extraction import EventType, ExtractedEvent, LegacyEventType, WelfareImpact
from daylight.utils.timezone import parse_timestamp, resolve_local_timestamp

LEGACY_TO_V2: Mapping[LegacyEventType, EventType] = {
    LegacyEventType.INCIDENT: EventType.COPARENT_CONFLICT,
    LegacyEventType.POSITIVE: EventType.PARENTING_TIME,
    LegacyEventType.MEDICAL: EventType.MEDICAL,
    LegacyEventType.SCHOOL: EventType.SCHOOL,
    LegacyEventType.COMMUNICATION: EventType.COMMUNICATION,
    LegacyEventType.LEGAL: EventType.LEGAL,
}

V2_TO_LEGACY: Mapping[EventType, LegacyEventType] = {
    EventType.PARENTING_TIME: LegacyEventType.POSITIVE,
    EventType.CAREGIVING: LegacyEventType.POSITIVE,
    EventType.HOUSEHOLD: LegacyEventType.POSITIVE,
    EventType.COPARENT_CONFLICT: LegacyEventType.INCIDENT,
    EventType.GATEKEEPING: LegacyEventType.INCIDENT,
    EventType.COMMUNICATION: LegacyEventType.COMMUNICATION,
    EventType.MEDICAL: LegacyEventType.MEDICAL,
    EventType.SCHOOL: LegacyEventType.SCHOOL,
    EventType.LEGAL: LegacyEventType.LEGAL,
}

# Used by readers when a row carries neither a known v2 nor legacy type
DEFAULT_EVENT_TYPE = EventType.PARENTING_TIME

LEGACY_WELFARE_UNKNOWN = "unknown"

_NEGATIVE_SEVERITY_TO_LEGACY = {
    "minimal": "minor",
    "moderate": "moderate",
    "significant": "significant",
}

EVENT_TYPE_LABELS: Mapping[EventType, str] = {
    EventType.PARENTING_TIME: "Parenting Time",
    EventType.CAREGIVING: "Caregiving",
    EventType.HOUSEHOLD: "Household / Chores",
    EventType.COPARENT_CONFLICT: "Co-parent Conflict",
    EventType.GATEKEEPING: "Gatekeeping",
    EventType.COMMUNICATION: "Communication",
    EventType.MEDICAL: "Medical",
    EventType.SCHOOL: "School",
    EventType.LEGAL: "Legal / Court",
}


def map_legacy_to_v2(legacy: Union[LegacyEventType, str]) -> EventType:
    """Default current type for a legacy type.

    Raises:
        ValueError: If ``legacy`` is not a legacy type value
    """
    return LEGACY_TO_V2[LegacyEventType(legacy)]


def map_v2_to_legacy(event_type: Union[EventType, str]) -> LegacyEventType:
    """Legacy type written alongside a current type.

    Raises:
        ValueError: If ``event_type`` is not a current type value
    """
    return V2_TO_LEGACY[EventType(event_type)]


def map_welfare_to_legacy(welfare: Optional[WelfareImpact]) -> str:
    """Collapse the welfare triple into the legacy ``welfare_impact`` bucket."""
    if welfare is None:
        return LEGACY_WELFARE_UNKNOWN
    if welfare.direction == "positive":
        return "positive"
    if welfare.direction == "neutral":
        return "none"
    return _NEGATIVE_SEVERITY_TO_LEGACY.get(welfare.severity or "", LEGACY_WELFARE_UNKNOWN)


def resolve_event_type(type_v2: Optional[str], legacy_type: Optional[str]) -> EventType:
    """Current type for any stored row, including legacy-only rows.

    Read-side only. The stored row is never modified.
    """
    if type_v2 in EventType._value2member_map_:
        return EventType(type_v2)
    if legacy_type in LegacyEventType._value2member_map_:
        return map_legacy_to_v2(legacy_type)
    return DEFAULT_EVENT_TYPE


def event_type_label(event_type: Union[EventType, str]) -> str:
    return EVENT_TYPE_LABELS.get(EventType(event_type), str(event_type))


def build_event_row(
    event: ExtractedEvent,
    *,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    journal_entry_id: uuid.UUID,
    job_id: uuid.UUID,
    timezone: str,
) -> Dict[str, Any]:
    """Column values for one dual-written ``events`` row."""
    relevance = event.custody_relevance
    welfare = relevance.welfare_impact
    local_timestamp = resolve_local_timestamp(event.primary_timestamp, timezone)

    return {
        "id": event_id,
        "user_id": user_id,
        "journal_entry_id": journal_entry_id,
        "job_id": job_id,
        "type_v2": event.type.value,
        "type": map_v2_to_legacy(event.type).value,
        "title": event.title.strip() or "Untitled event",
        "description": event.description,
        "primary_timestamp": parse_timestamp(local_timestamp),
        "timestamp_precision": event.timestamp_precision if local_timestamp else "unknown",
        "duration_minutes": round(event.duration_minutes) if event.duration_minutes is not None else None,
        "location": event.location,
        "child_involved": event.child_involved,
        "agreement_violation": relevance.agreement_violation,
        "safety_concern": relevance.safety_concern,
        "welfare_category": welfare.category,
        "welfare_direction": welfare.direction,
        "welfare_severity": welfare.severity,
        "welfare_impact": map_welfare_to_legacy(welfare),
        "child_statements": [statement.model_dump() for statement in event.child_statements],
        "coparent_interaction": (
            event.coparent_interaction.model_dump() if event.coparent_interaction else None
        ),
        "patterns_noted_v2": [pattern.model_dump() for pattern in event.patterns_noted],
    }


def build_participant_rows(event: ExtractedEvent, *, event_id: uuid.UUID, user_id: uuid.UUID) -> List[Dict[str, Any]]:
    rows = []
    for role, labels in (
        ("primary", event.participants.primary),
        ("witness", event.participants.witnesses),
        ("professional", event.participants.professionals),
    ):
        for label in labels:
            if label and label.strip():
                rows.append({"user_id": user_id, "event_id": event_id, "role": role, "label": label.strip()})
    return rows


def build_evidence_mention_rows(
    event: ExtractedEvent, *, event_id: uuid.UUID, user_id: uuid.UUID
) -> List[Dict[str, Any]]:
    return [
        {
            "user_id": user_id,
            "event_id": event_id,
            "type": mention.type,
            "description": mention.description,
            "status": mention.status,
        }
        for mention in event.evidence_mentioned
        if mention.description.strip()
    ]
