"""Strict output schema for journal extraction.

Every model forbids unknown keys. Nullable fields are still required keys so a
model response that silently drops a field fails validation instead of being
filled in with a guess.
"""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

EXTRACTION_SCHEMA_VERSION = "2"


class EventType(str, Enum):
    """Current event type taxonomy (written to ``events.type_v2``)."""

    PARENTING_TIME = "parenting_time"
    CAREGIVING = "caregiving"
    HOUSEHOLD = "household"
    COPARENT_CONFLICT = "coparent_conflict"
    GATEKEEPING = "gatekeeping"
    COMMUNICATION = "communication"
    MEDICAL = "medical"
    SCHOOL = "school"
    LEGAL = "legal"


class LegacyEventType(str, Enum):
    """Event type taxonomy read by pre-migration code (``events.type``)."""

    INCIDENT = "incident"
    POSITIVE = "positive"
    MEDICAL = "medical"
    SCHOOL = "school"
    COMMUNICATION = "communication"
    LEGAL = "legal"


Tone = Literal["neutral", "cooperative", "defensive", "hostile"]


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Participants(StrictModel):
    primary: List[Literal["co-parent", "child", "self", "other"]] = Field(
        description="Primary participants"
    )
    witnesses: List[str] = Field(description="Witnesses present")
    professionals: List[str] = Field(description="Professionals involved")


class ChildStatement(StrictModel):
    statement: str = Field(description="Direct quote or paraphrased statement from the child")
    context: str = Field(description="When and where the statement was made")
    concerning: bool = Field(
        description="Whether this statement indicates alienation, coaching, or distress"
    )


class CoparentInteraction(StrictModel):
    your_tone: Optional[Tone]
    their_tone: Optional[Tone]
    your_response_appropriate: Optional[bool] = Field(
        description="Whether the user's response was appropriate to the situation"
    )


class PatternNoted(StrictModel):
    pattern_type: Literal[
        "schedule_violation",
        "communication_failure",
        "escalating_hostility",
        "delegation_of_parenting",
        "routine_disruption",
        "information_withholding",
        "unilateral_decisions",
    ]
    description: str
    frequency: Optional[Literal["first_time", "recurring", "chronic"]]


class WelfareImpact(StrictModel):
    category: Literal["routine", "emotional", "medical", "educational", "social", "safety", "none"]
    direction: Literal["positive", "negative", "neutral"]
    severity: Optional[Literal["minimal", "moderate", "significant"]]


class CustodyRelevance(StrictModel):
    agreement_violation: Optional[bool] = Field(description="Whether this violates a custody agreement")
    safety_concern: Optional[bool] = Field(description="Whether there are safety concerns")
    welfare_impact: WelfareImpact


class EvidenceMentioned(StrictModel):
    type: Literal["text", "email", "photo", "document", "recording", "other"]
    description: str
    status: Literal["have", "need_to_get", "need_to_create"]


class ExtractedEvent(StrictModel):
    type: EventType
    title: str = Field(description="Brief factual summary")
    description: str = Field(description="Detailed factual narrative")
    primary_timestamp: Optional[str] = Field(description="ISO-8601 timestamp or null if unknown")
    timestamp_precision: Literal["exact", "day", "approximate", "unknown"]
    duration_minutes: Optional[float] = Field(ge=0)
    location: Optional[str]
    participants: Participants
    child_involved: bool
    evidence_mentioned: List[EvidenceMentioned]
    child_statements: List[ChildStatement] = Field(default_factory=list)
    coparent_interaction: Optional[CoparentInteraction]
    patterns_noted: List[PatternNoted] = Field(default_factory=list)
    custody_relevance: CustodyRelevance


class ActionItem(StrictModel):
    priority: Literal["urgent", "high", "normal", "low"]
    type: Literal["document", "contact", "file", "obtain", "other"]
    description: str
    deadline: Optional[str]


class ExtractionMetadata(StrictModel):
    extraction_confidence: Optional[float]
    ambiguities: List[str]


class ExtractionPayload(StrictModel):
    events: List[ExtractedEvent]
    action_items: List[ActionItem]
    metadata: ExtractionMetadata


class ExtractionResult(StrictModel):
    """Top-level envelope the model must return."""

    extraction: ExtractionPayload


class EvidenceSummary(BaseModel):
    """Processed evidence handed to the context builder."""

    evidence_id: str
    annotation: str = ""
    summary: str


class ExtractionContext(BaseModel):
    """Assembled model input for one journal entry."""

    system_prompt: str
    entry_text: str
    reference_date: str
    timezone: str
    evidence_ids: List[str] = Field(default_factory=list)


class ExtractionOutcome(BaseModel):
    """Validated extraction plus what the terminal write needs to persist it."""

    extraction: ExtractionPayload
    evidence_ids: List[str] = Field(default_factory=list)
    timezone: str = "UTC"
