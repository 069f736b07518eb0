"""Prompt context assembly for journal extraction.

``build_extraction_context`` is a pure function of its inputs and the injected
``now``. Identical inputs always produce an identical prompt.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from daylight.schemas.extraction import EvidenceSummary, ExtractionContext
from daylight.services.extraction.jurisdiction import UNKNOWN_STATE, get_state_guidance
from daylight.utils.timezone import (
    DEFAULT_TIMEZONE,
    resolve_reference_date,
    resolve_relative_phrase,
)

EXAMPLE_PHRASE = "yesterday at 7pm"

RULES = [
    "- Extract facts, not interpretations or emotions.",
    '- If information is unknown, use null or "unknown" appropriately.',
    "- Prefer under-extraction to guessing. Never invent names, times, places or evidence.",
    "- Keep tone neutral and factual.",
    "- You may extract multiple events from a single description, or none if nothing happened.",
    "- Cross-reference the attached evidence to corroborate details, citing it by its Evidence label.",
    '- Flag "gatekeeping" behaviors explicitly: schedule interference, withholding information '
    "(medical, school, location), controlling access to the child's belongings, alienating language "
    "to or about the other parent in the child's presence, and unilateral decisions about the "
    "child's schedule or activities.",
    "- Note patterns relevant to custody, including:",
    "  - Repeated schedule violations (late pickups, early dropoffs, missed exchanges)",
    "  - Consistent failure to communicate about the child's welfare",
    "  - Escalating hostility in co-parent interactions",
    "  - Delegation of parenting to third parties (new partners, grandparents doing primary care)",
    "  - Disruption of the child's routine (bedtime, meals, activities)",
    "  - Withholding of medical or school information",
    "  - Pattern of unilateral decision-making about major issues.",
]


class CaseContext(BaseModel):
    """Case metadata relevant to extraction."""

    model_config = ConfigDict(from_attributes=True)

    title: Optional[str] = None
    case_number: Optional[str] = None
    jurisdiction_state: Optional[str] = None
    jurisdiction_county: Optional[str] = None
    court_name: Optional[str] = None
    case_type: Optional[str] = None
    stage: Optional[str] = None
    your_role: Optional[str] = None
    opposing_party_name: Optional[str] = None
    opposing_party_role: Optional[str] = None
    children_count: Optional[int] = None
    children_summary: Optional[str] = None
    parenting_schedule: Optional[str] = None
    goals_summary: Optional[str] = None
    risk_flags: Optional[List[str]] = None
    next_court_date: Optional[datetime] = None


class ContextInputs(BaseModel):
    entry_text: str
    reference_date: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    user_display_name: Optional[str] = None
    case: Optional[CaseContext] = None
    evidence: List[EvidenceSummary] = Field(default_factory=list)


def format_case_context(case: Optional[CaseContext]) -> str:
    default = "The speaker is involved in a family court / custody / divorce matter."
    if case is None:
        return default

    lines = ["CASE CONTEXT:"]
    if case.title:
        lines.append(f"- Case title: {case.title}")
    if case.case_number:
        lines.append(f"- Case number: {case.case_number}")
    jurisdiction = [part for part in (case.jurisdiction_county, case.jurisdiction_state) if part]
    if jurisdiction:
        lines.append(f"- Jurisdiction: {', '.join(jurisdiction)}")
    if case.court_name:
        lines.append(f"- Court: {case.court_name}")
    if case.case_type:
        lines.append(f"- Case type: {case.case_type}")
    if case.stage:
        lines.append(f"- Case stage: {case.stage}")
    if case.your_role:
        lines.append(f"- Speaker role: {case.your_role}")
    if case.opposing_party_name:
        role = f" ({case.opposing_party_role})" if case.opposing_party_role else ""
        lines.append(f"- Opposing party: {case.opposing_party_name}{role}")
    if case.children_count is not None:
        lines.append(f"- Number of children: {case.children_count}")
    if case.children_summary:
        lines.append(f"- Children summary: {case.children_summary}")
    if case.parenting_schedule:
        lines.append(f"- Parenting schedule: {case.parenting_schedule}")
    if case.goals_summary:
        lines.append(f"- Parent goals: {case.goals_summary}")
    if case.risk_flags:
        lines.append(f"- Risk flags: {', '.join(case.risk_flags)}")
    if case.next_court_date:
        lines.append(f"- Next court date: {case.next_court_date.date().isoformat()}")

    return "\n".join(lines) if len(lines) > 1 else default


def format_jurisdiction_guidance(case: Optional[CaseContext]) -> str:
    if case is None or not case.jurisdiction_state:
        return ""
    guidance = get_state_guidance(case.jurisdiction_state)
    if guidance.state == UNKNOWN_STATE:
        return ""
    return "\n".join(["JURISDICTION-SPECIFIC GUIDANCE:", guidance.prompt_guidance])


def format_temporal_guidance(reference_date: str, tz_name: str) -> str:
    example = resolve_relative_phrase(EXAMPLE_PHRASE, reference_date, tz_name)
    if example is None:
        example_line = (
            f'- For example, "{EXAMPLE_PHRASE}" means 19:00 local time on the day before the '
            "reference date, written with the user's UTC offset"
        )
    else:
        example_line = (
            f'- For example, if the user says "{EXAMPLE_PHRASE}", generate "{example}"'
        )

    return "\n".join(
        [
            f"The user is in timezone: {tz_name}",
            f"The reference date for these events is: {reference_date} (in the user's local timezone)",
            "",
            "IMPORTANT: When generating primary_timestamp values:",
            f"- Generate timestamps in the user's local time ({tz_name}) with its UTC offset, never with a Z suffix",
            example_line,
            '- Resolve relative time references (like "yesterday", "this morning", "last week") '
            "against the reference date",
            '- If you cannot determine a specific time, set timestamp_precision to "approximate" or "unknown"',
        ]
    )


def format_evidence_context(evidence: List[EvidenceSummary]) -> str:
    if not evidence:
        return ""

    lines = [
        "## Attached Evidence",
        "The user has attached the following evidence to support their description:",
        "",
    ]
    for index, item in enumerate(evidence, start=1):
        lines.append(f"Evidence {index} (id: {item.evidence_id}):")
        if item.annotation:
            lines.append(f'  User\'s note: "{item.annotation}"')
        lines.append(f"  Analysis: {item.summary}")
    lines.extend(
        [
            "",
            "Use information from this evidence to enhance the accuracy of extracted events.",
            "Reference specific details (timestamps, quotes, facts) from the evidence when relevant.",
        ]
    )
    return "\n".join(lines)


def build_extraction_context(inputs: ContextInputs, now: datetime) -> ExtractionContext:
    """Assemble the system prompt for one journal entry.

    Args:
        inputs: Entry text, user, case and processed evidence
        now: Current instant (timezone-aware); only used when the entry has
            no declared reference date

    Returns:
        ExtractionContext ready for the extraction invoker
    """
    tz_name = inputs.timezone or DEFAULT_TIMEZONE
    reference_date = resolve_reference_date(inputs.reference_date, tz_name, now)

    if inputs.user_display_name:
        speaker = (
            f"The speaker is {inputs.user_display_name}. When they say \"I\" or \"me\", "
            f"they refer to {inputs.user_display_name}."
        )
    else:
        speaker = 'The speaker is the user. References to "I" or "me" refer to the same person.'

    sections = [
        "You are an extraction engine for Project Daylight.",
        "Given a description of events from a parent in a custody situation, extract factual, "
        "legally relevant information.",
        "Do not provide advice, opinions, or legal conclusions.",
        "",
        speaker,
        format_case_context(inputs.case),
    ]

    jurisdiction = format_jurisdiction_guidance(inputs.case)
    if jurisdiction:
        sections.extend(["", jurisdiction])

    sections.extend(["", format_temporal_guidance(reference_date, tz_name)])

    evidence = format_evidence_context(inputs.evidence)
    if evidence:
        sections.extend(["", evidence])

    sections.extend(["", "Rules:", *RULES])

    return ExtractionContext(
        system_prompt="\n".join(sections),
        entry_text=inputs.entry_text.strip(),
        reference_date=reference_date,
        timezone=tz_name,
        evidence_ids=[item.evidence_id for item in inputs.evidence],
    )
