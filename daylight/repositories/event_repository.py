import uuid
from datetime import datetime
from typing import Any, Dict, List, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.database.models import ActionItem, Event, EventEvidence, EventParticipant, EvidenceMention, Job
from daylight.repositories.base_repository import BaseRepository


class EventRepository(BaseRepository[Event]):
    """Repository for extracted events and their child rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Event)

    def add_event(
        self,
        event_row: Dict[str, Any],
        participant_rows: Sequence[Dict[str, Any]] = (),
        mention_rows: Sequence[Dict[str, Any]] = (),
    ) -> Event:
        """Stage an event with its participants and evidence mentions."""
        event = Event(**event_row)
        self.session.add(event)
        self.session.add_all([EventParticipant(**row) for row in participant_rows])
        self.session.add_all([EvidenceMention(**row) for row in mention_rows])
        return event

    def link_evidence(self, event_id: uuid.UUID, evidence_id: uuid.UUID, is_primary: bool) -> None:
        self.session.add(EventEvidence(event_id=event_id, evidence_id=evidence_id, is_primary=is_primary))

    def add_action_item(self, **values) -> ActionItem:
        item = ActionItem(**values)
        self.session.add(item)
        return item

    async def list_current_for_entry(self, journal_entry_id: uuid.UUID) -> List[Event]:
        """Events of an entry that no later reprocess has replaced."""
        query = (
            select(Event)
            .where(Event.journal_entry_id == journal_entry_id, Event.superseded_by_job_id.is_(None))
            .order_by(Event.created_at.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def supersede_for_entry(
        self, journal_entry_id: uuid.UUID, superseded_by_job_id: uuid.UUID, now: datetime
    ) -> int:
        """Mark every earlier event and action item of an entry as replaced.

        Rows stay in place so each completed job still owns what it created.

        Returns:
            Number of events superseded
        """
        earlier_jobs = select(Job.id).where(
            Job.journal_entry_id == journal_entry_id, Job.id != superseded_by_job_id
        )
        entry_events = select(Event.id).where(Event.journal_entry_id == journal_entry_id)
        values = {"superseded_by_job_id": superseded_by_job_id, "superseded_at": now}

        result = await self.session.execute(
            update(Event)
            .where(
                Event.journal_entry_id == journal_entry_id,
                Event.superseded_by_job_id.is_(None),
                or_(Event.job_id.is_(None), Event.job_id != superseded_by_job_id),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            update(ActionItem)
            .where(
                ActionItem.superseded_by_job_id.is_(None),
                or_(ActionItem.job_id.in_(earlier_jobs), ActionItem.event_id.in_(entry_events)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return result.rowcount or 0
