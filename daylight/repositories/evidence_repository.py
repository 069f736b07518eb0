import uuid
from datetime import datetime
from typing import List, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.database.models import Evidence, JournalEntryEvidence
from daylight.repositories.base_repository import BaseRepository


class EvidenceRepository(BaseRepository[Evidence]):
    """Repository for evidence and its links to journal entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Evidence)

    async def get_owned(self, evidence_ids: Sequence[uuid.UUID], user_id: uuid.UUID) -> List[Evidence]:
        """Evidence rows among ``evidence_ids`` that belong to ``user_id``."""
        if not evidence_ids:
            return []
        query = select(Evidence).where(Evidence.id.in_(list(evidence_ids)), Evidence.user_id == user_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_linked(self, journal_entry_id: uuid.UUID) -> List[Tuple[JournalEntryEvidence, Evidence]]:
        """Evidence attached to an entry, in display order."""
        query = (
            select(JournalEntryEvidence, Evidence)
            .join(Evidence, Evidence.id == JournalEntryEvidence.evidence_id)
            .where(JournalEntryEvidence.journal_entry_id == journal_entry_id)
            .order_by(JournalEntryEvidence.sort_order.asc(), JournalEntryEvidence.created_at.asc())
        )
        result = await self.session.execute(query)
        return [(link, evidence) for link, evidence in result.all()]

    async def attach(self, journal_entry_id: uuid.UUID, evidence_ids: Sequence[uuid.UUID]) -> int:
        """Link evidence to an entry, appending after the current last position.

        Already linked evidence is skipped.

        Returns:
            Number of new links
        """
        if not evidence_ids:
            return 0

        existing_query = select(JournalEntryEvidence.evidence_id).where(
            JournalEntryEvidence.journal_entry_id == journal_entry_id
        )
        existing = {row for row in (await self.session.execute(existing_query)).scalars().all()}

        max_order_query = select(func.max(JournalEntryEvidence.sort_order)).where(
            JournalEntryEvidence.journal_entry_id == journal_entry_id
        )
        max_order = (await self.session.execute(max_order_query)).scalar()
        next_order = 0 if max_order is None else max_order + 1

        added = 0
        for evidence_id in dict.fromkeys(evidence_ids):
            if evidence_id in existing:
                continue
            self.session.add(
                JournalEntryEvidence(
                    journal_entry_id=journal_entry_id,
                    evidence_id=evidence_id,
                    sort_order=next_order,
                )
            )
            next_order += 1
            added += 1

        if added:
            await self.session.flush()
        return added

    async def mark_processed(
        self, journal_entry_id: uuid.UUID, evidence_ids: Sequence[uuid.UUID], processed_at: datetime
    ) -> None:
        if not evidence_ids:
            return
        statement = (
            update(JournalEntryEvidence)
            .where(
                JournalEntryEvidence.journal_entry_id == journal_entry_id,
                JournalEntryEvidence.evidence_id.in_(list(evidence_ids)),
            )
            .values(is_processed=True, processed_at=processed_at)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)
