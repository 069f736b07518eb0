import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.database.models import JournalEntry
from daylight.repositories.base_repository import BaseRepository
from daylight.schemas.jobs import JournalEntryStatus


class JournalEntryRepository(BaseRepository[JournalEntry]):
    """Repository for journal entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, JournalEntry)

    async def get_for_user(self, entry_id: uuid.UUID, user_id: uuid.UUID) -> Optional[JournalEntry]:
        query = select(JournalEntry).where(JournalEntry.id == entry_id, JournalEntry.user_id == user_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def set_status(self, entry_id: uuid.UUID, status: JournalEntryStatus, **values) -> None:
        """Write the entry status together with any companion columns."""
        statement = (
            update(JournalEntry)
            .where(JournalEntry.id == entry_id)
            .values(status=status.value, **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)
