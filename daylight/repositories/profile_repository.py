import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.database.models import Case, Profile
from daylight.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository[Profile]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Profile)


class CaseRepository(BaseRepository[Case]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Case)

    async def latest_for_user(self, user_id: uuid.UUID) -> Optional[Case]:
        """Most recently updated case for a user."""
        query = (
            select(Case)
            .where(Case.user_id == user_id)
            .order_by(Case.updated_at.desc(), Case.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
