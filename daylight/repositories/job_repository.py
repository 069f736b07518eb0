import uuid
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.database.models import Job
from daylight.repositories.base_repository import BaseRepository
from daylight.schemas.jobs import ACTIVE_JOB_STATUSES, JobStatus, JobType


class JobRepository(BaseRepository[Job]):
    """Repository for extraction job records.

    Status changes go through ``transition``, a conditional UPDATE that only
    matches rows still in one of the expected source statuses. Two workers
    racing on the same job can never both win a transition.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Job)

    async def create_job(
        self,
        user_id: uuid.UUID,
        journal_entry_id: uuid.UUID,
        job_type: JobType = JobType.JOURNAL_EXTRACTION,
    ) -> Job:
        return await self.create(
            user_id=user_id,
            journal_entry_id=journal_entry_id,
            type=job_type.value,
            status=JobStatus.PENDING.value,
        )

    async def get_for_user(self, job_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Job]:
        query = select(Job).where(Job.id == job_id, Job.user_id == user_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def reload(self, job_id: uuid.UUID) -> Optional[Job]:
        """Re-read a job, overwriting any stale state in the identity map."""
        query = select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_active_for_entry(
        self, journal_entry_id: uuid.UUID, exclude_job_id: Optional[uuid.UUID] = None
    ) -> Optional[Job]:
        """Return the pending or processing job for an entry, if any."""
        query = select(Job).where(
            Job.journal_entry_id == journal_entry_id,
            Job.status.in_([status.value for status in ACTIVE_JOB_STATUSES]),
        )
        if exclude_job_id is not None:
            query = query.where(Job.id != exclude_job_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_active_for_user(self, user_id: uuid.UUID, limit: int = 10) -> List[Job]:
        query = (
            select(Job)
            .where(
                Job.user_id == user_id,
                Job.status.in_([status.value for status in ACTIVE_JOB_STATUSES]),
            )
            .order_by(Job.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def transition(
        self,
        job_id: uuid.UUID,
        from_statuses: Iterable[JobStatus],
        to_status: JobStatus,
        **values,
    ) -> bool:
        """Move a job to ``to_status`` only if it is currently in ``from_statuses``.

        Returns:
            True if the row was updated, False if its status did not match
        """
        statement = (
            update(Job)
            .where(Job.id == job_id, Job.status.in_([status.value for status in from_statuses]))
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        updated = result.rowcount == 1
        if not updated:
            self.logger.info(
                f"Job {job_id} transition to {to_status.value} skipped",
                extra={"job_id": str(job_id), "to_status": to_status.value},
            )
        return updated
