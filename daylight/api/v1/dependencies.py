from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from daylight.core.config import settings
from daylight.core.database import get_async_session
from daylight.services.job_service import JobService, TemporalJobEnqueuer
from daylight.services.notifications.sse_manager import JobSSEManager


async def get_job_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
) -> JobService:
    return JobService(db_session, enqueuer=TemporalJobEnqueuer())


def get_sse_manager() -> JobSSEManager:
    return JobSSEManager(poll_interval=settings.extraction.job_poll_interval_seconds)
