from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.config import JOB_VISIBILITY_TIMEOUT_SECONDS
from fieldflow.persistence.models import QueueJob, JobStatus
from fieldflow.persistence.repositories.base_repository import BaseRepository
from fieldflow.utils.timefmt import to_utc_naive

logger = logging.getLogger(__name__)


def _claimable(now: datetime, visibility_timeout: float):
    """Due scheduled rows, plus claimed rows whose worker went quiet."""
    return or_(
        and_(QueueJob.status == JobStatus.SCHEDULED, QueueJob.run_at <= now),
        and_(
            QueueJob.status == JobStatus.CLAIMED,
            QueueJob.claimed_at <= now - timedelta(seconds=visibility_timeout),
        ),
    )


class QueueJobRepository(BaseRepository[QueueJob]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, QueueJob)

    async def list_due(
        self,
        queue_name: str,
        cutoff_time: datetime,
        *,
        limit: int = 100,
        visibility_timeout: float = JOB_VISIBILITY_TIMEOUT_SECONDS,
    ) -> List[QueueJob]:
        stmt = (
            select(QueueJob)
            .where(
                QueueJob.queue_name == queue_name,
                _claimable(to_utc_naive(cutoff_time), visibility_timeout),
            )
            .order_by(QueueJob.run_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def list_for_queue(self, queue_name: str, status: Optional[str] = None) -> List[QueueJob]:
        stmt = select(QueueJob).where(QueueJob.queue_name == queue_name)
        if status is not None:
            stmt = stmt.where(QueueJob.status == status)
        stmt = stmt.order_by(QueueJob.run_at).execution_options(populate_existing=True)
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def try_claim(
        self,
        job_id: str,
        now: datetime,
        *,
        visibility_timeout: float = JOB_VISIBILITY_TIMEOUT_SECONDS,
    ) -> bool:
        """Claim a due job, or take over one whose claim has expired; exactly
        one caller wins."""
        now_naive = to_utc_naive(now)
        stmt = (
            update(QueueJob)
            .where(QueueJob.id == job_id, _claimable(now_naive, visibility_timeout))
            .values(
                status=JobStatus.CLAIMED,
                claimed_at=now_naive,
                attempts=QueueJob.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if result.rowcount == 1:
            logger.debug("[QueueRepo] claimed job_id=%s", job_id)
        else:
            logger.debug("[QueueRepo] not claimed job_id=%s (taken or not due)", job_id)
        return result.rowcount == 1

    async def _finish(self, job_id: str, **values) -> bool:
        stmt = (
            update(QueueJob)
            .where(QueueJob.id == job_id, QueueJob.status == JobStatus.CLAIMED)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def mark_completed(self, job_id: str, now: datetime) -> bool:
        return await self._finish(job_id, status=JobStatus.COMPLETED, completed_at=to_utc_naive(now))

    async def mark_failed(self, job_id: str, error: str, now: datetime) -> bool:
        return await self._finish(
            job_id, status=JobStatus.FAILED, last_error=error, completed_at=to_utc_naive(now)
        )

    async def reschedule(self, job_id: str, run_at: datetime, error: str) -> bool:
        return await self._finish(
            job_id, status=JobStatus.SCHEDULED, run_at=to_utc_naive(run_at), last_error=error
        )

    async def defer(self, job_id: str, run_at: datetime) -> bool:
        """Put a claimed job back without spending an attempt."""
        return await self._finish(
            job_id,
            status=JobStatus.SCHEDULED,
            run_at=to_utc_naive(run_at),
            attempts=QueueJob.attempts - 1,
        )
