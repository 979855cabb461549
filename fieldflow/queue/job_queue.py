"""Database-backed job queue.

Jobs are rows with a due timestamp; consumers poll for due rows and claim
them with a conditional UPDATE, so a delayed job survives restarts and is
run by exactly one worker.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.config import JOB_MAX_ATTEMPTS
from fieldflow.persistence.models import QueueJob, JobStatus
from fieldflow.persistence.repositories.queue_job_repository import QueueJobRepository
from fieldflow.utils.timefmt import to_utc_naive, utcnow

logger = logging.getLogger(__name__)


class QueueName:
    WORKFLOW_EXECUTION = "workflow-execution"
    NOTIFICATIONS = "notifications"
    OUTBOUND_SYNC = "outbound-sync"


class JobQueue:
    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def add_job(
        self,
        queue_name: str,
        job_name: str,
        payload: Dict[str, Any],
        *,
        delay_seconds: float = 0,
        run_at: Optional[datetime] = None,
        max_attempts: Optional[int] = None,
    ) -> QueueJob:
        if run_at is None:
            run_at = utcnow() + timedelta(seconds=max(0.0, delay_seconds))

        job = QueueJob(
            id=str(uuid.uuid4()),
            queue_name=queue_name,
            job_name=job_name,
            payload=payload,
            status=JobStatus.SCHEDULED,
            run_at=to_utc_naive(run_at),
            attempts=0,
            max_attempts=max_attempts or JOB_MAX_ATTEMPTS,
        )
        async with self.session_factory() as session:
            await QueueJobRepository(session).create(job)

        logger.info(
            "[JobQueue] enqueued %s/%s job_id=%s run_at=%s",
            queue_name, job_name, job.id, job.run_at,
        )
        return job
