"""Workflow worker: polls the workflow-execution queue and drives the engine."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.config import (
    JOB_BACKOFF_SECONDS,
    JOB_VISIBILITY_TIMEOUT_SECONDS,
    WORKER_CONCURRENCY,
    WORKER_FETCH_LIMIT,
    WORKER_POLL_INTERVAL,
)
from fieldflow.engine.workflow_engine import WorkflowEngine
from fieldflow.observability.prometheus_metrics import queue_jobs_processed
from fieldflow.persistence.models import QueueJob
from fieldflow.persistence.repositories.queue_job_repository import QueueJobRepository
from fieldflow.queue.job_queue import QueueName
from fieldflow.utils.timefmt import utcnow

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Single-job processing
# -----------------------------------------------------------------------------


def backoff_delay(attempt: int, base: float = JOB_BACKOFF_SECONDS) -> float:
    return base * (2 ** (attempt - 1))


async def process_single_job(
    job: QueueJob,
    engine: WorkflowEngine,
    *,
    session_factory: Callable[[], AsyncSession],
    now: Optional[datetime] = None,
    backoff_base: float = JOB_BACKOFF_SECONDS,
    visibility_timeout: float = JOB_VISIBILITY_TIMEOUT_SECONDS,
) -> str:
    """Claim and run one job. Returns the outcome label: ``skipped``,
    ``completed``, ``deferred``, ``retry`` or ``failed``."""
    now = now or utcnow()

    async with session_factory() as session:
        repo = QueueJobRepository(session)
        if not await repo.try_claim(job.id, now, visibility_timeout=visibility_timeout):
            logger.debug("[WorkflowWorker] 🚫 skipped job_id=%s (not claimed or not due)", job.id)
            return "skipped"

        attempt = (job.attempts or 0) + 1
        instance_id = (job.payload or {}).get("instance_id")
        logger.info("[WorkflowWorker] 🔔 job_id=%s instance=%s attempt=%s", job.id, instance_id, attempt)

        try:
            outcome = await engine.execute_workflow(instance_id)
        except Exception as exc:  # noqa: BLE001 - the job record carries the error
            error = str(exc) or exc.__class__.__name__
            if attempt >= job.max_attempts:
                logger.exception("[WorkflowWorker] ❌ give up job_id=%s instance=%s", job.id, instance_id)
                await repo.mark_failed(job.id, error, utcnow())
                queue_jobs_processed.labels(job.queue_name, "failed").inc()
                return "failed"

            delay = backoff_delay(attempt, backoff_base)
            logger.warning(
                "[WorkflowWorker] ⚠️ job_id=%s attempt=%s/%s → %s (retry in %.1fs)",
                job.id, attempt, job.max_attempts, error, delay,
            )
            await repo.reschedule(job.id, utcnow() + timedelta(seconds=delay), error)
            queue_jobs_processed.labels(job.queue_name, "retry").inc()
            return "retry"

        if outcome.get("locked"):
            retry_at = outcome.get("retry_at") or utcnow()
            logger.info(
                "[WorkflowWorker] 🔒 job_id=%s instance=%s is locked, deferred to %s",
                job.id, instance_id, retry_at,
            )
            await repo.defer(job.id, retry_at)
            queue_jobs_processed.labels(job.queue_name, "deferred").inc()
            return "deferred"

        await repo.mark_completed(job.id, utcnow())
        queue_jobs_processed.labels(job.queue_name, "completed").inc()
        logger.info("[WorkflowWorker] ✅ job_id=%s instance=%s → %s", job.id, instance_id, outcome.get("status"))
        return "completed"


# -----------------------------------------------------------------------------
# Poll loop
# -----------------------------------------------------------------------------


async def poll_once(
    engine: WorkflowEngine,
    *,
    session_factory: Callable[[], AsyncSession],
    concurrency: int = WORKER_CONCURRENCY,
    fetch_limit: int = WORKER_FETCH_LIMIT,
    queue_name: str = QueueName.WORKFLOW_EXECUTION,
    visibility_timeout: float = JOB_VISIBILITY_TIMEOUT_SECONDS,
) -> int:
    """Process every due job once. Returns how many jobs were claimed."""
    now = utcnow()
    async with session_factory() as session:
        jobs: Sequence[QueueJob] = await QueueJobRepository(session).list_due(
            queue_name, now, limit=fetch_limit, visibility_timeout=visibility_timeout
        )

    if not jobs:
        logger.debug("[WorkflowWorker] ⛔ no due jobs on %s", queue_name)
        return 0

    logger.debug("[WorkflowWorker] 📦 %s due job(s) on %s", len(jobs), queue_name)
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _bounded(job: QueueJob) -> str:
        async with semaphore:
            return await process_single_job(
                job, engine, session_factory=session_factory, now=now, visibility_timeout=visibility_timeout
            )

    outcomes = await asyncio.gather(*(_bounded(job) for job in jobs))
    return sum(1 for outcome in outcomes if outcome != "skipped")


async def run_workflow_worker(
    engine: WorkflowEngine,
    *,
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    interval_seconds: float = WORKER_POLL_INTERVAL,
    concurrency: int = WORKER_CONCURRENCY,
    fetch_limit: int = WORKER_FETCH_LIMIT,
) -> None:
    session_factory = session_factory or engine.session_factory
    logger.info(
        "[WorkflowWorker] ▶️ loop start interval=%s concurrency=%s fetch_limit=%s",
        interval_seconds, concurrency, fetch_limit,
    )

    while True:
        try:
            await poll_once(
                engine,
                session_factory=session_factory,
                concurrency=concurrency,
                fetch_limit=fetch_limit,
            )
        except Exception as err:  # noqa: BLE001
            logger.exception("[WorkflowWorker] 💥 unhandled error in polling loop: %s", err)
        await asyncio.sleep(interval_seconds)
