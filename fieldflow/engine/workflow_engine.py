"""
workflow_engine.py: trigger matching, the step run loop, and the
cancel / pause / resume / status control surface.

Each ``execute_workflow`` call runs until the first suspension point
(delay, pause, cancel, failure, completion) and returns. Delays are never
slept in-process: the engine persists ``next_step_at`` and enqueues an
execution job due at that time.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.actions.registry import ActionRegistry, build_default_registry
from fieldflow.config import INSTANCE_LOCK_TTL_SECONDS
from fieldflow.engine.step_executor import StepExecutor
from fieldflow.engine.trigger_matcher import evaluate_conditions
from fieldflow.errors import InstanceNotFoundError
from fieldflow.hooks.base import ExecutionHooks
from fieldflow.hooks.dispatcher import HookDispatcher
from fieldflow.hooks.log_hook import LogHook
from fieldflow.hooks.metrics_hook import MetricsHook
from fieldflow.observability.prometheus_metrics import workflows_triggered
from fieldflow.persistence.database import AsyncSessionLocal
from fieldflow.persistence.models import (
    StepLog,
    StepStatus,
    WorkflowInstance,
    WorkflowStatus,
)
from fieldflow.persistence.repositories.step_log_repository import StepLogRepository
from fieldflow.persistence.repositories.workflow_definition_repository import (
    WorkflowDefinitionRepository,
    WorkflowTriggerRepository,
)
from fieldflow.persistence.repositories.workflow_instance_repository import WorkflowInstanceRepository
from fieldflow.queue.job_queue import JobQueue, QueueName
from fieldflow.utils.timefmt import to_utc_naive, utcnow

logger = logging.getLogger(__name__)

EXECUTE_JOB = "execute-workflow"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return to_utc_naive(value)
    return to_utc_naive(datetime.fromisoformat(str(value)))


def instance_to_dict(instance: WorkflowInstance) -> Dict[str, Any]:
    return {
        "id": instance.id,
        "definition_id": instance.definition_id,
        "definition_version": instance.definition_version,
        "entity_type": instance.entity_type,
        "entity_id": instance.entity_id,
        "status": instance.status,
        "context": instance.context or {},
        "current_step": instance.current_step,
        "step_results": instance.step_results or [],
        "error_message": instance.error_message,
        "next_step_at": instance.next_step_at,
        "triggered_by": instance.triggered_by,
        "created_at": instance.created_at,
        "started_at": instance.started_at,
        "completed_at": instance.completed_at,
        "updated_at": instance.updated_at,
    }


def step_log_to_dict(log: StepLog) -> Dict[str, Any]:
    return {
        "id": log.id,
        "instance_id": log.instance_id,
        "step_index": log.step_index,
        "step_name": log.step_name,
        "action_type": log.action_type,
        "action_config": log.action_config,
        "status": log.status,
        "result": log.result,
        "error_message": log.error_message,
        "started_at": log.started_at,
        "completed_at": log.completed_at,
        "duration_ms": log.duration_ms,
        "attempt_number": log.attempt_number,
    }


# ──────────────────────────────────────────────────────────────────────────
#                              WorkflowEngine
# ──────────────────────────────────────────────────────────────────────────
class WorkflowEngine:

    def __init__(
        self,
        registry: ActionRegistry,
        *,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        queue: Optional[JobQueue] = None,
        hook: Optional[ExecutionHooks] = None,
        lock_ttl_seconds: int = INSTANCE_LOCK_TTL_SECONDS,
    ):
        self.registry = registry
        self.session_factory = session_factory
        self.queue = queue or JobQueue(session_factory)
        self.hook = hook or HookDispatcher([LogHook(), MetricsHook()])
        self.lock_ttl_seconds = lock_ttl_seconds

    # ------------------------------------------------------------------ #
    #                              triggers
    # ------------------------------------------------------------------ #
    async def trigger_workflows(
        self,
        event_name: str,
        entity_type: Optional[str],
        entity_id: Any,
        context: Optional[Dict[str, Any]] = None,
        *,
        triggered_by: str = "system",
    ) -> List[WorkflowInstance]:
        """Create and enqueue one instance per matching definition.

        Not idempotent: the same event delivered twice starts two instances.
        """
        context = copy.deepcopy(context or {})
        logger.info("[WorkflowEngine] trigger event=%s entity=%s:%s", event_name, entity_type, entity_id)

        async with self.session_factory() as session:
            definitions = await WorkflowTriggerRepository(session).find_definitions_for_event(event_name)
            if not definitions:
                logger.debug("[WorkflowEngine] no workflows bound to event=%s", event_name)
                return []

            repo = WorkflowInstanceRepository(session)
            instances: List[WorkflowInstance] = []
            for definition in definitions:
                if not evaluate_conditions(definition.trigger_conditions, context):
                    logger.debug(
                        "[WorkflowEngine] conditions not met for definition=%s (%s)",
                        definition.id, definition.name,
                    )
                    continue

                instance = await repo.create_instance(
                    definition,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    context=context,
                    triggered_by=triggered_by,
                )
                await self.queue.add_job(
                    QueueName.WORKFLOW_EXECUTION,
                    EXECUTE_JOB,
                    {"instance_id": instance.id, "definition_id": definition.id},
                )
                workflows_triggered.labels(event_name).inc()
                instances.append(instance)
                logger.info(
                    "[WorkflowEngine] triggered instance=%s workflow=%s entity=%s:%s",
                    instance.id, definition.name, entity_type, entity_id,
                )
            return instances

    # ------------------------------------------------------------------ #
    #                              run loop
    # ------------------------------------------------------------------ #
    async def execute_workflow(self, instance_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            instances = WorkflowInstanceRepository(session)
            instance = await instances.refresh_by_id(instance_id)
            if instance is None:
                raise InstanceNotFoundError(instance_id)

            if instance.status in WorkflowStatus.TERMINAL or instance.status == WorkflowStatus.PAUSED:
                logger.info("[WorkflowEngine] instance=%s is %s, nothing to run", instance_id, instance.status)
                return {"status": instance.status}

            now = utcnow()
            if instance.next_step_at is not None and instance.next_step_at > now:
                # woken before the delay elapsed; the scheduled job will come back
                logger.info("[WorkflowEngine] instance=%s delayed until %s", instance_id, instance.next_step_at)
                return {"status": instance.status, "delayed": True, "next_step_at": instance.next_step_at}

            definition = await WorkflowDefinitionRepository(session).get_by_id(instance.definition_id)
            if definition is None:
                error = f"Workflow definition not found: {instance.definition_id}"
                await instances.mark_failed(instance_id, error, now)
                return {"status": WorkflowStatus.FAILED, "error": error}
            if definition.version != instance.definition_version:
                logger.warning(
                    "[WorkflowEngine] instance=%s pinned v%s but definition is v%s",
                    instance_id, instance.definition_version, definition.version,
                )

            if not await instances.mark_running(instance_id, now):
                status = await instances.get_status(instance_id)
                return {"status": status}
            if instance.next_step_at is not None:
                await instances.set_next_step_at(instance_id, None, now)

            steps: List[Dict[str, Any]] = list(definition.steps or [])
            logger.info(
                "[WorkflowEngine] executing instance=%s from step %s/%s",
                instance_id, instance.current_step, len(steps),
            )
            await self.hook.on_workflow_start(instance_id, definition.id)

            try:
                outcome = await self._run_steps(session, instances, instance, steps)
            except SQLAlchemyError:
                # persistence is down; the queue's retry reconciles the instance
                logger.exception("[WorkflowEngine] storage error while executing instance=%s", instance_id)
                raise
            except Exception as exc:
                logger.exception("[WorkflowEngine] error executing instance=%s", instance_id)
                await instances.mark_failed(instance_id, str(exc), utcnow())
                await self.hook.on_workflow_end(instance_id, WorkflowStatus.FAILED)
                raise

            await self.hook.on_workflow_end(instance_id, outcome["status"])
            return outcome

    async def _run_steps(
        self,
        session: AsyncSession,
        instances: WorkflowInstanceRepository,
        instance: WorkflowInstance,
        steps: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        instance_id = instance.id
        context = instance.context or {}
        executor = StepExecutor(self.registry, StepLogRepository(session), self.hook)

        for index in range(instance.current_step, len(steps)):
            step = steps[index]

            status = await instances.get_status(instance_id)
            if status == WorkflowStatus.CANCELLED:
                logger.info("[WorkflowEngine] instance=%s cancelled", instance_id)
                return {"status": WorkflowStatus.CANCELLED}
            if status == WorkflowStatus.PAUSED:
                logger.info("[WorkflowEngine] instance=%s paused at step %s", instance_id, index)
                return {"status": WorkflowStatus.PAUSED}
            if status != WorkflowStatus.RUNNING:
                return {"status": status}

            token = str(uuid.uuid4())
            acquired = await instances.try_acquire_lock(
                instance_id,
                expected_step=index,
                token=token,
                now=utcnow(),
                ttl_seconds=self.lock_ttl_seconds,
            )
            if not acquired:
                logger.warning(
                    "[WorkflowEngine] instance=%s step %s is held by another worker",
                    instance_id, index,
                )
                # the holder may be dead; retry once its lock goes stale
                held = await instances.refresh_by_id(instance_id)
                retry_at = utcnow()
                if held is not None and held.locked_at is not None:
                    retry_at = max(retry_at, held.locked_at + timedelta(seconds=self.lock_ttl_seconds))
                return {"status": WorkflowStatus.RUNNING, "locked": True, "retry_at": retry_at}

            try:
                step_result = await executor.execute(instance, index, step, context)
                entry = {
                    "step_index": index,
                    "name": step.get("name"),
                    "action": step.get("action"),
                    **step_result,
                }
                await instances.record_step_result(instance_id, index, entry, utcnow())
            except BaseException:
                await session.rollback()
                raise
            finally:
                await instances.release_lock(instance_id, token)

            if step_result["status"] == StepStatus.FAILED:
                await instances.mark_failed(instance_id, step_result["error"], utcnow())
                logger.error(
                    "[WorkflowEngine] instance=%s failed at step %s (%s): %s",
                    instance_id, index, step.get("name"), step_result["error"],
                )
                return {"status": WorkflowStatus.FAILED, "error": step_result["error"]}

            result = step_result.get("result") or {}

            if step.get("action") == "delay" and result.get("delay_until"):
                delay_until = _parse_timestamp(result["delay_until"])
                await instances.set_next_step_at(instance_id, delay_until, utcnow())
                await self.queue.add_job(
                    QueueName.WORKFLOW_EXECUTION,
                    EXECUTE_JOB,
                    {"instance_id": instance_id, "definition_id": instance.definition_id},
                    run_at=delay_until,
                )
                logger.info("[WorkflowEngine] instance=%s delayed until %s", instance_id, delay_until)
                return {"status": WorkflowStatus.RUNNING, "delayed": True, "next_step_at": delay_until}

            if step.get("action") == "condition" and result.get("condition_met") is False:
                logger.info("[WorkflowEngine] instance=%s condition not met at step %s, completing", instance_id, index)
                break

        if await instances.mark_completed(instance_id, utcnow()):
            logger.info("[WorkflowEngine] instance=%s completed", instance_id)
            return {"status": WorkflowStatus.COMPLETED}
        return {"status": await instances.get_status(instance_id)}

    # ------------------------------------------------------------------ #
    #                          control operations
    # ------------------------------------------------------------------ #
    async def cancel_workflow(self, instance_id: str, reason: Optional[str] = None) -> bool:
        async with self.session_factory() as session:
            applied = await WorkflowInstanceRepository(session).cancel(instance_id, utcnow())
        logger.info("[WorkflowEngine] cancel instance=%s applied=%s", instance_id, applied)
        await self.hook.on_control_signal(instance_id, "cancel", applied, reason)
        return applied

    async def pause_workflow(self, instance_id: str, reason: Optional[str] = None) -> bool:
        async with self.session_factory() as session:
            applied = await WorkflowInstanceRepository(session).pause(instance_id, utcnow())
        logger.info("[WorkflowEngine] pause instance=%s applied=%s", instance_id, applied)
        await self.hook.on_control_signal(instance_id, "pause", applied, reason)
        return applied

    async def resume_workflow(self, instance_id: str, reason: Optional[str] = None) -> bool:
        async with self.session_factory() as session:
            repo = WorkflowInstanceRepository(session)
            applied = await repo.resume(instance_id, utcnow())
            instance = await repo.refresh_by_id(instance_id) if applied else None

        if instance is not None:
            # a delay that has not elapsed yet keeps its due time
            now = utcnow()
            run_at = instance.next_step_at if instance.next_step_at and instance.next_step_at > now else now
            await self.queue.add_job(
                QueueName.WORKFLOW_EXECUTION,
                EXECUTE_JOB,
                {"instance_id": instance_id, "definition_id": instance.definition_id},
                run_at=run_at,
            )
        logger.info("[WorkflowEngine] resume instance=%s applied=%s", instance_id, applied)
        await self.hook.on_control_signal(instance_id, "resume", applied, reason)
        return applied

    async def get_workflow_status(self, instance_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            instance = await WorkflowInstanceRepository(session).refresh_by_id(instance_id)
            if instance is None:
                return None
            definition = await WorkflowDefinitionRepository(session).get_by_id(instance.definition_id)
            logs = await StepLogRepository(session).list_for_instance(instance_id)

        status = instance_to_dict(instance)
        status["workflow_name"] = definition.name if definition else None
        status["steps"] = list(definition.steps or []) if definition else []
        status["step_logs"] = [step_log_to_dict(log) for log in logs]
        return status


# =======================================================================
#                              builder
# =======================================================================

def build_engine(
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    *,
    hook: Optional[ExecutionHooks] = None,
) -> WorkflowEngine:
    """Engine wired with the built-in actions and the database job queue."""
    queue = JobQueue(session_factory)
    registry = build_default_registry(session_factory, queue)
    return WorkflowEngine(registry, session_factory=session_factory, queue=queue, hook=hook)
