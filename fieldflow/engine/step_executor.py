"""
Runs one step attempt: open a step log, dispatch to the registered handler,
close the log with the outcome.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict

from pydantic_core import to_jsonable_python

from fieldflow.actions.registry import ActionRegistry
from fieldflow.errors import UnknownActionError
from fieldflow.hooks.base import ExecutionHooks
from fieldflow.observability.trace_utils import traced_span
from fieldflow.persistence.models import StepStatus, WorkflowInstance
from fieldflow.persistence.repositories.step_log_repository import StepLogRepository
from fieldflow.utils.timefmt import utcnow

logger = logging.getLogger(__name__)


def jsonable(value: Any) -> Any:
    """Coerce handler output (datetimes, decimals, ...) into JSON column values."""
    return to_jsonable_python(value, fallback=str)


class StepExecutor:
    def __init__(self, registry: ActionRegistry, log_repo: StepLogRepository, hook: ExecutionHooks):
        self.registry = registry
        self.log_repo = log_repo
        self.hook = hook

    async def execute(
        self,
        instance: WorkflowInstance,
        step_index: int,
        step: Dict[str, Any],
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Returns ``{"status": "completed", "result": result}`` or
        ``{"status": "failed", "error": message}``. Errors raised while
        writing the step log itself are not caught."""
        action = step.get("action") or ""
        log = await self.log_repo.open_log(
            instance_id=instance.id,
            step_index=step_index,
            step_name=step.get("name"),
            action_type=action,
            action_config=jsonable(step.get("config") or {}),
            started_at=utcnow(),
        )
        await self.hook.on_step_enter(instance.id, step_index, action)

        start = time.perf_counter()
        async with traced_span(
            "workflow.step",
            instance_id=instance.id,
            step_index=step_index,
            action=action,
            attempt=log.attempt_number,
        ) as span:
            try:
                handler = self.registry.get(action)
                if handler is None:
                    raise UnknownActionError(action)
                result = jsonable(await handler(instance, step, context) or {})
            except Exception as exc:  # noqa: BLE001 - handler failures become step failures
                duration_ms = int((time.perf_counter() - start) * 1000)
                error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "[StepExecutor] instance=%s step=%s (%s) failed: %s",
                    instance.id, step_index, action, error,
                )
                if span is not None:
                    span.record_exception(exc)
                await self.log_repo.close_log(
                    log.id,
                    status=StepStatus.FAILED,
                    error_message=error,
                    completed_at=utcnow(),
                    duration_ms=duration_ms,
                )
                await self.hook.on_step_fail(instance.id, step_index, action, duration_ms, error)
                return {"status": StepStatus.FAILED, "error": error}

        duration_ms = int((time.perf_counter() - start) * 1000)
        await self.log_repo.close_log(
            log.id,
            status=StepStatus.COMPLETED,
            result=result,
            completed_at=utcnow(),
            duration_ms=duration_ms,
        )
        await self.hook.on_step_success(instance.id, step_index, action, duration_ms, result)
        return {"status": StepStatus.COMPLETED, "result": result}
