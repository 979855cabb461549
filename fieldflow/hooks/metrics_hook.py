from fieldflow.hooks.base import ExecutionHooks
from fieldflow.observability.prometheus_metrics import (
    step_duration,
    step_results,
    workflow_finished,
    workflow_started,
    control_signals,
)


class MetricsHook(ExecutionHooks):
    async def on_workflow_start(self, instance_id, definition_id):
        workflow_started.inc()

    async def on_step_enter(self, instance_id, step_index, action):
        pass

    async def on_step_success(self, instance_id, step_index, action, duration_ms, result):
        step_results.labels(action, "completed").inc()
        step_duration.labels(action).observe(duration_ms / 1000)

    async def on_step_fail(self, instance_id, step_index, action, duration_ms, error):
        step_results.labels(action, "failed").inc()
        step_duration.labels(action).observe(duration_ms / 1000)

    async def on_workflow_end(self, instance_id, status):
        workflow_finished.labels(status).inc()

    async def on_control_signal(self, instance_id, signal, applied, reason=None):
        control_signals.labels(signal, "applied" if applied else "ignored").inc()
