import logging

from fieldflow.hooks.base import ExecutionHooks

logger = logging.getLogger("fieldflow.lifecycle")


class LogHook(ExecutionHooks):
    async def on_workflow_start(self, instance_id, definition_id):
        logger.info("[%s] 🚀 workflow started (definition=%s)", instance_id, definition_id)

    async def on_step_enter(self, instance_id, step_index, action):
        logger.info("[%s] ▶️ step %s (%s)", instance_id, step_index, action)

    async def on_step_success(self, instance_id, step_index, action, duration_ms, result):
        logger.info("[%s] ✅ step %s (%s) done in %sms", instance_id, step_index, action, duration_ms)

    async def on_step_fail(self, instance_id, step_index, action, duration_ms, error):
        logger.warning("[%s] ❌ step %s (%s) failed after %sms: %s", instance_id, step_index, action, duration_ms, error)

    async def on_workflow_end(self, instance_id, status):
        logger.info("[%s] 🏁 workflow ended: %s", instance_id, status)

    async def on_control_signal(self, instance_id, signal, applied, reason=None):
        logger.info("[%s] ⚠️ control %s applied=%s %s", instance_id, signal, applied, reason or "")
