from typing import List
from fieldflow.hooks.base import ExecutionHooks


class HookDispatcher(ExecutionHooks):
    def __init__(self, hooks: List[ExecutionHooks]):
        self.hooks = hooks

    async def on_workflow_start(self, instance_id, definition_id):
        for h in self.hooks:
            await h.on_workflow_start(instance_id, definition_id)

    async def on_step_enter(self, instance_id, step_index, action):
        for h in self.hooks:
            await h.on_step_enter(instance_id, step_index, action)

    async def on_step_success(self, instance_id, step_index, action, duration_ms, result):
        for h in self.hooks:
            await h.on_step_success(instance_id, step_index, action, duration_ms, result)

    async def on_step_fail(self, instance_id, step_index, action, duration_ms, error):
        for h in self.hooks:
            await h.on_step_fail(instance_id, step_index, action, duration_ms, error)

    async def on_workflow_end(self, instance_id, status):
        for h in self.hooks:
            await h.on_workflow_end(instance_id, status)

    async def on_control_signal(self, instance_id, signal, applied, reason=None):
        for h in self.hooks:
            await h.on_control_signal(instance_id, signal, applied, reason)
