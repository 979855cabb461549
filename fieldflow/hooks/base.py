from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class ExecutionHooks(ABC):

    @abstractmethod
    async def on_workflow_start(self, instance_id: str, definition_id: str): ...

    @abstractmethod
    async def on_step_enter(self, instance_id: str, step_index: int, action: str): ...

    @abstractmethod
    async def on_step_success(self, instance_id: str, step_index: int, action: str, duration_ms: int, result: Dict[str, Any]): ...

    @abstractmethod
    async def on_step_fail(self, instance_id: str, step_index: int, action: str, duration_ms: int, error: str): ...

    @abstractmethod
    async def on_workflow_end(self, instance_id: str, status: str): ...

    @abstractmethod
    async def on_control_signal(self, instance_id: str, signal: str, applied: bool, reason: Optional[str] = None): ...
