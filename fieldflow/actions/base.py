# fieldflow/actions/base.py

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from fieldflow.dsl.definition_model import ActionConfig, parse_config


class ActionHandler(ABC):
    """
    One workflow action type. ``execute(instance, step, context)`` performs
    the step's side effect and returns a JSON-serialisable result dict;
    any exception marks the step failed.
    """

    action_type: str = ""
    config_model: Optional[Type[ActionConfig]] = None

    def parse_config(self, step: Dict[str, Any]) -> ActionConfig:
        model = self.config_model or ActionConfig
        return parse_config(model, step.get("config"))

    @abstractmethod
    async def execute(self, instance: Any, step: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def __call__(self, instance: Any, step: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        return await self.execute(instance, step, context)
