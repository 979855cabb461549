from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from fieldflow.actions.base import ActionHandler

logger = logging.getLogger(__name__)

HandlerFn = Callable[[Any, Dict[str, Any], Dict[str, Any]], Awaitable[Dict[str, Any]]]
Handler = Union[ActionHandler, HandlerFn]


class ActionRegistry:
    """Action type name → handler. Built once and handed to the engine."""

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None):
        self._handlers: Dict[str, Handler] = {}
        for action_type, handler in (handlers or {}).items():
            self.register(action_type, handler)

    def register(self, action_type: str, handler: Handler) -> None:
        if not action_type:
            raise ValueError("action_type must be a non-empty string")
        if not callable(handler):
            raise TypeError(f"Handler for '{action_type}' is not callable")
        self._handlers[action_type] = handler
        logger.debug("[ActionRegistry] registered %s", action_type)

    def get(self, action_type: str) -> Optional[Handler]:
        return self._handlers.get(action_type)

    def config_model(self, action_type: str):
        handler = self._handlers.get(action_type)
        return getattr(handler, "config_model", None)

    def action_types(self) -> Iterable[str]:
        return tuple(self._handlers)

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def build_default_registry(session_factory, queue) -> ActionRegistry:
    """Registry with every built-in action wired to its collaborators."""
    from fieldflow.actions.api_call import ApiCallAction
    from fieldflow.actions.condition import ConditionAction
    from fieldflow.actions.delay import DelayAction
    from fieldflow.actions.notifications import SendEmailAction, SendSmsAction
    from fieldflow.actions.update_stage import UpdateStageAction

    registry = ActionRegistry()
    for handler in (
        DelayAction(),
        ConditionAction(session_factory),
        SendSmsAction(session_factory, queue),
        SendEmailAction(session_factory, queue),
        UpdateStageAction(session_factory, queue),
        ApiCallAction(),
    ):
        registry.register(handler.action_type, handler)

    logger.info("[ActionRegistry] built-in actions registered: %s", ", ".join(registry.action_types()))
    return registry
