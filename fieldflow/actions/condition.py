import logging
from typing import Any, Dict, Optional

from pydantic import model_validator

from fieldflow.actions.base import ActionHandler
from fieldflow.dsl.definition_model import ActionConfig
from fieldflow.dsl.operators import evaluate, resolve_operator
from fieldflow.persistence.repositories.entity_repository import EntityRepository

logger = logging.getLogger(__name__)


def get_path(data: Any, path: str) -> Any:
    """Resolve a dot path ('customer.address.city'); missing parts give None."""
    value = data
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, list) and part.isdigit():
            idx = int(part)
            value = value[idx] if idx < len(value) else None
        else:
            value = getattr(value, part, None)
    return value


class ConditionConfig(ActionConfig):
    field: Optional[str] = None
    operator: Optional[str] = None
    value: Any = None
    refresh: bool = True

    @model_validator(mode="after")
    def check_required(self):
        if not self.field or not self.operator:
            raise ValueError("Condition action requires field and operator in config")
        resolve_operator(self.operator)
        return self


class ConditionAction(ActionHandler):
    """Evaluates one field against an expected value.

    A False result does not fail the step; the engine treats it as the end
    of the workflow.
    """

    action_type = "condition"
    config_model = ConditionConfig

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def _load_entity(self, instance) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            return await EntityRepository(session).fetch(
                instance.entity_type, instance.entity_id, strict=True
            )

    async def execute(self, instance, step, context) -> Dict[str, Any]:
        cfg = self.parse_config(step)

        data = dict(context or {})
        if cfg.refresh:
            fresh = await self._load_entity(instance)
            if fresh:
                data = {**data, **fresh}

        actual = get_path(data, cfg.field)
        met = evaluate(actual, cfg.operator, cfg.value)

        logger.info(
            "[ConditionAction] instance=%s %s %s %r (actual=%r) → %s",
            instance.id, cfg.field, cfg.operator, cfg.value, actual, met,
        )
        return {
            "condition_met": met,
            "field": cfg.field,
            "operator": cfg.operator,
            "expected_value": cfg.value,
            "actual_value": actual,
        }
