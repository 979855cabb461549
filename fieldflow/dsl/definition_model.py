from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from fieldflow.dsl.operators import TriggerOperator
from fieldflow.errors import StepValidationError

# -----------------------------
# base for per-action config
# -----------------------------

class ActionConfig(BaseModel):
    """Step config. Accepts both snake_case and camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        msg = err.get("msg", "")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def parse_config(model: type[ActionConfig], config: Optional[Dict[str, Any]]) -> ActionConfig:
    try:
        return model.model_validate(config or {})
    except ValidationError as exc:
        raise StepValidationError(format_validation_error(exc)) from exc

# -----------------------------
# steps & definitions
# -----------------------------

class StepModel(BaseModel):
    name: Optional[str] = None
    action: str = Field(min_length=1)
    config: Dict[str, Any] = Field(default_factory=dict)


class WorkflowDefinitionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: Optional[str] = None
    version: int = Field(default=1, ge=1)
    trigger_event: Optional[str] = None
    trigger_conditions: Dict[str, Any] = Field(default_factory=dict)
    steps: List[StepModel] = Field(min_length=1)
    enabled: bool = True
    max_retries: int = Field(default=0, ge=0)
    retry_delay_seconds: int = Field(default=60, ge=0)
    timeout_seconds: Optional[int] = Field(default=None, gt=0)

    @field_validator("trigger_conditions")
    @classmethod
    def known_trigger_operators(cls, conditions: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {op.value for op in TriggerOperator}
        for field, cond in conditions.items():
            if isinstance(cond, dict):
                unknown = set(cond) - allowed
                if unknown:
                    raise ValueError(
                        f"Unknown trigger operator(s) for '{field}': {', '.join(sorted(unknown))}"
                    )
                for op in (TriggerOperator.IN.value, TriggerOperator.NIN.value):
                    if op in cond and not isinstance(cond[op], list):
                        raise ValueError(f"'{op}' for '{field}' expects a list")
        return conditions
