from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TriggerEventRequest(BaseModel):
    event_name: str = Field(min_length=1)
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    triggered_by: str = "api"


class ControlRequest(BaseModel):
    reason: Optional[str] = None


class WorkflowInstanceDTO(BaseModel):
    id: str
    definition_id: str
    definition_version: int
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    status: str
    current_step: int
    next_step_at: Optional[datetime] = None
    triggered_by: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WorkflowDefinitionDTO(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    version: int
    trigger_event: Optional[str] = None
    trigger_conditions: Optional[Dict[str, Any]] = None
    steps: List[Dict[str, Any]]
    enabled: bool
    max_retries: int
    retry_delay_seconds: int
    timeout_seconds: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)
