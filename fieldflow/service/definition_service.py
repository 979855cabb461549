"""Definition authoring: validation against the action registry, versioning
and event bindings."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.actions.registry import ActionRegistry
from fieldflow.dsl.definition_model import (
    WorkflowDefinitionModel,
    format_validation_error,
    parse_config,
)
from fieldflow.errors import DefinitionValidationError, StepValidationError
from fieldflow.persistence.models import WorkflowDefinition, WorkflowTrigger
from fieldflow.persistence.repositories.workflow_definition_repository import (
    WorkflowDefinitionRepository,
    WorkflowTriggerRepository,
)
from fieldflow.persistence.repositories.workflow_instance_repository import WorkflowInstanceRepository
from fieldflow.utils.timefmt import utcnow

logger = logging.getLogger(__name__)

__all__ = ["WorkflowDefinitionService"]


class WorkflowDefinitionService:

    def __init__(self, session: AsyncSession, registry: ActionRegistry):
        self.session = session
        self.registry = registry
        self.definitions = WorkflowDefinitionRepository(session)
        self.triggers = WorkflowTriggerRepository(session)

    # ─────────────────────────── validation ───────────────────────────

    def validate(self, data: Dict[str, Any]) -> WorkflowDefinitionModel:
        """Parse *data* and check every step against the registry."""
        try:
            model = WorkflowDefinitionModel.model_validate(data)
        except ValidationError as exc:
            raise DefinitionValidationError(format_validation_error(exc)) from exc

        errors: List[str] = []
        for index, step in enumerate(model.steps):
            label = step.name or f"step {index}"
            if step.action not in self.registry:
                errors.append(f"{label}: Unknown action type: {step.action}")
                continue
            config_model = self.registry.config_model(step.action)
            if config_model is None:
                continue
            try:
                parse_config(config_model, step.config)
            except StepValidationError as exc:
                errors.append(f"{label}: {exc}")

        if errors:
            raise DefinitionValidationError("; ".join(errors))
        return model

    # ─────────────────────────── CRUD ───────────────────────────────

    async def create_definition(self, data: Dict[str, Any], *, priority: int = 0) -> WorkflowDefinition:
        model = self.validate(data)
        now = utcnow()
        definition = WorkflowDefinition(
            id=str(uuid.uuid4()),
            name=model.name,
            description=model.description,
            version=model.version,
            trigger_event=model.trigger_event,
            trigger_conditions=model.trigger_conditions,
            steps=[step.model_dump() for step in model.steps],
            enabled=model.enabled,
            max_retries=model.max_retries,
            retry_delay_seconds=model.retry_delay_seconds,
            timeout_seconds=model.timeout_seconds,
            created_at=now,
            updated_at=now,
        )
        definition = await self.definitions.create(definition)
        if model.trigger_event:
            await self.add_trigger(definition.id, model.trigger_event, priority=priority)

        logger.info(
            "[DefinitionService] created %s v%s (%d steps)",
            definition.name, definition.version, len(model.steps),
        )
        return definition

    async def update_definition(self, definition_id: str, data: Dict[str, Any]) -> WorkflowDefinition:
        """Replace the definition body and bump its version.

        Refused while non-terminal instances still run against it.
        """
        definition = await self.definitions.get_by_id(definition_id)
        if definition is None:
            raise DefinitionValidationError(f"Workflow definition not found: {definition_id}")

        active = await WorkflowInstanceRepository(self.session).count_active_for_definition(definition_id)
        if active:
            raise DefinitionValidationError(
                f"Workflow definition {definition.name} has {active} active instance(s)"
            )

        model = self.validate({**data, "version": definition.version + 1})
        definition.name = model.name
        definition.description = model.description
        definition.version = model.version
        definition.trigger_event = model.trigger_event
        definition.trigger_conditions = model.trigger_conditions
        definition.steps = [step.model_dump() for step in model.steps]
        definition.enabled = model.enabled
        definition.max_retries = model.max_retries
        definition.retry_delay_seconds = model.retry_delay_seconds
        definition.timeout_seconds = model.timeout_seconds
        definition.updated_at = utcnow()
        definition = await self.definitions.update(definition)

        if model.trigger_event:
            bound = await self.triggers.list_for_definition(definition_id)
            if not any(t.event_name == model.trigger_event for t in bound):
                await self.add_trigger(definition_id, model.trigger_event)

        logger.info("[DefinitionService] updated %s to v%s", definition.name, definition.version)
        return definition

    async def add_trigger(self, definition_id: str, event_name: str, *, priority: int = 0) -> WorkflowTrigger:
        trigger = WorkflowTrigger(
            id=str(uuid.uuid4()),
            event_name=event_name,
            definition_id=definition_id,
            enabled=True,
            priority=priority,
        )
        return await self.triggers.create(trigger)

    async def set_enabled(self, definition_id: str, enabled: bool) -> Optional[WorkflowDefinition]:
        definition = await self.definitions.get_by_id(definition_id)
        if definition is None:
            return None
        definition.enabled = enabled
        definition.updated_at = utcnow()
        return await self.definitions.update(definition)

    async def get_definition(self, definition_id: str) -> Optional[WorkflowDefinition]:
        return await self.definitions.get_by_id(definition_id)

    async def list_definitions(
        self,
        *,
        enabled: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[WorkflowDefinition]:
        return await self.definitions.list_definitions(enabled=enabled, limit=limit, offset=offset)
