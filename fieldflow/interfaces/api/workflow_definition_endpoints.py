import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from fieldflow.engine.workflow_engine import WorkflowEngine
from fieldflow.errors import DefinitionValidationError
from fieldflow.interfaces.api.dependencies import get_engine, standard_response
from fieldflow.interfaces.api.schemas import WorkflowDefinitionDTO
from fieldflow.service.definition_service import WorkflowDefinitionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow_definitions", tags=["workflow_definitions"])


@router.post("", response_model=Dict[str, Any])
async def create_definition(
    payload: Dict[str, Any] = Body(...),
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    Validate and store a definition; binds its trigger_event when given.
    """
    async with engine.session_factory() as session:
        svc = WorkflowDefinitionService(session, engine.registry)
        try:
            definition = await svc.create_definition(payload)
        except DefinitionValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        return standard_response(
            data=WorkflowDefinitionDTO.model_validate(definition),
            message="Definition created",
        )


@router.get("/{definition_id}", response_model=Dict[str, Any])
async def get_definition(definition_id: str, engine: WorkflowEngine = Depends(get_engine)):
    async with engine.session_factory() as session:
        definition = await WorkflowDefinitionService(session, engine.registry).get_definition(definition_id)
        if definition is None:
            raise HTTPException(status_code=404, detail="Workflow definition not found")
        return standard_response(data=WorkflowDefinitionDTO.model_validate(definition))
