import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from fieldflow.engine.workflow_engine import WorkflowEngine
from fieldflow.interfaces.api.dependencies import get_engine, standard_response
from fieldflow.interfaces.api.schemas import TriggerEventRequest, WorkflowInstanceDTO

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=Dict[str, Any])
async def trigger_event(req: TriggerEventRequest, engine: WorkflowEngine = Depends(get_engine)):
    """
    Fire a business event; every matching enabled workflow gets a new instance.
    """
    instances = await engine.trigger_workflows(
        req.event_name,
        req.entity_type,
        req.entity_id,
        req.context,
        triggered_by=req.triggered_by,
    )
    return standard_response(
        data=[WorkflowInstanceDTO.model_validate(i) for i in instances],
        message=f"{len(instances)} workflow(s) triggered",
    )
