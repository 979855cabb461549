import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException

from fieldflow.engine.workflow_engine import WorkflowEngine
from fieldflow.interfaces.api.dependencies import get_engine, standard_response
from fieldflow.interfaces.api.schemas import ControlRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow_instances", tags=["workflow_instances"])


@router.get("/{instance_id}", response_model=Dict[str, Any])
async def get_instance(instance_id: str, engine: WorkflowEngine = Depends(get_engine)):
    status = await engine.get_workflow_status(instance_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Workflow instance not found")
    return standard_response(data=status)


async def _control(signal: str, instance_id: str, req: Optional[ControlRequest], engine: WorkflowEngine):
    reason = req.reason if req else None
    op = {
        "cancel": engine.cancel_workflow,
        "pause": engine.pause_workflow,
        "resume": engine.resume_workflow,
    }[signal]
    applied = await op(instance_id, reason)
    if not applied:
        if await engine.get_workflow_status(instance_id) is None:
            raise HTTPException(status_code=404, detail="Workflow instance not found")
        raise HTTPException(status_code=409, detail=f"Cannot {signal} instance in its current status")
    return standard_response(data={"instance_id": instance_id, "applied": True}, message=f"{signal} applied")


@router.post("/{instance_id}/cancel", response_model=Dict[str, Any])
async def cancel_instance(
    instance_id: str,
    req: Optional[ControlRequest] = None,
    engine: WorkflowEngine = Depends(get_engine),
):
    return await _control("cancel", instance_id, req, engine)


@router.post("/{instance_id}/pause", response_model=Dict[str, Any])
async def pause_instance(
    instance_id: str,
    req: Optional[ControlRequest] = None,
    engine: WorkflowEngine = Depends(get_engine),
):
    return await _control("pause", instance_id, req, engine)


@router.post("/{instance_id}/resume", response_model=Dict[str, Any])
async def resume_instance(
    instance_id: str,
    req: Optional[ControlRequest] = None,
    engine: WorkflowEngine = Depends(get_engine),
):
    return await _control("resume", instance_id, req, engine)
