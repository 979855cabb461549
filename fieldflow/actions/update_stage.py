import logging
from typing import Any, Dict, Optional

from pydantic import model_validator

from fieldflow.actions.base import ActionHandler
from fieldflow.dsl.definition_model import ActionConfig
from fieldflow.persistence.repositories.entity_repository import CrmContactRepository
from fieldflow.queue.job_queue import QueueName

logger = logging.getLogger(__name__)


class UpdateStageConfig(ActionConfig):
    stage: Optional[str] = None
    stage_id: Optional[Any] = None
    pipeline_id: Optional[Any] = None
    sync_to_external: bool = True
    external_system: str = "crm"

    @model_validator(mode="after")
    def stage_or_id(self):
        if not self.stage and not self.stage_id:
            raise ValueError("Update stage action requires stage or stageId in config")
        return self


class UpdateStageAction(ActionHandler):
    action_type = "update_stage"
    config_model = UpdateStageConfig

    def __init__(self, session_factory, queue):
        self.session_factory = session_factory
        self.queue = queue

    async def execute(self, instance, step, context) -> Dict[str, Any]:
        cfg = self.parse_config(step)
        stage = cfg.stage or str(cfg.stage_id)

        customer_id = (
            instance.entity_id if instance.entity_type == "customer"
            else (context or {}).get("customer_id")
        )
        async with self.session_factory() as session:
            contacts = CrmContactRepository(session)
            contact_id = await contacts.find_contact_id(customer_id)
            if contact_id is not None:
                await contacts.set_stage(contact_id, stage)
                logger.info(
                    "[UpdateStageAction] instance=%s contact=%s stage=%s",
                    instance.id, contact_id, stage,
                )

        if not cfg.sync_to_external:
            return {"updated": True, "stage": stage, "sync_queued": False}

        job = await self.queue.add_job(
            QueueName.OUTBOUND_SYNC,
            "sync-stage",
            {
                "type": f"sync-to-{cfg.external_system}",
                "entity_type": instance.entity_type,
                "entity_id": instance.entity_id,
                "action": "update-stage",
                "data": {
                    "stage": cfg.stage,
                    "stage_id": cfg.stage_id,
                    "pipeline_id": cfg.pipeline_id,
                },
                "workflow_instance_id": instance.id,
            },
        )
        logger.info(
            "[UpdateStageAction] instance=%s sync to %s queued job_id=%s",
            instance.id, cfg.external_system, job.id,
        )
        return {
            "updated": True,
            "stage": stage,
            "sync_queued": True,
            "sync_job_id": job.id,
        }
