from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.persistence.models import WorkflowDefinition, WorkflowTrigger
from fieldflow.persistence.repositories.base_repository import BaseRepository


class WorkflowDefinitionRepository(BaseRepository[WorkflowDefinition]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowDefinition)

    async def list_definitions(
        self,
        *,
        enabled: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[WorkflowDefinition]:
        stmt = select(WorkflowDefinition)
        if enabled is not None:
            stmt = stmt.where(WorkflowDefinition.enabled == enabled)
        stmt = stmt.order_by(WorkflowDefinition.created_at.desc()).limit(limit).offset(offset)
        res = await self.session.execute(stmt)
        return list(res.scalars().all())


class WorkflowTriggerRepository(BaseRepository[WorkflowTrigger]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowTrigger)

    async def find_definitions_for_event(self, event_name: str) -> List[WorkflowDefinition]:
        """Enabled definitions bound to *event_name*, highest trigger priority first."""
        stmt = (
            select(WorkflowDefinition)
            .join(WorkflowTrigger, WorkflowTrigger.definition_id == WorkflowDefinition.id)
            .where(
                WorkflowTrigger.event_name == event_name,
                WorkflowTrigger.enabled.is_(True),
                WorkflowDefinition.enabled.is_(True),
            )
            .order_by(WorkflowTrigger.priority.desc())
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def list_for_definition(self, definition_id: str) -> List[WorkflowTrigger]:
        stmt = select(WorkflowTrigger).where(WorkflowTrigger.definition_id == definition_id)
        res = await self.session.execute(stmt)
        return list(res.scalars().all())
