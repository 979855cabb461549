from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, update, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.persistence.models import WorkflowDefinition, WorkflowInstance, WorkflowStatus
from fieldflow.persistence.repositories.base_repository import BaseRepository
from fieldflow.utils.timefmt import to_utc_naive

logger = logging.getLogger(__name__)


class WorkflowInstanceRepository(BaseRepository[WorkflowInstance]):
    """Instance store. Status transitions are conditional UPDATEs so that a
    control operation issued from another session is never clobbered by a
    stale row held in this one."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowInstance)

    # ─────────────────────────── create / read ───────────────────────────

    async def create_instance(
        self,
        definition: WorkflowDefinition,
        *,
        entity_type: Optional[str],
        entity_id: Optional[str],
        context: Dict[str, Any],
        triggered_by: str = "system",
    ) -> WorkflowInstance:
        instance = WorkflowInstance(
            id=str(uuid.uuid4()),
            definition_id=definition.id,
            definition_version=definition.version or 1,
            entity_type=entity_type,
            entity_id=None if entity_id is None else str(entity_id),
            status=WorkflowStatus.PENDING,
            context=dict(context),
            current_step=0,
            step_results=[],
            triggered_by=triggered_by,
        )
        return await self.create(instance)

    async def get_status(self, instance_id: str) -> Optional[str]:
        res = await self.session.execute(
            select(WorkflowInstance.status).where(WorkflowInstance.id == instance_id)
        )
        return res.scalar_one_or_none()

    # ─────────────────────────── transitions ───────────────────────────

    async def _transition(self, instance_id: str, from_statuses, **values) -> bool:
        stmt = (
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == instance_id,
                WorkflowInstance.status.in_(list(from_statuses)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def mark_running(self, instance_id: str, now: datetime) -> bool:
        now = to_utc_naive(now)
        return await self._transition(
            instance_id,
            (WorkflowStatus.PENDING, WorkflowStatus.RUNNING),
            status=WorkflowStatus.RUNNING,
            started_at=func.coalesce(WorkflowInstance.started_at, now),
            updated_at=now,
        )

    async def mark_completed(self, instance_id: str, now: datetime) -> bool:
        now = to_utc_naive(now)
        return await self._transition(
            instance_id,
            (WorkflowStatus.RUNNING,),
            status=WorkflowStatus.COMPLETED,
            completed_at=now,
            updated_at=now,
        )

    async def mark_failed(self, instance_id: str, error: str, now: datetime) -> bool:
        now = to_utc_naive(now)
        return await self._transition(
            instance_id,
            (WorkflowStatus.PENDING, WorkflowStatus.RUNNING),
            status=WorkflowStatus.FAILED,
            error_message=error,
            completed_at=now,
            updated_at=now,
        )

    async def cancel(self, instance_id: str, now: datetime) -> bool:
        now = to_utc_naive(now)
        return await self._transition(
            instance_id,
            (WorkflowStatus.PENDING, WorkflowStatus.RUNNING),
            status=WorkflowStatus.CANCELLED,
            completed_at=now,
            updated_at=now,
        )

    async def pause(self, instance_id: str, now: datetime) -> bool:
        return await self._transition(
            instance_id,
            (WorkflowStatus.RUNNING,),
            status=WorkflowStatus.PAUSED,
            updated_at=to_utc_naive(now),
        )

    async def resume(self, instance_id: str, now: datetime) -> bool:
        return await self._transition(
            instance_id,
            (WorkflowStatus.PAUSED,),
            status=WorkflowStatus.RUNNING,
            updated_at=to_utc_naive(now),
        )

    # ─────────────────────────── step progress ───────────────────────────

    async def record_step_result(
        self,
        instance_id: str,
        step_index: int,
        step_result: Dict[str, Any],
        now: datetime,
    ) -> bool:
        """Advance current_step to step_index + 1 and append the result.

        Only applies while current_step still equals step_index, so the
        counter moves by exactly one per attempted step and never backwards.
        """
        res = await self.session.execute(
            select(WorkflowInstance.step_results).where(WorkflowInstance.id == instance_id)
        )
        results = list(res.scalar_one_or_none() or [])
        results.append(step_result)

        stmt = (
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == instance_id,
                WorkflowInstance.current_step == step_index,
            )
            .values(
                current_step=step_index + 1,
                step_results=results,
                updated_at=to_utc_naive(now),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        if result.rowcount != 1:
            logger.warning(
                "[InstanceRepo] step %s of %s already recorded by another worker",
                step_index, instance_id,
            )
        return result.rowcount == 1

    async def set_next_step_at(self, instance_id: str, when: Optional[datetime], now: datetime) -> None:
        stmt = (
            update(WorkflowInstance)
            .where(WorkflowInstance.id == instance_id)
            .values(
                next_step_at=None if when is None else to_utc_naive(when),
                updated_at=to_utc_naive(now),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.commit()

    # ─────────────────────────── execution lock ───────────────────────────

    async def try_acquire_lock(
        self,
        instance_id: str,
        *,
        expected_step: int,
        token: str,
        now: datetime,
        ttl_seconds: int,
    ) -> bool:
        """Compare-and-swap claim of the right to execute *expected_step*."""
        now = to_utc_naive(now)
        stale_before = now - timedelta(seconds=ttl_seconds)
        stmt = (
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == instance_id,
                WorkflowInstance.status == WorkflowStatus.RUNNING,
                WorkflowInstance.current_step == expected_step,
                or_(
                    WorkflowInstance.lock_token.is_(None),
                    WorkflowInstance.locked_at < stale_before,
                ),
            )
            .values(
                lock_token=token,
                locked_at=now,
                version=WorkflowInstance.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def release_lock(self, instance_id: str, token: str) -> bool:
        stmt = (
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == instance_id,
                WorkflowInstance.lock_token == token,
            )
            .values(lock_token=None, locked_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    # ─────────────────────────── queries ───────────────────────────

    async def count_active_for_definition(self, definition_id: str) -> int:
        stmt = select(func.count(WorkflowInstance.id)).where(
            WorkflowInstance.definition_id == definition_id,
            WorkflowInstance.status.not_in(list(WorkflowStatus.TERMINAL)),
        )
        res = await self.session.execute(stmt)
        return int(res.scalar_one())
