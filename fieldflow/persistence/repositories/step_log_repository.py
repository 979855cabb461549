import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.persistence.models import StepLog, StepStatus
from fieldflow.persistence.repositories.base_repository import BaseRepository
from fieldflow.utils.timefmt import to_utc_naive


class StepLogRepository(BaseRepository[StepLog]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, StepLog)

    async def count_attempts(self, instance_id: str, step_index: int) -> int:
        stmt = select(func.count(StepLog.id)).where(
            StepLog.instance_id == instance_id,
            StepLog.step_index == step_index,
        )
        res = await self.session.execute(stmt)
        return int(res.scalar_one())

    async def open_log(
        self,
        *,
        instance_id: str,
        step_index: int,
        step_name: Optional[str],
        action_type: str,
        action_config: Dict[str, Any],
        started_at: datetime,
    ) -> StepLog:
        attempt = await self.count_attempts(instance_id, step_index) + 1
        log = StepLog(
            id=str(uuid.uuid4()),
            instance_id=instance_id,
            step_index=step_index,
            step_name=step_name,
            action_type=action_type,
            action_config=action_config,
            status=StepStatus.RUNNING,
            started_at=to_utc_naive(started_at),
            attempt_number=attempt,
        )
        return await self.create(log)

    async def close_log(
        self,
        log_id: str,
        *,
        status: str,
        completed_at: datetime,
        duration_ms: int,
        result: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Close a running log. A log is closed at most once."""
        stmt = (
            update(StepLog)
            .where(StepLog.id == log_id, StepLog.status == StepStatus.RUNNING)
            .values(
                status=status,
                result=result,
                error_message=error_message,
                completed_at=to_utc_naive(completed_at),
                duration_ms=duration_ms,
            )
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        await self.session.commit()
        return res.rowcount == 1

    async def list_for_instance(self, instance_id: str) -> List[StepLog]:
        stmt = (
            select(StepLog)
            .where(StepLog.instance_id == instance_id)
            .order_by(StepLog.step_index, StepLog.attempt_number)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())
