from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldflow.persistence.models import MessagingTemplate
from fieldflow.persistence.repositories.base_repository import BaseRepository


class MessagingTemplateRepository(BaseRepository[MessagingTemplate]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, MessagingTemplate)

    async def get_active(self, name: str, channel: str) -> Optional[MessagingTemplate]:
        stmt = (
            select(MessagingTemplate)
            .where(
                MessagingTemplate.name == name,
                MessagingTemplate.channel == channel,
                MessagingTemplate.active.is_(True),
            )
            .limit(1)
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()
