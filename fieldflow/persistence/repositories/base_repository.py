# fieldflow/persistence/repositories/base_repository.py

from typing import Any, Type, TypeVar, Optional, Generic

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar('T')


class BaseRepository(Generic[T]):
    """Generic async repository; every write commits on its own."""

    def __init__(self, session: AsyncSession, model_class: Type[T]):
        self.session = session
        self.model_class = model_class

    async def get_by_id(self, id_value: Any) -> Optional[T]:
        return await self.session.get(self.model_class, id_value)

    async def refresh_by_id(self, id_value: Any) -> Optional[T]:
        """Like get_by_id, but bypasses the identity map."""
        return await self.session.get(self.model_class, id_value, populate_existing=True)

    async def create(self, entity: T) -> T:
        self.session.add(entity)
        try:
            await self.session.commit()
            await self.session.refresh(entity)
            return entity
        except IntegrityError:
            await self.session.rollback()
            raise

    async def update(self, entity: T) -> T:
        self.session.add(entity)
        await self.session.commit()
        await self.session.refresh(entity)
        return entity