"""Base repository service over an async session.

Services flush but never commit; the caller owns the transaction.
"""

from typing import Any, Generic, Optional, Type, TypeVar
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Lookups and inserts shared by every model service.

    Usage:
        class StepService(BaseService[Step]):
            def __init__(self, db: AsyncSession):
                super().__init__(Step, db)
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        result = await self.db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_by_id_and_tenant(self, id: str, tenant_id: str) -> Optional[ModelType]:
        """Get a record only when it belongs to ``tenant_id``."""
        result = await self.db.execute(
            select(self.model).where(
                self.model.id == id,
                self.model.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Insert a new record and return it with server defaults loaded."""
        if "id" not in data:
            data["id"] = str(uuid4())

        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance
