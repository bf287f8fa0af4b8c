"""Step value store — one answer per (run, step)."""

from typing import Any, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.run import StepValue
from services.base import BaseService

logger = structlog.get_logger(__name__)


class StepValueService(BaseService[StepValue]):
    def __init__(self, db: AsyncSession):
        super().__init__(StepValue, db)

    async def get_value(self, run_id: str, step_id: str) -> StepValue | None:
        result = await self.db.execute(
            select(StepValue).where(
                StepValue.run_id == run_id,
                StepValue.step_id == step_id,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, run_id: str, step_id: str, value: Any) -> StepValue:
        """Insert or overwrite the value of ``step_id`` for ``run_id``.

        Last write wins; repeating the call with the same value is a no-op
        in effect.
        """
        existing = await self.get_value(run_id, step_id)
        if existing is not None:
            existing.value = value
            await self.db.flush()
            return existing

        return await self.create({"run_id": run_id, "step_id": step_id, "value": value})

    async def list_for_run(self, run_id: str) -> Sequence[StepValue]:
        result = await self.db.execute(
            select(StepValue)
            .where(StepValue.run_id == run_id)
            .order_by(StepValue.created_at.asc())
        )
        return result.scalars().all()

    async def values_by_step(self, run_id: str) -> dict[str, Any]:
        return {sv.step_id: sv.value for sv in await self.list_for_run(run_id)}
