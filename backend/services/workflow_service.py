"""Workflow, section, step and block read access.

The engine reads workflow definitions; it never edits them except for the
synthetic virtual steps owned by output blocks.
"""

from typing import Optional, Sequence

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.block import Block
from db.models.step import Step
from db.models.workflow import Section, Workflow
from services.base import BaseService

logger = structlog.get_logger(__name__)


class WorkflowService(BaseService[Workflow]):
    """Service for workflow lookups."""

    def __init__(self, db: AsyncSession):
        super().__init__(Workflow, db)


class SectionService(BaseService[Section]):
    def __init__(self, db: AsyncSession):
        super().__init__(Section, db)

    async def list_by_workflow(self, workflow_id: str) -> Sequence[Section]:
        """Sections of a workflow in navigation order."""
        result = await self.db.execute(
            select(Section)
            .where(Section.workflow_id == workflow_id)
            .order_by(Section.order.asc(), Section.created_at.asc())
        )
        return result.scalars().all()

    async def first_section(self, workflow_id: str) -> Optional[Section]:
        sections = await self.list_by_workflow(workflow_id)
        return sections[0] if sections else None

    async def next_section(self, workflow_id: str, section_id: str) -> Optional[Section]:
        """Section following ``section_id`` in order, or ``None`` at the end."""
        sections = list(await self.list_by_workflow(workflow_id))
        for index, section in enumerate(sections):
            if section.id == section_id:
                return sections[index + 1] if index + 1 < len(sections) else None
        return None


class StepService(BaseService[Step]):
    """Step lookups. Virtual steps are hidden unless asked for."""

    def __init__(self, db: AsyncSession):
        super().__init__(Step, db)

    async def find_by_section_id(
        self,
        section_id: str,
        include_virtual: bool = False,
    ) -> Sequence[Step]:
        return await self.find_by_section_ids([section_id], include_virtual=include_virtual)

    async def find_by_section_ids(
        self,
        section_ids: Sequence[str],
        include_virtual: bool = False,
    ) -> Sequence[Step]:
        if not section_ids:
            return []
        query = select(Step).where(Step.section_id.in_(list(section_ids)))
        if not include_virtual:
            query = query.where(Step.is_virtual == False)  # noqa: E712
        query = query.order_by(Step.order.asc(), Step.created_at.asc())
        result = await self.db.execute(query)
        return result.scalars().all()

    async def find_by_workflow(
        self,
        workflow_id: str,
        include_virtual: bool = False,
    ) -> Sequence[Step]:
        query = (
            select(Step)
            .join(Section, Step.section_id == Section.id)
            .where(Section.workflow_id == workflow_id)
        )
        if not include_virtual:
            query = query.where(Step.is_virtual == False)  # noqa: E712
        query = query.order_by(Section.order.asc(), Step.order.asc())
        result = await self.db.execute(query)
        return result.scalars().all()

    async def alias_map(self, workflow_id: str) -> dict[str, str]:
        """Map every step alias of a workflow (virtual ones included) to its step id."""
        steps = await self.find_by_workflow(workflow_id, include_virtual=True)
        return {step.alias: step.id for step in steps if step.alias}


class BlockService(BaseService[Block]):
    """Block lookups for phase execution."""

    def __init__(self, db: AsyncSession):
        super().__init__(Block, db)

    async def list_for_phase(
        self,
        workflow_id: str,
        phase: str,
        section_id: Optional[str] = None,
    ) -> Sequence[Block]:
        """Enabled blocks of a phase that apply to ``section_id``.

        Workflow-scoped blocks always apply; section-scoped blocks only
        when their section is the active one.
        """
        scope = Block.section_id.is_(None)
        if section_id:
            scope = or_(scope, Block.section_id == section_id)
        result = await self.db.execute(
            select(Block)
            .where(
                Block.workflow_id == workflow_id,
                Block.phase == phase,
                Block.enabled == True,  # noqa: E712
                scope,
            )
            .order_by(Block.order.asc(), Block.created_at.asc())
        )
        return result.scalars().all()

    async def delete_block(self, block_id: str) -> bool:
        """Delete a block together with its virtual step."""
        block = await self.get_by_id(block_id)
        if not block:
            return False

        virtual_step_id = block.virtual_step_id
        await self.db.delete(block)
        if virtual_step_id:
            step = await self.db.get(Step, virtual_step_id)
            if step is not None:
                await self.db.delete(step)
        await self.db.flush()

        logger.info("Block deleted", block_id=block_id, virtual_step_id=virtual_step_id)
        return True
