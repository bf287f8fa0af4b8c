"""Virtual steps — synthetic steps that hold block output.

Output blocks (query, read_table, list_tools, write) get a hidden
``computed`` step whose alias is the block's output key. Persisting the
block's result as that step's value lets later phases, and anything that
reads run answers, see it like a regular answer.
"""

from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import OUTPUT_BLOCK_TYPES, VIRTUAL_STEP_TYPE, BlockType
from db.models.block import Block
from db.models.step import Step
from services.step_value_service import StepValueService
from services.workflow_service import SectionService

logger = structlog.get_logger(__name__)


def output_key_for(block_type: str, config: dict[str, Any]) -> Optional[str]:
    """The data key an output block writes its main result under."""
    config = config or {}
    if block_type == BlockType.QUERY.value:
        return config.get("outputVariableName")
    if block_type == BlockType.LIST_TOOLS.value:
        return config.get("outputListVar")
    if block_type in (BlockType.READ_TABLE.value, BlockType.WRITE.value):
        return config.get("outputKey")
    return None


class VirtualStepService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.step_values = StepValueService(db)
        self.sections = SectionService(db)

    async def ensure_virtual_step(self, block: Block) -> Optional[Step]:
        """Create (or re-alias) the virtual step of an output block.

        The step lives in the block's section, or in the workflow's first
        section for workflow-scoped blocks. Returns ``None`` for block types
        without output or when the workflow has no section to attach to.
        """
        if block.type not in OUTPUT_BLOCK_TYPES:
            return None

        alias = output_key_for(block.type, block.config)

        if block.virtual_step_id:
            step = await self.db.get(Step, block.virtual_step_id)
            if step is not None:
                if alias and step.alias != alias:
                    step.alias = alias
                    await self.db.flush()
                return step

        section_id = block.section_id
        if section_id is None:
            first = await self.sections.first_section(block.workflow_id)
            if first is None:
                logger.warning("No section to attach virtual step to", block_id=block.id)
                return None
            section_id = first.id

        step = Step(
            section_id=section_id,
            type=VIRTUAL_STEP_TYPE,
            title=f"Output of {block.type} block",
            alias=alias,
            order=-1,
            required=False,
            is_virtual=True,
        )
        self.db.add(step)
        await self.db.flush()

        block.virtual_step_id = step.id
        await self.db.flush()

        logger.info(
            "Virtual step created",
            block_id=block.id,
            step_id=step.id,
            alias=alias,
        )
        return step

    async def persist(self, run_id: str, virtual_step_id: str, value: Any) -> None:
        await self.step_values.upsert(run_id, virtual_step_id, value)
