"""Branch block — pick the next section; first matching case wins."""

from blocks.base_block import BaseBlockRunner
from blocks.schemas import BranchConfig
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType


class BranchBlockRunner(BaseBlockRunner):
    block_type = BlockType.BRANCH.value
    display_name = "Branch"
    description = "Route to a section based on answers"

    async def execute(
        self,
        config: BranchConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        for case in config.branches:
            if self.evaluate_condition(case.when, context.data):
                return BlockResult(success=True, next_section_id=case.goto_section_id)

        return BlockResult(success=True, next_section_id=config.fallback_section_id)
