"""Write block — create, update or upsert a datavault row."""

import structlog

from blocks.base_block import BaseBlockRunner
from blocks.schemas import WriteBlockConfig
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType

logger = structlog.get_logger(__name__)


class WriteBlockRunner(BaseBlockRunner):
    """Write mapped answers into a table.

    Preview runs resolve everything and return a simulated row id, but
    neither rows nor the virtual step are written.
    """

    block_type = BlockType.WRITE.value
    display_name = "Write"
    description = "Write answers to a table row"

    async def execute(
        self,
        config: WriteBlockConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        if not self.should_run(config.run_condition, context):
            return BlockResult(success=True)

        tenant_id = await self.resolve_tenant(context)
        if not tenant_id:
            return BlockResult(success=False, errors=["Tenant ID resolution failed"])

        result = await self.deps.write_runner.execute_write(
            config,
            context.data,
            tenant_id,
            alias_map=context.alias_map,
            is_preview=context.is_preview,
            idempotency_key=context.idempotency_key,
        )

        if not result.success:
            return BlockResult(success=False, errors=[result.error or "Write operation failed"])

        updates = {}
        if config.output_key and result.row_id:
            updates[config.output_key] = result.row_id

        warnings = []
        if result.row_id and not result.simulated:
            warnings = await self.persist_virtual_step(
                context,
                block,
                {
                    "rowId": result.row_id,
                    "tableId": result.table_id,
                    "operation": result.operation,
                    "writtenData": result.written_data,
                },
            )

        return BlockResult(success=True, data=updates, errors=warnings)
