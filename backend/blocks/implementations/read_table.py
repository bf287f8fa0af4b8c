"""Read table block — read datavault rows into a List Variable.

Filter values may reference run data with ``{{variable}}``. Column ids
used in filters or the sort must be safe identifiers and known columns of
the table; anything else is dropped with a warning and the read still runs.
"""

import structlog

from blocks.base_block import BaseBlockRunner
from blocks.schemas import ReadTableConfig
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType
from core.exceptions import BlockEngineError
from workflow.variables import resolve_filter_values

logger = structlog.get_logger(__name__)


class ReadTableBlockRunner(BaseBlockRunner):
    block_type = BlockType.READ_TABLE.value
    display_name = "Read Table"
    description = "Read rows from a table into a list"

    async def execute(
        self,
        config: ReadTableConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        if not self.should_run(config.run_condition, context):
            return BlockResult(success=True)

        try:
            tenant_id = await self.resolve_tenant(context)
            if not tenant_id:
                return BlockResult(success=False, errors=["Failed to resolve tenantId from workflow"])

            raw_filters = [f.model_dump(by_alias=True) for f in config.filters]
            raw_sort = config.sort.model_dump(by_alias=True) if config.sort else None

            try:
                list_variable = await self.deps.datavault.read_table_list(
                    config.table_id,
                    tenant_id,
                    columns=config.columns,
                    filters=resolve_filter_values(raw_filters, context.data, context.alias_map),
                    sort=raw_sort,
                    limit=config.limit,
                    query_params={
                        "filters": raw_filters,
                        "sort": raw_sort,
                        "limit": config.limit,
                        "selectedColumns": config.columns,
                    },
                )
            except BlockEngineError as e:
                return BlockResult(success=False, errors=[e.message])

        except Exception as e:
            logger.error("Read table block failed", table_id=config.table_id, error=str(e))
            return BlockResult(
                success=False,
                errors=[f"Read table failed: {e}"],
            )

        warnings = await self.persist_virtual_step(context, block, list_variable)
        logger.debug("Read table produced list", table_id=config.table_id, row_count=list_variable["count"])

        return BlockResult(
            success=True,
            data={config.output_key: list_variable},
            errors=warnings,
        )
