"""Query block — run a saved workflow query into a List Variable."""

import structlog

from blocks.base_block import BaseBlockRunner
from blocks.schemas import QueryBlockConfig
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType

logger = structlog.get_logger(__name__)


class QueryBlockRunner(BaseBlockRunner):
    block_type = BlockType.QUERY.value
    display_name = "Query"
    description = "Fetch rows with a saved query"

    async def execute(
        self,
        config: QueryBlockConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        try:
            query = await self.deps.queries.get_by_id(config.query_id)
            if query is None:
                return BlockResult(
                    success=False,
                    errors=[f"Query definition not found: {config.query_id}"],
                )

            tenant_id = await self.resolve_tenant(context)
            if not tenant_id:
                return BlockResult(success=False, errors=["Failed to resolve tenantId from workflow"])

            logger.info(
                "Executing query block",
                workflow_id=context.workflow_id,
                query_id=config.query_id,
                output_var=config.output_variable_name,
            )

            list_variable = await self.deps.query_runner.execute_query(
                query,
                context.data,
                tenant_id,
                context.alias_map,
            )

        except Exception as e:
            logger.error("Error executing query block", query_id=config.query_id, error=str(e))
            return BlockResult(
                success=False,
                errors=[f"Query execution failed: {getattr(e, 'message', None) or e}"],
            )

        warnings = await self.persist_virtual_step(context, block, list_variable)
        return BlockResult(
            success=True,
            data={config.output_variable_name: list_variable},
            errors=warnings,
        )
