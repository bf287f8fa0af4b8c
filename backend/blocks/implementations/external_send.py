"""External send block — post mapped answers to a tenant destination."""

import structlog

from blocks.base_block import BaseBlockRunner
from blocks.schemas import ExternalSendBlockConfig
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType

logger = structlog.get_logger(__name__)


class ExternalSendBlockRunner(BaseBlockRunner):
    block_type = BlockType.EXTERNAL_SEND.value
    display_name = "External Send"
    description = "Send answers to an external webhook"

    async def execute(
        self,
        config: ExternalSendBlockConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        if not self.should_run(config.run_condition, context):
            return BlockResult(success=True)

        tenant_id = await self.resolve_tenant(context)
        if not tenant_id:
            return BlockResult(success=False, errors=["Failed to resolve tenantId from workflow"])

        result = await self.deps.external_send.execute(
            config,
            context.data,
            tenant_id,
            alias_map=context.alias_map,
            mode=context.mode,
        )

        data = {}
        if result.response_body is not None and result.response_body != "":
            data[config.destination_id] = result.response_body

        return BlockResult(
            success=result.success,
            data=data,
            errors=[result.error] if result.error else [],
        )
