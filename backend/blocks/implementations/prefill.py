"""Prefill block — seed run data from static values or launch query parameters."""

import structlog

from blocks.base_block import BaseBlockRunner
from blocks.schemas import PrefillConfig
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType

logger = structlog.get_logger(__name__)


class PrefillBlockRunner(BaseBlockRunner):
    """Seed data keys.

    Config:
        mode: "static" | "query"
        staticMap: {key: value} used in static mode
        queryKeys: query parameter names copied in query mode
        overwrite: replace keys that already hold a value (default: false)
    """

    block_type = BlockType.PREFILL.value
    display_name = "Prefill"
    description = "Seed answers from static values or query parameters"

    async def execute(
        self,
        config: PrefillConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        updates = {}

        if config.mode == "static":
            candidates = dict(config.static_map)
        else:
            params = context.query_params or {}
            candidates = {key: params[key] for key in config.query_keys if key in params}

        for key, value in candidates.items():
            if config.overwrite or key not in context.data:
                updates[key] = value

        logger.debug("Prefill resolved", mode=config.mode, keys=sorted(updates))
        return BlockResult(success=True, data=updates)
