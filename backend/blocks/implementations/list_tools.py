"""List tools block — filter, dedupe, sort, page and project a list."""

from typing import Any

import structlog

from blocks.base_block import BaseBlockRunner
from blocks.schemas import ListToolsConfig
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType
from workflow.list_pipeline import ListVariable, empty_list_variable, normalize_list, transform_list
from workflow.variables import lookup

logger = structlog.get_logger(__name__)

SOURCE = "list_tools"


class ListToolsBlockRunner(BaseBlockRunner):
    """Transform a List Variable (or plain array) from the run data.

    Config:
        sourceListVar: alias or data key of the input list
        filters / dedupe / sort / offset / limit / select: pipeline stages
        outputListVar: key receiving the transformed list
        outputs: {countVar, firstVar} derived scalars
        runCondition: optional guard
    """

    block_type = BlockType.LIST_TOOLS.value
    display_name = "List Tools"
    description = "Filter, sort and slice lists"

    async def execute(
        self,
        config: ListToolsConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        if not self.should_run(config.run_condition, context):
            return BlockResult(success=True)

        input_data = lookup(config.source_list_var, context.data, context.alias_map)

        if not input_data:
            logger.warning(
                "Input list not found, treating as empty",
                source_list_var=config.source_list_var,
            )
            result_list = empty_list_variable(SOURCE)
        else:
            working = normalize_list(input_data, SOURCE)
            if working is None:
                return BlockResult(
                    success=False,
                    errors=[f'Input variable "{config.source_list_var}" is not a valid list or array'],
                )
            result_list = transform_list(
                working,
                self._pipeline_ops(config),
                context.data,
                context.alias_map,
            )
            result_list["metadata"] = {**result_list["metadata"], "source": SOURCE}

        warnings = await self.persist_virtual_step(context, block, result_list)
        return BlockResult(
            success=True,
            data=self._output_data(config, result_list),
            errors=warnings,
        )

    @staticmethod
    def _pipeline_ops(config: ListToolsConfig) -> dict[str, Any]:
        def dump(value):
            if value is None:
                return None
            if isinstance(value, list):
                return [item.model_dump(by_alias=True) for item in value]
            if isinstance(value, str):
                return value
            return value.model_dump(by_alias=True)

        return {
            "filters": dump(config.filters),
            "dedupe": dump(config.dedupe),
            "sort": dump(config.sort),
            "offset": config.offset,
            "limit": config.limit,
            "select": config.select,
        }

    @staticmethod
    def _output_data(config: ListToolsConfig, result_list: ListVariable) -> dict[str, Any]:
        output = {config.output_list_var: result_list}
        if config.outputs and config.outputs.count_var:
            output[config.outputs.count_var] = result_list["count"]
        if config.outputs and config.outputs.first_var:
            output[config.outputs.first_var] = result_list["rows"][0] if result_list["rows"] else None
        return output
