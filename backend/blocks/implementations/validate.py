"""Validate block — check assertions against run data and report every failure."""

from blocks.base_block import BaseBlockRunner
from blocks.schemas import ValidateConfig, ValidateRule
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType


def _default_message(rule: ValidateRule) -> str:
    assertion = rule.assertion
    if assertion.value is None:
        return f"Validation failed: {assertion.key} {assertion.op}"
    return f"Validation failed: {assertion.key} {assertion.op} {assertion.value}"


class ValidateBlockRunner(BaseBlockRunner):
    """Evaluate all rules; one error per failed rule."""

    block_type = BlockType.VALIDATE.value
    display_name = "Validate"
    description = "Assert conditions on submitted answers"

    async def execute(
        self,
        config: ValidateConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        errors = []
        for rule in config.rules:
            if rule.when is not None and not self.evaluate_condition(rule.when, context.data):
                continue
            if not self.evaluate_assertion(rule.assertion, context.data):
                errors.append(rule.message or _default_message(rule))

        return BlockResult(success=not errors, errors=errors)
