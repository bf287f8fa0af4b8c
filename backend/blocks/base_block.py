"""
Base runner interface for all block types.

Every block type (prefill, validate, read_table, write, etc.) inherits
from BaseBlockRunner and implements execute(). Runners never raise past
run(): configuration, data and service errors all come back as a failed
BlockResult so one bad block cannot abort a phase.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog

from blocks.dependencies import BlockDependencies
from blocks.schemas import BlockConfig, Condition, parse_block_config
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.exceptions import ValidationError
from core.utils import redact
from workflow import conditions

logger = structlog.get_logger(__name__)


class BaseBlockRunner(ABC):
    """
    Abstract base class for all block runners.

    Subclasses must implement:
    - execute(config, context, block) -> BlockResult
    - block_type (class attribute)

    ``handles`` lists the block type tags dispatched to the runner; it
    defaults to ``(block_type,)``.
    """

    block_type: str = "base"
    handles: tuple[str, ...] = ()
    display_name: str = "Base Block"
    description: str = "Abstract base block"

    def __init__(self, deps: BlockDependencies):
        self.deps = deps

    def get_block_type(self) -> str:
        return self.block_type

    @classmethod
    def handled_types(cls) -> tuple[str, ...]:
        return cls.handles or (cls.block_type,)

    @abstractmethod
    async def execute(
        self,
        config: BlockConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        """
        Execute the block.

        Args:
            config: Validated config model for ``block.type``
            context: Run data, alias map, mode and phase for this invocation
            block: The block being executed

        Returns:
            BlockResult with a data delta, errors or a navigation target
        """

    async def run(
        self,
        raw_config: Optional[dict[str, Any]],
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        """
        Validate config and run the block with timing and error handling.

        This is the entry point called by the registry.
        """
        start = time.monotonic()
        log = logger.bind(block_id=block.id, block_type=block.type, phase=context.phase)

        try:
            config = parse_block_config(block.type, raw_config)
        except ValidationError as e:
            log.warning("Block config rejected", errors=e.errors)
            return BlockResult(
                success=False,
                errors=[e.message],
                duration_ms=(time.monotonic() - start) * 1000,
            )

        try:
            log.debug("Block starting", config=redact(config.model_dump(by_alias=True)))
            result = await self.execute(config, context, block)
            result.duration_ms = (time.monotonic() - start) * 1000

            log.info(
                "Block completed",
                success=result.success,
                error_count=len(result.errors),
                duration_ms=round(result.duration_ms, 2),
            )
            return result

        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            log.error(
                "Block failed",
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            return BlockResult(
                success=False,
                errors=[f"{self.display_name} failed: {getattr(e, 'message', None) or e}"],
                duration_ms=duration_ms,
            )

    # ─── Shared helpers ───────────────────────────────────

    @staticmethod
    def evaluate_condition(condition: Any, data) -> bool:
        return conditions.evaluate_condition(condition, data)

    @staticmethod
    def evaluate_assertion(assertion: Any, data) -> bool:
        return conditions.evaluate_assertion(assertion, data)

    @staticmethod
    def get_value_by_path(data: Any, path: str) -> Any:
        return conditions.get_value_by_path(data, path)

    @staticmethod
    def set_value_by_path(obj: dict, path: str, value: Any) -> None:
        conditions.set_value_by_path(obj, path, value)

    @staticmethod
    def redact(data: Any) -> Any:
        return redact(data)

    def should_run(self, run_condition: Optional[Condition], context: BlockContext) -> bool:
        """``False`` when a configured ``runCondition`` does not hold."""
        if run_condition is None:
            return True
        if self.evaluate_condition(run_condition, context.data):
            return True
        logger.info(
            "Skipping block due to condition",
            block_type=self.block_type,
            phase=context.phase,
        )
        return False

    async def resolve_tenant(self, context: BlockContext) -> Optional[str]:
        return await self.deps.tenant_resolver.resolve_tenant(context.workflow_id)

    async def persist_virtual_step(
        self,
        context: BlockContext,
        block: BlockDefinition,
        value: Any,
    ) -> list[str]:
        """Store ``value`` as the block's virtual step answer.

        Returns a list with one warning when persistence fails; the block's
        own outcome is left untouched.
        """
        if not context.run_id or not block.virtual_step_id:
            return []
        try:
            await self.deps.step_values.upsert(context.run_id, block.virtual_step_id, value)
        except Exception as e:
            logger.error(
                "Failed to persist block output",
                block_id=block.id,
                virtual_step_id=block.virtual_step_id,
                error=str(e),
            )
            return [f"Warning: Failed to persist output to virtual step: {e}"]

        logger.debug(
            "Persisted block output",
            block_id=block.id,
            virtual_step_id=block.virtual_step_id,
        )
        return []
