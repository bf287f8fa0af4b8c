"""
Block Runner Registry — maps block type tags to runner implementations.

The tag → runner map is static and checked against ``BlockType`` when
this module is imported, so a block type without a runner (or a runner
for an unknown tag) fails at startup instead of at run time.
"""

from typing import Dict, Optional, Type

import structlog

from blocks.base_block import BaseBlockRunner
from blocks.dependencies import BlockDependencies
from blocks.implementations.branch import BranchBlockRunner
from blocks.implementations.collection import CollectionBlockRunner
from blocks.implementations.external_send import ExternalSendBlockRunner
from blocks.implementations.list_tools import ListToolsBlockRunner
from blocks.implementations.prefill import PrefillBlockRunner
from blocks.implementations.query import QueryBlockRunner
from blocks.implementations.read_table import ReadTableBlockRunner
from blocks.implementations.validate import ValidateBlockRunner
from blocks.implementations.write import WriteBlockRunner
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType

logger = structlog.get_logger(__name__)

RUNNER_CLASSES: tuple[Type[BaseBlockRunner], ...] = (
    PrefillBlockRunner,
    ValidateBlockRunner,
    BranchBlockRunner,
    CollectionBlockRunner,
    QueryBlockRunner,
    ReadTableBlockRunner,
    ListToolsBlockRunner,
    WriteBlockRunner,
    ExternalSendBlockRunner,
)


def build_runner_map(classes=RUNNER_CLASSES) -> Dict[str, Type[BaseBlockRunner]]:
    """Map every handled tag to its runner class.

    Raises:
        RuntimeError: A tag is claimed twice, is not a BlockType, or has no runner
    """
    runner_map: Dict[str, Type[BaseBlockRunner]] = {}
    for runner_class in classes:
        for tag in runner_class.handled_types():
            if tag in runner_map:
                raise RuntimeError(f"Block type {tag!r} registered twice")
            runner_map[tag] = runner_class

    known = {t.value for t in BlockType}
    unknown = set(runner_map) - known
    if unknown:
        raise RuntimeError(f"Runners registered for unknown block types: {sorted(unknown)}")
    missing = known - set(runner_map)
    if missing:
        raise RuntimeError(f"No runner registered for block types: {sorted(missing)}")
    return runner_map


BLOCK_RUNNERS: Dict[str, Type[BaseBlockRunner]] = build_runner_map()


class BlockRegistry:
    """Runner instances bound to one set of dependencies (one session)."""

    def __init__(self, deps: BlockDependencies):
        self.deps = deps
        self._instances: Dict[Type[BaseBlockRunner], BaseBlockRunner] = {}
        self._runners: Dict[str, BaseBlockRunner] = {}
        for tag, runner_class in BLOCK_RUNNERS.items():
            if runner_class not in self._instances:
                self._instances[runner_class] = runner_class(deps)
            self._runners[tag] = self._instances[runner_class]

    def get(self, block_type: str) -> Optional[BaseBlockRunner]:
        return self._runners.get(block_type)

    async def execute(self, block: BlockDefinition, context: BlockContext) -> BlockResult:
        """Dispatch ``block`` to its runner; unknown types fail softly."""
        runner = self.get(block.type)
        if runner is None:
            logger.warning("Unknown block type", block_id=block.id, block_type=block.type)
            return BlockResult(success=False, errors=[f"Unknown block type: {block.type}"])
        return await runner.run(block.config, context, block)

    def list_all(self) -> list:
        """List all registered block types with metadata."""
        return [
            {
                "block_type": tag,
                "runner": runner.get_block_type(),
                "display_name": runner.display_name,
                "description": runner.description,
            }
            for tag, runner in self._runners.items()
        ]

    @property
    def available_types(self) -> list:
        return list(self._runners.keys())
