"""Value types passed between the phase executor and block runners."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from core.constants import ExecutionMode


@dataclass(frozen=True)
class BlockDefinition:
    """Read-only view of a persisted block."""

    id: str
    type: str
    phase: str
    config: Dict[str, Any] = field(default_factory=dict)
    section_id: Optional[str] = None
    enabled: bool = True
    order: int = 0
    virtual_step_id: Optional[str] = None
    workflow_id: Optional[str] = None

    @classmethod
    def from_model(cls, block) -> "BlockDefinition":
        return cls(
            id=block.id,
            type=block.type,
            phase=block.phase,
            config=dict(block.config or {}),
            section_id=block.section_id,
            enabled=bool(block.enabled),
            order=block.order or 0,
            virtual_step_id=block.virtual_step_id,
            workflow_id=block.workflow_id,
        )


@dataclass(frozen=True)
class BlockContext:
    """Input to one block invocation.

    ``data`` is the run's data bag as of this block: step values keyed by
    step id, plus alias keys. Runners never mutate it; they return a delta.
    """

    workflow_id: str
    run_id: Optional[str]
    data: Mapping[str, Any]
    phase: str
    alias_map: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, Any] = field(default_factory=dict)
    mode: str = ExecutionMode.LIVE.value
    section_id: Optional[str] = None
    idempotency_key: Optional[str] = None

    @property
    def is_preview(self) -> bool:
        return self.mode == ExecutionMode.PREVIEW.value

    def with_data(self, data: Mapping[str, Any]) -> "BlockContext":
        return replace(self, data=data)

    def for_block(self, idempotency_key: Optional[str]) -> "BlockContext":
        return replace(self, idempotency_key=idempotency_key)


@dataclass
class BlockResult:
    """Standardized result from a block runner.

    ``data`` is a delta merged into the run data by key; ``next_section_id``
    is only set by branch blocks.
    """

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    next_section_id: Optional[str] = None
    duration_ms: float = 0

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.data:
            result["data"] = self.data
        if self.errors:
            result["errors"] = self.errors
        if self.next_section_id is not None:
            result["nextSectionId"] = self.next_section_id
        result["durationMs"] = round(self.duration_ms, 2)
        return result
