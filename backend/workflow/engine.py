"""Workflow Run Engine — drives a run through its lifecycle phases.

A run moves through fixed hook points:

    onRunStart → [onSectionEnter → onSectionSubmit → onNext]* → onRunComplete

where the bracketed group repeats once per visited section. Firing a
phase runs every enabled block of that phase whose scope applies
(workflow-wide blocks always, section blocks only for their section),
in ascending ``order`` and strictly one after another: each block sees
the data written by the blocks before it. Blocks return deltas; the
executor folds them into a new data bag instead of mutating shared state.

Navigation: the first ``next_section_id`` returned by a branch block during
onSectionSubmit or onNext replaces the default "next section in order".
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from blocks.dependencies import build_block_dependencies
from blocks.registry import BlockRegistry
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockPhase, BlockType, ExecutionMode, RunStatus
from core.exceptions import InvalidPhaseTransitionError, NotFoundError
from core.logging_config import bind_run_context, clear_run_context
from core.utils import utc_now
from db.models.run import WorkflowRun
from db.models.step import Step
from services.step_value_service import StepValueService
from services.workflow_service import BlockService, SectionService, StepService, WorkflowService

logger = structlog.get_logger(__name__)


# ─── Phase execution ──────────────────────────────────────────

@dataclass
class BlockOutcome:
    block_id: str
    block_type: str
    result: BlockResult


@dataclass
class PhaseOutcome:
    """Everything a phase firing produced.

    ``data`` is the full bag after the phase; ``delta`` only the keys the
    blocks wrote.
    """

    phase: str
    data: dict[str, Any]
    delta: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    next_section_id: Optional[str] = None
    results: list[BlockOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.result.success for outcome in self.results)

    def failed_blocks(self, block_type: Optional[str] = None) -> list[BlockOutcome]:
        return [
            outcome
            for outcome in self.results
            if not outcome.result.success and (block_type is None or outcome.block_type == block_type)
        ]


def build_idempotency_key(run_id: str, block_id: str, invocation_id: str) -> str:
    """Deterministic token for one block invocation.

    Retrying the same phase invocation yields the same token, which table
    writes and record creation use to skip duplicate inserts.
    """
    raw = f"{run_id}:{block_id}:{invocation_id}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def merge_delta(
    data: Mapping[str, Any],
    delta: Mapping[str, Any],
    alias_map: Optional[Mapping[str, str]] = None,
) -> dict[str, Any]:
    """Return ``data`` shallow-overridden by ``delta``.

    A key that is a step alias is also written under its step id, and a
    step id under its alias, so both views of the bag stay in sync.
    """
    merged = dict(data)
    alias_map = alias_map or {}
    step_to_alias = {step_id: alias for alias, step_id in alias_map.items()}
    for key, value in delta.items():
        merged[key] = value
        if key in alias_map:
            merged[alias_map[key]] = value
        elif key in step_to_alias:
            merged[step_to_alias[key]] = value
    return merged


def block_applies(block: BlockDefinition, phase: str, section_id: Optional[str]) -> bool:
    if not block.enabled or block.phase != phase:
        return False
    return block.section_id is None or block.section_id == section_id


class PhaseExecutor:
    """Run the blocks of one phase as a sequential fold over the data bag."""

    def __init__(self, registry: BlockRegistry):
        self.registry = registry

    async def execute_phase(
        self,
        blocks: Iterable[BlockDefinition],
        context: BlockContext,
        invocation_id: Optional[str] = None,
    ) -> PhaseOutcome:
        """Execute every applicable block of ``context.phase``.

        Args:
            blocks: Candidate blocks; filtered by enabled flag, phase and scope
            context: Phase context; ``context.data`` is the starting bag
            invocation_id: Identifies this phase firing for idempotency keys

        Returns:
            PhaseOutcome with the folded data, collected errors and navigation
        """
        applicable = sorted(
            (b for b in blocks if block_applies(b, context.phase, context.section_id)),
            key=lambda b: b.order,
        )

        outcome = PhaseOutcome(phase=context.phase, data=dict(context.data))

        for block in applicable:
            idempotency_key = None
            if context.run_id and invocation_id:
                idempotency_key = build_idempotency_key(context.run_id, block.id, invocation_id)
            block_context = context.with_data(outcome.data).for_block(idempotency_key)

            result = await self.registry.execute(block, block_context)
            outcome.results.append(BlockOutcome(block.id, block.type, result))

            if result.data:
                outcome.data = merge_delta(outcome.data, result.data, context.alias_map)
                outcome.delta = merge_delta(outcome.delta, result.data, context.alias_map)
            if result.errors:
                outcome.errors.extend(result.errors)
            if result.next_section_id and outcome.next_section_id is None:
                outcome.next_section_id = result.next_section_id

        logger.info(
            "Phase executed",
            phase=context.phase,
            section_id=context.section_id,
            block_count=len(applicable),
            error_count=len(outcome.errors),
            next_section_id=outcome.next_section_id,
        )
        return outcome


# ─── Phase ordering ───────────────────────────────────────────

_TRANSITIONS: dict[Optional[str], frozenset] = {
    None: frozenset({BlockPhase.ON_RUN_START.value}),
    BlockPhase.ON_RUN_START.value: frozenset(
        {BlockPhase.ON_SECTION_ENTER.value, BlockPhase.ON_RUN_COMPLETE.value}
    ),
    BlockPhase.ON_SECTION_ENTER.value: frozenset({BlockPhase.ON_SECTION_SUBMIT.value}),
    # A rejected submit is submitted again
    BlockPhase.ON_SECTION_SUBMIT.value: frozenset(
        {BlockPhase.ON_SECTION_SUBMIT.value, BlockPhase.ON_NEXT.value}
    ),
    BlockPhase.ON_NEXT.value: frozenset(
        {BlockPhase.ON_SECTION_ENTER.value, BlockPhase.ON_RUN_COMPLETE.value}
    ),
    BlockPhase.ON_RUN_COMPLETE.value: frozenset(),
}


class PhaseTracker:
    """Enforce the lifecycle phase order of one run."""

    def __init__(self, last_phase: Optional[str] = None):
        self.last_phase = last_phase

    def can_fire(self, phase: str) -> bool:
        return phase in _TRANSITIONS.get(self.last_phase, frozenset())

    def advance(self, phase: str) -> None:
        """Record ``phase`` as fired.

        Raises:
            InvalidPhaseTransitionError: ``phase`` may not follow the last fired phase
        """
        if not self.can_fire(phase):
            raise InvalidPhaseTransitionError(
                f"Cannot fire {phase} after {self.last_phase or 'run creation'}"
            )
        self.last_phase = phase


# ─── Run engine ───────────────────────────────────────────────

@dataclass
class RunState:
    """Snapshot returned to the caller after each engine call."""

    run_id: str
    workflow_id: str
    status: str
    current_section_id: Optional[str]
    data: dict[str, Any]
    errors: list[str] = field(default_factory=list)
    phases: list[PhaseOutcome] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == RunStatus.COMPLETED.value


class _RunSession:
    """Per-call view of one run: services, alias map and data bag."""

    def __init__(
        self,
        session: AsyncSession,
        run: WorkflowRun,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.run = run
        self.steps = StepService(session)
        self.sections = SectionService(session)
        self.blocks = BlockService(session)
        self.step_values = StepValueService(session)
        self.executor = PhaseExecutor(BlockRegistry(build_block_dependencies(session, transport)))
        self.tracker = PhaseTracker(run.last_phase)
        self.alias_map: dict[str, str] = {}
        self.step_index: dict[str, Step] = {}
        self.data: dict[str, Any] = {}
        self.errors: list[str] = []
        self.phases: list[PhaseOutcome] = []

    async def load(self) -> None:
        steps = await self.steps.find_by_workflow(self.run.workflow_id, include_virtual=True)
        self.step_index = {step.id: step for step in steps}
        self.alias_map = {step.alias: step.id for step in steps if step.alias}

        values = await self.step_values.values_by_step(self.run.id)
        data: dict[str, Any] = dict(self.run.extra_data or {})
        for step_id, value in values.items():
            data[step_id] = value
            step = self.step_index.get(step_id)
            if step is not None and step.alias:
                data[step.alias] = value
        self.data = data

    def resolve_step_id(self, key: str) -> Optional[str]:
        if key in self.step_index:
            return key
        step_id = self.alias_map.get(key)
        return step_id if step_id in self.step_index else None

    async def persist_delta(self, delta: Mapping[str, Any]) -> None:
        """Store answers for real steps; keep other keys on the run.

        Virtual step values are written by their blocks.
        """
        step_updates: dict[str, Any] = {}
        extra = dict(self.run.extra_data or {})
        for key, value in delta.items():
            step_id = self.resolve_step_id(key)
            if step_id is None:
                extra[key] = value
            elif not self.step_index[step_id].is_virtual:
                step_updates[step_id] = value

        for step_id, value in step_updates.items():
            await self.step_values.upsert(self.run.id, step_id, value)
        if extra != (self.run.extra_data or {}):
            self.run.extra_data = extra

    async def fire(self, phase: str, section_id: Optional[str] = None) -> PhaseOutcome:
        self.tracker.advance(phase)
        bind_run_context(self.run.id, self.run.workflow_id, phase)
        try:
            models = await self.blocks.list_for_phase(self.run.workflow_id, phase, section_id)
            context = BlockContext(
                workflow_id=self.run.workflow_id,
                run_id=self.run.id,
                data=self.data,
                phase=phase,
                alias_map=self.alias_map,
                query_params=self.run.query_params or {},
                mode=self.run.mode,
                section_id=section_id,
            )
            visit = len(self.run.visited_section_ids or [])
            invocation_id = f"{phase}:{section_id or '-'}:{visit}:{self.run.submission_count or 0}"
            outcome = await self.executor.execute_phase(
                [BlockDefinition.from_model(m) for m in models],
                context,
                invocation_id=invocation_id,
            )
            await self.persist_delta(outcome.delta)
        finally:
            clear_run_context()

        self.data = outcome.data
        self.errors.extend(outcome.errors)
        self.phases.append(outcome)
        self.run.last_phase = phase
        return outcome

    def state(self) -> RunState:
        return RunState(
            run_id=self.run.id,
            workflow_id=self.run.workflow_id,
            status=self.run.status,
            current_section_id=self.run.current_section_id,
            data=self.data,
            errors=list(self.errors),
            phases=list(self.phases),
        )


class WorkflowEngine:
    """Run-level state machine over the phase executor.

    Every public call opens its own session and commits once the call's
    phases have run; a failing call leaves the run as it was, so the
    caller can retry it wholesale.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._session_factory = session_factory
        self._transport = transport

    async def start_run(
        self,
        workflow_id: str,
        mode: str = ExecutionMode.LIVE.value,
        query_params: Optional[dict[str, Any]] = None,
    ) -> RunState:
        """Create a run, fire onRunStart and enter the first section.

        Raises:
            NotFoundError: Workflow does not exist
        """
        async with self._session_factory() as session:
            workflow = await WorkflowService(session).get_by_id(workflow_id)
            if workflow is None:
                raise NotFoundError(f"Workflow not found: {workflow_id}")

            run = WorkflowRun(
                workflow_id=workflow_id,
                mode=ExecutionMode(mode).value,
                status=RunStatus.IN_PROGRESS.value,
                query_params=dict(query_params or {}),
                visited_section_ids=[],
                extra_data={},
                submission_count=0,
            )
            session.add(run)
            await session.flush()

            logger.info("Run started", run_id=run.id, workflow_id=workflow_id, mode=run.mode)

            rs = _RunSession(session, run, self._transport)
            await rs.load()
            await rs.fire(BlockPhase.ON_RUN_START.value)

            first = await rs.sections.first_section(workflow_id)
            if first is None:
                await self._complete(rs)
            else:
                await self._enter_section(rs, first.id)

            await session.commit()
            return rs.state()

    async def submit_section(self, run_id: str, values: Optional[Mapping[str, Any]] = None) -> RunState:
        """Store answers for the current section and advance.

        ``values`` may be keyed by step id or alias. A failed validate block
        keeps the run on the current section; other block failures are
        reported in ``errors`` without stopping navigation.

        Raises:
            NotFoundError: Unknown run
            InvalidPhaseTransitionError: Run already completed or not on a section
        """
        async with self._session_factory() as session:
            rs = await self._open(session, run_id)
            run = rs.run
            if run.current_section_id is None:
                raise InvalidPhaseTransitionError("Run is not on a section")
            section_id = run.current_section_id

            submitted = {}
            for key, value in (values or {}).items():
                step_id = rs.resolve_step_id(key)
                if step_id is None:
                    logger.warning("Ignoring value for unknown step", run_id=run_id, key=key)
                    continue
                submitted[step_id] = value
            await rs.persist_delta(submitted)
            rs.data = merge_delta(rs.data, submitted, rs.alias_map)

            submit = await rs.fire(BlockPhase.ON_SECTION_SUBMIT.value, section_id)
            if submit.failed_blocks(BlockType.VALIDATE.value):
                logger.info("Section submit rejected by validation", run_id=run_id, section_id=section_id)
                await session.commit()
                return rs.state()

            on_next = await rs.fire(BlockPhase.ON_NEXT.value, section_id)
            target = await self._resolve_target(rs, section_id, submit.next_section_id or on_next.next_section_id)

            if target is None:
                await self._complete(rs)
            else:
                await self._enter_section(rs, target)

            await session.commit()
            return rs.state()

    async def complete_run(self, run_id: str) -> RunState:
        """Fire onRunComplete and mark the run completed.

        Only legal right after onNext, which hosts that drive navigation
        fire through ``fire_phase``. A run that is still on a section
        (last phase onSectionEnter or onSectionSubmit) is rejected.

        Raises:
            NotFoundError: Unknown run
            InvalidPhaseTransitionError: Run already completed, or its last
                phase was onSectionEnter or onSectionSubmit
        """
        async with self._session_factory() as session:
            rs = await self._open(session, run_id)
            await self._complete(rs)
            await session.commit()
            return rs.state()

    async def fire_phase(self, run_id: str, phase: str) -> PhaseOutcome:
        """Fire a single phase for the run's current section.

        Intended for hosts that drive navigation themselves; the phase must
        be a legal successor of the last fired phase.
        """
        async with self._session_factory() as session:
            rs = await self._open(session, run_id)
            outcome = await rs.fire(BlockPhase(phase).value, rs.run.current_section_id)
            await session.commit()
            return outcome

    async def get_run_state(self, run_id: str) -> RunState:
        async with self._session_factory() as session:
            run = await session.get(WorkflowRun, run_id)
            if run is None:
                raise NotFoundError(f"Run not found: {run_id}")
            rs = _RunSession(session, run, self._transport)
            await rs.load()
            return rs.state()

    # ─── Internals ─────────────────────────────────────────

    async def _open(self, session: AsyncSession, run_id: str) -> _RunSession:
        run = await session.get(WorkflowRun, run_id)
        if run is None:
            raise NotFoundError(f"Run not found: {run_id}")
        if run.status == RunStatus.COMPLETED.value:
            raise InvalidPhaseTransitionError(f"Run {run_id} is already completed")
        # rolled back with the call when it fails
        run.submission_count = (run.submission_count or 0) + 1
        rs = _RunSession(session, run, self._transport)
        await rs.load()
        return rs

    async def _enter_section(self, rs: _RunSession, section_id: str) -> None:
        rs.run.current_section_id = section_id
        rs.run.visited_section_ids = [*(rs.run.visited_section_ids or []), section_id]
        await rs.fire(BlockPhase.ON_SECTION_ENTER.value, section_id)

    async def _complete(self, rs: _RunSession) -> None:
        await rs.fire(BlockPhase.ON_RUN_COMPLETE.value)
        rs.run.status = RunStatus.COMPLETED.value
        rs.run.current_section_id = None
        rs.run.completed_at = utc_now()
        logger.info("Run completed", run_id=rs.run.id, workflow_id=rs.run.workflow_id)

    async def _resolve_target(
        self,
        rs: _RunSession,
        section_id: str,
        requested: Optional[str],
    ) -> Optional[str]:
        """Branch target when valid, else the next section in order."""
        if requested:
            sections = await rs.sections.list_by_workflow(rs.run.workflow_id)
            if any(s.id == requested for s in sections):
                return requested
            logger.warning("Branch target is not a section of the workflow", section_id=requested)
            rs.errors.append(f"Unknown section: {requested}")

        following = await rs.sections.next_section(rs.run.workflow_id, section_id)
        return following.id if following else None
