"""Workflow run and step value models."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ExecutionMode, RunStatus
from db.base import BaseModel


class WorkflowRun(BaseModel):
    """One end-to-end execution of a workflow.

    Attributes:
        workflow_id: Workflow being run
        mode: ``live`` or ``preview``
        status: ``in_progress`` or ``completed``
        current_section_id: Section the participant is on
        last_phase: Most recently fired lifecycle phase
        query_params: Launch query parameters (used by prefill blocks)
        visited_section_ids: Sections entered so far, in order
        extra_data: Run data keys that do not belong to any step
        submission_count: Committed engine calls on an open run; part of the
            idempotency key so a resubmit after rejection writes again
        completed_at: Completion timestamp
    """

    __tablename__ = "workflow_runs"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    mode: Mapped[str] = mapped_column(default=ExecutionMode.LIVE.value)
    status: Mapped[str] = mapped_column(default=RunStatus.IN_PROGRESS.value, index=True)
    current_section_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("sections.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_phase: Mapped[Optional[str]] = mapped_column(nullable=True)
    query_params: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    visited_section_ids: Mapped[list] = mapped_column(JSON, default=list)
    extra_data: Mapped[dict] = mapped_column(JSON, default=dict)
    submission_count: Mapped[int] = mapped_column(nullable=False, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class StepValue(BaseModel):
    """Answer (or virtual block output) for one step in one run."""

    __tablename__ = "step_values"
    __table_args__ = (UniqueConstraint("run_id", "step_id", name="uq_step_values_run_step"),)

    run_id: Mapped[str] = mapped_column(
        ForeignKey("workflow_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_id: Mapped[str] = mapped_column(
        ForeignKey("steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
