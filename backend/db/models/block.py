"""Block model — typed unit of logic attached to a lifecycle phase."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Block(BaseModel):
    """Block attached to a workflow phase.

    Attributes:
        workflow_id: Owning workflow
        section_id: Scoping section; ``None`` for workflow-wide blocks
        type: Block type tag (see ``core.constants.BlockType``)
        phase: Lifecycle phase (see ``core.constants.BlockPhase``)
        enabled: Disabled blocks never run
        order: Execution order within a phase, ascending
        config: Type-specific JSON config as edited by the builder
        virtual_step_id: Step persisting this block's output
    """

    __tablename__ = "blocks"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    section_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("sections.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False, default="")
    type: Mapped[str] = mapped_column(nullable=False, index=True)
    phase: Mapped[str] = mapped_column(nullable=False, index=True)
    enabled: Mapped[bool] = mapped_column(default=True)
    order: Mapped[int] = mapped_column(nullable=False, default=0)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    virtual_step_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("steps.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
