"""Workflow and Section models."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Workflow(BaseModel):
    """Declarative workflow definition.

    Attributes:
        id: Unique identifier (UUID string)
        project_id: Owning project; unset for unfiled workflows
        creator_id: User who created the workflow
        name: Workflow name
    """

    __tablename__ = "workflows"

    project_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    creator_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)

    sections: Mapped[list["Section"]] = relationship(
        "Section",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class Section(BaseModel):
    """Ordered page of steps inside a workflow.

    Attributes:
        workflow_id: Owning workflow
        title: Section title
        order: Display / navigation order, ascending
    """

    __tablename__ = "sections"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(nullable=False, default="")
    order: Mapped[int] = mapped_column(nullable=False, default=0)

    workflow: Mapped["Workflow"] = relationship(
        "Workflow", back_populates="sections", lazy="noload"
    )
