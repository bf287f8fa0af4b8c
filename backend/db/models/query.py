"""Named query definitions executed by query blocks."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class WorkflowQuery(BaseModel):
    """Saved read over a datavault table.

    Attributes:
        workflow_id: Workflow the query belongs to
        name: Query name shown in the builder
        table_id: Datavault table to read
        filters: ``[{columnId, operator, value}]``, values may be ``{{var}}``
        sort: ``{columnId, direction}``
        limit: Maximum rows returned
        columns: Column ids to include; all columns when empty
    """

    __tablename__ = "workflow_queries"

    workflow_id: Mapped[str] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)
    table_id: Mapped[str] = mapped_column(
        ForeignKey("datavault_tables.id", ondelete="CASCADE"),
        nullable=False,
    )
    filters: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    sort: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    limit: Mapped[Optional[int]] = mapped_column(nullable=True)
    columns: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
