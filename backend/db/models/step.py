"""Step model — one question, or a virtual holder for block output."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Step(BaseModel):
    """User-facing question inside a section.

    Virtual steps (``is_virtual=True``, type ``computed``) are synthetic
    steps created to hold a block's computed output. They are excluded
    from step listings unless explicitly requested.

    Attributes:
        section_id: Owning section
        type: Question type, ``computed`` for virtual steps
        title: Display title
        alias: Human-readable variable name usable in block configs
        order: Display order, ascending; virtual steps use -1
        required: Whether the answer is mandatory
        is_virtual: Synthetic step holding block output
    """

    __tablename__ = "steps"

    section_id: Mapped[str] = mapped_column(
        ForeignKey("sections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(nullable=False, default="text")
    title: Mapped[str] = mapped_column(nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(nullable=True)
    alias: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
    order: Mapped[int] = mapped_column(nullable=False, default=0)
    required: Mapped[bool] = mapped_column(default=False)
    is_virtual: Mapped[bool] = mapped_column(default=False, index=True)
