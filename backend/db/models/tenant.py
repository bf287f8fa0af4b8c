"""Tenant model — the data isolation boundary."""

from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Tenant(BaseModel):
    """Tenant owning projects, users and all datavault data.

    Attributes:
        id: Unique identifier (UUID string)
        name: Tenant display name
    """

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(nullable=False)

    users: Mapped[list["User"]] = relationship(
        "User", back_populates="tenant", lazy="noload"
    )
    projects: Mapped[list["Project"]] = relationship(
        "Project", back_populates="tenant", lazy="noload"
    )
