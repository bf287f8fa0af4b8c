"""User model for the workflow block engine."""

from typing import Optional

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class User(BaseModel):
    """Workflow author.

    Only the tenant linkage matters to the engine: an unfiled workflow
    resolves its tenant through its creator.

    Attributes:
        id: Unique identifier (UUID string)
        tenant_id: Owning tenant, may be unset for legacy accounts
        email: Login email
    """

    __tablename__ = "users"

    tenant_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    email: Mapped[str] = mapped_column(nullable=False, unique=True, index=True)

    tenant: Mapped[Optional["Tenant"]] = relationship(
        "Tenant", back_populates="users", lazy="noload"
    )
