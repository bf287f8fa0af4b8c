"""Project model — groups workflows under a tenant."""

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import BaseModel


class Project(BaseModel):
    __tablename__ = "projects"

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)

    tenant: Mapped["Tenant"] = relationship(
        "Tenant", back_populates="projects", lazy="noload"
    )
