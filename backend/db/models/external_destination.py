"""External destination model — where external_send blocks deliver payloads."""

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class ExternalDestination(BaseModel):
    """Tenant-owned webhook target.

    Attributes:
        tenant_id: Owning tenant
        name: Display name
        type: Destination kind, currently ``webhook``
        config: ``{url, method, headers}``
    """

    __tablename__ = "external_destinations"

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)
    type: Mapped[str] = mapped_column(nullable=False, default="webhook")
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
