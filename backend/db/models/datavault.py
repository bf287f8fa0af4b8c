"""Datavault models — tenant-owned tables with JSON row data."""

from typing import Optional

from sqlalchemy import JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ColumnType
from db.base import BaseModel


class DatavaultTable(BaseModel):
    __tablename__ = "datavault_tables"

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)


class DatavaultColumn(BaseModel):
    """Column definition; its ``id`` is the key used inside row data."""

    __tablename__ = "datavault_columns"

    table_id: Mapped[str] = mapped_column(
        ForeignKey("datavault_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(nullable=False)
    type: Mapped[str] = mapped_column(nullable=False, default=ColumnType.TEXT.value)
    order: Mapped[int] = mapped_column(nullable=False, default=0)


class DatavaultRow(BaseModel):
    """Table row; ``data`` maps column id to cell value.

    ``idempotency_key`` is set for rows created by write blocks so that a
    retried phase does not insert the same row twice.
    """

    __tablename__ = "datavault_rows"

    table_id: Mapped[str] = mapped_column(
        ForeignKey("datavault_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    idempotency_key: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
