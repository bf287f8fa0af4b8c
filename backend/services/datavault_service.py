"""Datavault tables — tenant-owned tables with JSON row data.

Every method takes an already resolved ``tenant_id``. Table access is
checked with ``verify_tenant_ownership`` before any row is read or written.
"""

from typing import Any, Iterable, Mapping, Optional, Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from core.exceptions import ForbiddenError, NotFoundError
from db.models.datavault import DatavaultColumn, DatavaultRow, DatavaultTable
from services.base import BaseService
from services.json_filters import build_filter_clause, build_sort_clause, is_safe_identifier
from workflow.list_pipeline import ListVariable

logger = structlog.get_logger(__name__)


class DatavaultService(BaseService[DatavaultTable]):
    """Table, column and row access for one session."""

    def __init__(self, db: AsyncSession):
        super().__init__(DatavaultTable, db)

    # ─── Tables & columns ──────────────────────────────────

    async def verify_tenant_ownership(self, table_id: str, tenant_id: str) -> DatavaultTable:
        """Return the table or raise when it is missing or foreign.

        Raises:
            NotFoundError: Table does not exist
            ForbiddenError: Table belongs to another tenant
        """
        table = await self.get_by_id(table_id)
        if table is None:
            raise NotFoundError(f"Table not found: {table_id}")
        if table.tenant_id != tenant_id:
            logger.warning(
                "Cross-tenant table access blocked",
                table_id=table_id,
                tenant_id=tenant_id,
            )
            raise ForbiddenError("Access denied - table belongs to different tenant")
        return table

    async def list_columns(self, table_id: str) -> Sequence[DatavaultColumn]:
        result = await self.db.execute(
            select(DatavaultColumn)
            .where(DatavaultColumn.table_id == table_id)
            .order_by(DatavaultColumn.order.asc(), DatavaultColumn.created_at.asc())
        )
        return result.scalars().all()

    async def create_table(
        self,
        tenant_id: str,
        name: str,
        columns: Iterable[Mapping[str, Any]] = (),
    ) -> DatavaultTable:
        """Create a table with ``columns`` given as ``{id?, name, type}``."""
        table = await self.create({"tenant_id": tenant_id, "name": name})
        for order, column in enumerate(columns):
            data = {
                "table_id": table.id,
                "name": column["name"],
                "type": column.get("type", "text"),
                "order": order,
            }
            if column.get("id"):
                data["id"] = column["id"]
            self.db.add(DatavaultColumn(**data))
        await self.db.flush()
        return table

    # ─── Rows: read ────────────────────────────────────────

    async def query_rows(
        self,
        table_id: str,
        tenant_id: str,
        filters: Optional[Iterable[Mapping[str, Any]]] = None,
        sort: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        columns: Optional[Sequence[DatavaultColumn]] = None,
    ) -> Sequence[DatavaultRow]:
        """Filtered, sorted and limited rows of a table.

        ``filters`` are ``{columnId, operator, value}`` with values already
        resolved. Filters or a sort naming an unsafe identifier or an unknown
        column are dropped with a warning; the query still runs without them.
        """
        settings = get_settings()
        if columns is None:
            columns = await self.list_columns(table_id)
        column_types = {c.id: c.type for c in columns}

        query = select(DatavaultRow).where(
            DatavaultRow.table_id == table_id,
            DatavaultRow.tenant_id == tenant_id,
        )

        for f in filters or []:
            column_id = f.get("columnId")
            if not is_safe_identifier(column_id):
                logger.warning(
                    "Invalid columnId detected - skipping filter",
                    column_id=str(column_id)[:64],
                    table_id=table_id,
                )
                continue
            if column_id not in column_types:
                logger.warning("Filter references unknown column", column_id=column_id, table_id=table_id)
                continue
            clause = build_filter_clause(
                DatavaultRow.data,
                column_id,
                f.get("operator") or "equals",
                f.get("value"),
                column_types[column_id],
            )
            if clause is not None:
                query = query.where(clause)

        if sort and sort.get("columnId") in column_types:
            order = build_sort_clause(
                DatavaultRow.data,
                sort["columnId"],
                sort.get("direction") or "asc",
                column_types[sort["columnId"]],
            )
            if order is not None:
                query = query.order_by(order)
        elif sort:
            logger.warning("Sort references unknown column", column_id=str(sort.get("columnId"))[:64])
        query = query.order_by(DatavaultRow.created_at.asc())

        effective_limit = limit or settings.READ_TABLE_DEFAULT_LIMIT
        effective_limit = min(effective_limit, settings.READ_TABLE_MAX_LIMIT)
        query = query.offset(max(offset, 0)).limit(effective_limit)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def read_table_list(
        self,
        table_id: str,
        tenant_id: str,
        columns: Optional[Sequence[str]] = None,
        filters: Optional[list[dict[str, Any]]] = None,
        sort: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        source: str = "read_table",
        source_id: Optional[str] = None,
        query_params: Optional[dict[str, Any]] = None,
    ) -> ListVariable:
        """Read a table into a List Variable.

        Rows carry ``id`` plus one key per selected column; cells missing
        from a row's data are ``None``.
        """
        table = await self.verify_tenant_ownership(table_id, tenant_id)
        all_columns = await self.list_columns(table_id)

        output_columns = list(all_columns)
        if columns:
            selected = set(columns)
            output_columns = [c for c in all_columns if c.id in selected]

        rows = await self.query_rows(
            table_id,
            tenant_id,
            filters=filters,
            sort=sort,
            limit=limit,
            columns=all_columns,
        )

        metadata: dict[str, Any] = {
            "source": source,
            "sourceId": source_id or table_id,
            "tableName": table.name,
            "queryParams": query_params
            if query_params is not None
            else {
                "filters": filters,
                "sort": sort,
                "limit": limit,
                "selectedColumns": list(columns) if columns else None,
            },
        }
        if filters:
            metadata["filteredBy"] = [f.get("columnId") for f in filters]
        if sort:
            metadata["sortedBy"] = sort

        list_rows = []
        for row in rows:
            data = row.data or {}
            item: dict[str, Any] = {"id": row.id}
            for column in output_columns:
                item[column.id] = data.get(column.id)
            list_rows.append(item)

        return {
            "metadata": metadata,
            "rows": list_rows,
            "count": len(list_rows),
            "columns": [{"id": c.id, "name": c.name, "type": c.type} for c in output_columns],
        }

    async def find_row_by_column_value(
        self,
        table_id: str,
        column_id: str,
        value: Any,
        tenant_id: str,
    ) -> Optional[DatavaultRow]:
        """First row whose ``column_id`` cell equals ``value`` (text comparison)."""
        columns = await self.list_columns(table_id)
        column_types = {c.id: c.type for c in columns}
        clause = build_filter_clause(
            DatavaultRow.data,
            column_id,
            "equals",
            value,
            column_types.get(column_id, "text"),
        )
        if clause is None:
            return None

        result = await self.db.execute(
            select(DatavaultRow)
            .where(
                DatavaultRow.table_id == table_id,
                DatavaultRow.tenant_id == tenant_id,
                clause,
            )
            .order_by(DatavaultRow.created_at.asc())
            .limit(1)
        )
        return result.scalars().first()

    async def find_row_by_idempotency_key(
        self,
        table_id: str,
        tenant_id: str,
        idempotency_key: str,
    ) -> Optional[DatavaultRow]:
        result = await self.db.execute(
            select(DatavaultRow).where(
                DatavaultRow.table_id == table_id,
                DatavaultRow.tenant_id == tenant_id,
                DatavaultRow.idempotency_key == idempotency_key,
            )
        )
        return result.scalars().first()

    async def count_rows(self, table_id: str, tenant_id: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(DatavaultRow).where(
                DatavaultRow.table_id == table_id,
                DatavaultRow.tenant_id == tenant_id,
            )
        )
        return result.scalar() or 0

    # ─── Rows: write ───────────────────────────────────────

    async def create_row(
        self,
        table_id: str,
        tenant_id: str,
        values: Mapping[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> DatavaultRow:
        """Insert a row, or return the row already created for ``idempotency_key``."""
        if idempotency_key:
            existing = await self.find_row_by_idempotency_key(table_id, tenant_id, idempotency_key)
            if existing is not None:
                logger.info(
                    "Row already written for idempotency key",
                    table_id=table_id,
                    row_id=existing.id,
                )
                return existing

        row = DatavaultRow(
            table_id=table_id,
            tenant_id=tenant_id,
            data=dict(values),
            idempotency_key=idempotency_key,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def update_row_values(
        self,
        row_id: str,
        tenant_id: str,
        values: Mapping[str, Any],
    ) -> DatavaultRow:
        """Merge ``values`` into a row's data."""
        result = await self.db.execute(
            select(DatavaultRow).where(
                DatavaultRow.id == row_id,
                DatavaultRow.tenant_id == tenant_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Row not found: {row_id}")

        # Reassign so the JSON column is flagged dirty
        row.data = {**(row.data or {}), **dict(values)}
        await self.db.flush()
        return row
