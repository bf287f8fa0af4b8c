"""Table writes for write blocks: create, update and upsert.

Column mappings are resolved against the run data before the preview
check, so preview runs validate the same logic a live run would execute
but never touch stored rows.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from blocks.schemas import ColumnMapping, WriteBlockConfig
from core.constants import WriteMode
from core.exceptions import ValidationError
from core.utils import redact
from services.datavault_service import DatavaultService
from workflow.variables import lookup, strip_braces

logger = structlog.get_logger(__name__)

PREVIEW_ROW_ID = "preview-simulated-id"


@dataclass
class WriteResult:
    """Outcome of one table write."""

    success: bool
    table_id: str
    operation: str
    row_id: Optional[str] = None
    written_column_ids: list[str] = field(default_factory=list)
    written_data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    simulated: bool = False


def resolve_single_value(
    expression: Any,
    data: Mapping[str, Any],
    alias_map: Optional[Mapping[str, str]] = None,
) -> Any:
    """Resolve a mapping value.

    ``{{path}}`` and bare paths are looked up in ``data``. An unresolved
    ``{{ }}`` reference becomes ``None``; any other unresolved string is
    taken as a literal.
    """
    if expression is None or expression == "":
        return None
    if not isinstance(expression, str):
        return expression

    value = lookup(strip_braces(expression), data, alias_map)
    if value is not None:
        return value
    if "{{" in expression:
        return None
    return expression


class WriteRunner:
    """Execute a write block's table operation for a resolved tenant."""

    def __init__(self, db: AsyncSession, datavault: Optional[DatavaultService] = None):
        self.db = db
        self.datavault = datavault or DatavaultService(db)

    def resolve_values(
        self,
        mappings: list[ColumnMapping],
        data: Mapping[str, Any],
        alias_map: Optional[Mapping[str, str]] = None,
    ) -> dict[str, Any]:
        return {m.column_id: resolve_single_value(m.value, data, alias_map) for m in mappings}

    def resolve_match(
        self,
        config: WriteBlockConfig,
        data: Mapping[str, Any],
        alias_map: Optional[Mapping[str, str]] = None,
    ) -> tuple[Optional[str], Any]:
        """Return ``(match_column_id, match_value)`` for update and upsert modes.

        Raises:
            ValidationError: No usable match strategy, or a null match value in update mode
        """
        if config.mode == WriteMode.CREATE.value:
            return None, None

        if config.match_strategy is not None:
            strategy = config.match_strategy
            if not strategy.column_id:
                raise ValidationError(f"Match strategy {strategy.type} requires columnId")
            column_id = strategy.column_id
            value = resolve_single_value(strategy.column_value, data, alias_map)
        elif config.primary_key_column_id and config.primary_key_value:
            column_id = config.primary_key_column_id
            value = resolve_single_value(config.primary_key_value, data, alias_map)
        else:
            raise ValidationError(
                f"{config.mode} mode requires matchStrategy or primaryKeyColumnId/primaryKeyValue"
            )

        if value is None and config.mode == WriteMode.UPDATE.value:
            raise ValidationError("Match value is null/undefined for update mode")
        return column_id, value

    async def execute_write(
        self,
        config: WriteBlockConfig,
        data: Mapping[str, Any],
        tenant_id: str,
        alias_map: Optional[Mapping[str, str]] = None,
        is_preview: bool = False,
        idempotency_key: Optional[str] = None,
    ) -> WriteResult:
        logger.info(
            "Starting write execution",
            mode=config.mode,
            table_id=config.table_id,
            preview=is_preview,
        )

        try:
            values = self.resolve_values(config.column_mappings, data, alias_map)
            match_column_id, match_value = self.resolve_match(config, data, alias_map)

            # Ownership is checked in preview too so misconfigured blocks surface early
            await self.datavault.verify_tenant_ownership(config.table_id, tenant_id)

            if is_preview:
                logger.info(
                    "Simulating write in preview mode",
                    table_id=config.table_id,
                    values=redact(values),
                    match_column_id=match_column_id,
                )
                return WriteResult(
                    success=True,
                    table_id=config.table_id,
                    operation=config.mode,
                    row_id=PREVIEW_ROW_ID,
                    written_column_ids=list(values),
                    written_data=values,
                    simulated=True,
                )

            if not get_settings().WRITE_IDEMPOTENCY_ENABLED:
                idempotency_key = None

            if config.mode == WriteMode.CREATE.value:
                row = await self.datavault.create_row(config.table_id, tenant_id, values, idempotency_key)
                row_id, operation = row.id, WriteMode.CREATE.value
            elif config.mode == WriteMode.UPDATE.value:
                row_id = await self._update(config.table_id, match_column_id, match_value, values, tenant_id)
                operation = WriteMode.UPDATE.value
            else:
                row_id, operation = await self._upsert(
                    config.table_id, match_column_id, match_value, values, tenant_id, idempotency_key
                )

            return WriteResult(
                success=True,
                table_id=config.table_id,
                operation=operation,
                row_id=row_id,
                written_column_ids=list(values),
                written_data=values,
            )

        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            logger.error("Write execution failed", table_id=config.table_id, mode=config.mode, error=message)
            return WriteResult(
                success=False,
                table_id=config.table_id,
                operation=config.mode,
                error=message,
            )

    async def _update(
        self,
        table_id: str,
        column_id: str,
        match_value: Any,
        values: dict[str, Any],
        tenant_id: str,
    ) -> str:
        row = await self.datavault.find_row_by_column_value(table_id, column_id, match_value, tenant_id)
        if row is None:
            raise ValidationError(
                f"Row not found for Table {table_id} where Column {column_id} = {match_value}"
            )
        await self.datavault.update_row_values(row.id, tenant_id, values)
        return row.id

    async def _upsert(
        self,
        table_id: str,
        column_id: str,
        match_value: Any,
        values: dict[str, Any],
        tenant_id: str,
        idempotency_key: Optional[str],
    ) -> tuple[str, str]:
        if match_value is None:
            logger.info("Upsert: match value is null, creating new row", table_id=table_id)
            row = await self.datavault.create_row(table_id, tenant_id, values, idempotency_key)
            return row.id, WriteMode.CREATE.value

        existing = await self.datavault.find_row_by_column_value(table_id, column_id, match_value, tenant_id)
        if existing is not None:
            logger.info("Upsert: found existing row, updating", table_id=table_id, row_id=existing.id)
            await self.datavault.update_row_values(existing.id, tenant_id, values)
            return existing.id, WriteMode.UPDATE.value

        logger.info("Upsert: row not found, creating new", table_id=table_id)
        row = await self.datavault.create_row(table_id, tenant_id, values, idempotency_key)
        return row.id, WriteMode.CREATE.value
