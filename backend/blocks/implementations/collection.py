"""Collection blocks — create, update, find and delete collection records.

Field maps are ``{fieldSlug: stepAlias}``; each alias is resolved through
the run's alias map and ``None`` values are left out of the record.
"""

from typing import Any, Mapping

import structlog

from app.config import get_settings
from blocks.base_block import BaseBlockRunner
from blocks.schemas import (
    BlockConfig,
    CreateRecordConfig,
    DeleteRecordConfig,
    FindRecordConfig,
    UpdateRecordConfig,
)
from blocks.types import BlockContext, BlockDefinition, BlockResult
from core.constants import BlockType
from workflow.variables import lookup, resolve_filter_values

logger = structlog.get_logger(__name__)

TENANT_ERROR = "Failed to resolve tenantId from workflow"
PREVIEW_RECORD_ID = "preview-simulated-id"


def _failure_message(action: str, error: Exception) -> str:
    return f"Failed to {action}: {getattr(error, 'message', None) or error}"


class CollectionBlockRunner(BaseBlockRunner):
    """One runner for the four record block types, dispatched on ``block.type``."""

    block_type = "collection"
    handles = (
        BlockType.CREATE_RECORD.value,
        BlockType.UPDATE_RECORD.value,
        BlockType.FIND_RECORD.value,
        BlockType.DELETE_RECORD.value,
    )
    display_name = "Collection"
    description = "Create, update, find or delete collection records"

    async def execute(
        self,
        config: BlockConfig,
        context: BlockContext,
        block: BlockDefinition,
    ) -> BlockResult:
        if block.type == BlockType.CREATE_RECORD.value:
            return await self._create_record(config, context)
        if block.type == BlockType.UPDATE_RECORD.value:
            return await self._update_record(config, context)
        if block.type == BlockType.FIND_RECORD.value:
            return await self._find_record(config, context)
        if block.type == BlockType.DELETE_RECORD.value:
            return await self._delete_record(config, context)

        logger.warning("Unknown collection block type", block_type=block.type)
        return BlockResult(success=False, errors=[f"Unknown block type: {block.type}"])

    # ─── Helpers ──────────────────────────────────────────

    @staticmethod
    def _map_fields(field_map: Mapping[str, str], context: BlockContext) -> dict[str, Any]:
        record_data = {}
        for field_slug, step_alias in field_map.items():
            value = lookup(step_alias, context.data, context.alias_map)
            if value is not None:
                record_data[field_slug] = value
        return record_data

    @staticmethod
    def _record_id(record_id_key: str, context: BlockContext) -> Any:
        return lookup(record_id_key, context.data, context.alias_map)

    # ─── Operations ───────────────────────────────────────

    async def _create_record(self, config: CreateRecordConfig, context: BlockContext) -> BlockResult:
        try:
            tenant_id = await self.resolve_tenant(context)
            if not tenant_id:
                return BlockResult(success=False, errors=[TENANT_ERROR])

            record_data = self._map_fields(config.field_map, context)
            if context.is_preview:
                logger.info("Simulating record create in preview mode", collection_id=config.collection_id)
                updates = {config.output_key: PREVIEW_RECORD_ID} if config.output_key else {}
                return BlockResult(success=True, data=updates)

            logger.info(
                "Creating record via block",
                tenant_id=tenant_id,
                collection_id=config.collection_id,
                record_data=self.redact(record_data),
            )

            record = await self.deps.records.create_record(
                tenant_id,
                config.collection_id,
                record_data,
                idempotency_key=context.idempotency_key,
            )

            updates = {config.output_key: record.id} if config.output_key else {}
            return BlockResult(success=True, data=updates)

        except Exception as e:
            logger.error("Error executing create_record block", error=str(e))
            return BlockResult(success=False, errors=[_failure_message("create record", e)])

    async def _update_record(self, config: UpdateRecordConfig, context: BlockContext) -> BlockResult:
        try:
            tenant_id = await self.resolve_tenant(context)
            if not tenant_id:
                return BlockResult(success=False, errors=[TENANT_ERROR])

            record_id = self._record_id(config.record_id_key, context)
            if not record_id:
                return BlockResult(
                    success=False,
                    errors=[f"Record ID not found in data key: {config.record_id_key}"],
                )

            update_data = self._map_fields(config.field_map, context)
            if context.is_preview:
                logger.info("Simulating record update in preview mode", record_id=record_id)
                return BlockResult(success=True)

            logger.info(
                "Updating record via block",
                tenant_id=tenant_id,
                collection_id=config.collection_id,
                record_id=record_id,
                update_data=self.redact(update_data),
            )

            await self.deps.records.update_record(
                tenant_id, config.collection_id, str(record_id), update_data
            )
            return BlockResult(success=True)

        except Exception as e:
            logger.error("Error executing update_record block", error=str(e))
            return BlockResult(success=False, errors=[_failure_message("update record", e)])

    async def _find_record(self, config: FindRecordConfig, context: BlockContext) -> BlockResult:
        try:
            tenant_id = await self.resolve_tenant(context)
            if not tenant_id:
                return BlockResult(success=False, errors=[TENANT_ERROR])

            limit = config.limit or get_settings().FIND_RECORD_DEFAULT_LIMIT
            logger.info(
                "Finding records via block",
                tenant_id=tenant_id,
                collection_id=config.collection_id,
                filters=config.filters,
            )

            records = await self.deps.records.find_by_filters(
                tenant_id,
                config.collection_id,
                resolve_filter_values(config.filters, context.data, context.alias_map),
                limit=limit,
            )

            if not records and config.fail_if_not_found:
                return BlockResult(success=False, errors=["No records found matching the criteria"])

            value = (records[0] if records else None) if config.limit == 1 else list(records)
            return BlockResult(success=True, data={config.output_key: value})

        except Exception as e:
            logger.error("Error executing find_record block", error=str(e))
            return BlockResult(success=False, errors=[_failure_message("find records", e)])

    async def _delete_record(self, config: DeleteRecordConfig, context: BlockContext) -> BlockResult:
        try:
            tenant_id = await self.resolve_tenant(context)
            if not tenant_id:
                return BlockResult(success=False, errors=[TENANT_ERROR])

            record_id = self._record_id(config.record_id_key, context)
            if not record_id:
                return BlockResult(
                    success=False,
                    errors=[f"Record ID not found in data key: {config.record_id_key}"],
                )

            if context.is_preview:
                logger.info("Simulating record delete in preview mode", record_id=record_id)
                return BlockResult(success=True)

            logger.info(
                "Deleting record via block",
                tenant_id=tenant_id,
                collection_id=config.collection_id,
                record_id=record_id,
            )

            await self.deps.records.delete_record(tenant_id, config.collection_id, str(record_id))
            return BlockResult(success=True)

        except Exception as e:
            logger.error("Error executing delete_record block", error=str(e))
            return BlockResult(success=False, errors=[_failure_message("delete record", e)])
