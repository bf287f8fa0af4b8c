"""Block config schemas.

One model per block type. Field names are snake_case in Python; the
camelCase aliases are the persisted JSON keys written by the workflow
builder and must not change. Unknown keys are kept (``extra = "allow"``)
so configs saved by newer builders still load.
"""

from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from core.constants import BlockType
from core.exceptions import ValidationError


class BlockConfig(BaseModel):
    """Base for every block config."""

    class Config:
        populate_by_name = True
        extra = "allow"


class Condition(BlockConfig):
    """Flat comparison ``{key, op, value}`` against the run data."""

    key: str = Field(description="Dot-path into the run data")
    op: str = Field(description="Comparison operator")
    value: Any = Field(default=None, description="Literal to compare with")


class ListFilter(BlockConfig):
    column_id: str = Field(alias="columnId", description="Column to filter on")
    operator: str = Field(default="equals", description="Row filter operator")
    value: Any = Field(default=None, description="Literal or {{variable}} reference")


class ListSort(BlockConfig):
    column_id: str = Field(alias="columnId", description="Column to sort by")
    direction: Literal["asc", "desc"] = Field(default="asc")


class ListDedupe(BlockConfig):
    column_id: str = Field(alias="columnId", description="Column whose value must be unique")


# ─── Data shaping ─────────────────────────────────────────────

class PrefillConfig(BlockConfig):
    mode: Literal["static", "query"] = Field(default="static")
    static_map: Dict[str, Any] = Field(default_factory=dict, alias="staticMap")
    query_keys: List[str] = Field(default_factory=list, alias="queryKeys")
    overwrite: bool = Field(default=False, description="Replace keys that already have a value")


class ValidateRule(BlockConfig):
    assertion: Condition = Field(alias="assert", description="Expression that must hold")
    message: Optional[str] = Field(default=None, description="Error shown when the assertion fails")
    when: Optional[Condition] = Field(default=None, description="Only check the rule when this holds")


class ValidateConfig(BlockConfig):
    rules: List[ValidateRule] = Field(default_factory=list)


class BranchCase(BlockConfig):
    when: Condition
    goto_section_id: str = Field(alias="gotoSectionId")


class BranchConfig(BlockConfig):
    branches: List[BranchCase] = Field(default_factory=list)
    fallback_section_id: Optional[str] = Field(default=None, alias="fallbackSectionId")


# ─── Collections ──────────────────────────────────────────────

class CreateRecordConfig(BlockConfig):
    collection_id: str = Field(alias="collectionId")
    field_map: Dict[str, str] = Field(default_factory=dict, alias="fieldMap", description="fieldSlug -> step alias")
    output_key: Optional[str] = Field(default=None, alias="outputKey")


class UpdateRecordConfig(BlockConfig):
    collection_id: str = Field(alias="collectionId")
    record_id_key: str = Field(alias="recordIdKey", description="Data key holding the record id")
    field_map: Dict[str, str] = Field(default_factory=dict, alias="fieldMap")


class FindRecordConfig(BlockConfig):
    collection_id: str = Field(alias="collectionId")
    filters: List[Dict[str, Any]] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=1)
    output_key: str = Field(alias="outputKey")
    fail_if_not_found: bool = Field(default=False, alias="failIfNotFound")


class DeleteRecordConfig(BlockConfig):
    collection_id: str = Field(alias="collectionId")
    record_id_key: str = Field(alias="recordIdKey")


# ─── Tables & lists ───────────────────────────────────────────

class QueryBlockConfig(BlockConfig):
    query_id: str = Field(alias="queryId")
    output_variable_name: str = Field(alias="outputVariableName")


class ReadTableConfig(BlockConfig):
    table_id: str = Field(alias="tableId")
    output_key: str = Field(alias="outputKey")
    columns: Optional[List[str]] = Field(default=None, description="Column ids to include")
    filters: List[ListFilter] = Field(default_factory=list)
    sort: Optional[ListSort] = None
    limit: Optional[int] = Field(default=None, ge=1)
    run_condition: Optional[Condition] = Field(default=None, alias="runCondition")


class ListToolsOutputs(BlockConfig):
    count_var: Optional[str] = Field(default=None, alias="countVar")
    first_var: Optional[str] = Field(default=None, alias="firstVar")


class ListToolsConfig(BlockConfig):
    source_list_var: str = Field(alias="sourceListVar")
    output_list_var: str = Field(alias="outputListVar")
    filters: List[ListFilter] = Field(default_factory=list)
    sort: Optional[Union[ListSort, List[ListSort]]] = None
    limit: Optional[int] = None
    offset: Optional[int] = Field(default=None, ge=0)
    select: Optional[List[str]] = None
    dedupe: Optional[Union[ListDedupe, str]] = None
    outputs: Optional[ListToolsOutputs] = None
    run_condition: Optional[Condition] = Field(default=None, alias="runCondition")


class ColumnMapping(BlockConfig):
    column_id: str = Field(alias="columnId")
    value: Optional[Any] = Field(default=None, description="Literal, dot-path or {{variable}}")


class MatchStrategy(BlockConfig):
    type: Literal["column_match", "primary_key"] = "column_match"
    column_id: Optional[str] = Field(default=None, alias="columnId")
    column_value: Optional[Any] = Field(default=None, alias="columnValue")


class WriteBlockConfig(BlockConfig):
    table_id: str = Field(alias="tableId")
    mode: Literal["create", "update", "upsert"] = "create"
    column_mappings: List[ColumnMapping] = Field(default_factory=list, alias="columnMappings")
    match_strategy: Optional[MatchStrategy] = Field(default=None, alias="matchStrategy")
    primary_key_column_id: Optional[str] = Field(default=None, alias="primaryKeyColumnId")
    primary_key_value: Optional[Any] = Field(default=None, alias="primaryKeyValue")
    output_key: Optional[str] = Field(default=None, alias="outputKey")
    run_condition: Optional[Condition] = Field(default=None, alias="runCondition")


class PayloadMapping(BlockConfig):
    key: str
    value: Optional[Any] = None


class ExternalSendBlockConfig(BlockConfig):
    destination_id: str = Field(alias="destinationId")
    payload_mappings: List[PayloadMapping] = Field(default_factory=list, alias="payloadMappings")
    run_condition: Optional[Condition] = Field(default=None, alias="runCondition")


CONFIG_MODELS: Dict[str, Type[BlockConfig]] = {
    BlockType.PREFILL.value: PrefillConfig,
    BlockType.VALIDATE.value: ValidateConfig,
    BlockType.BRANCH.value: BranchConfig,
    BlockType.CREATE_RECORD.value: CreateRecordConfig,
    BlockType.UPDATE_RECORD.value: UpdateRecordConfig,
    BlockType.FIND_RECORD.value: FindRecordConfig,
    BlockType.DELETE_RECORD.value: DeleteRecordConfig,
    BlockType.QUERY.value: QueryBlockConfig,
    BlockType.READ_TABLE.value: ReadTableConfig,
    BlockType.LIST_TOOLS.value: ListToolsConfig,
    BlockType.WRITE.value: WriteBlockConfig,
    BlockType.EXTERNAL_SEND.value: ExternalSendBlockConfig,
}


def _format_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg')}" if location else str(error.get("msg"))


def parse_block_config(block_type: str, raw: Optional[Dict[str, Any]]) -> BlockConfig:
    """Validate persisted config JSON for ``block_type``.

    Raises:
        ValidationError: Unknown block type or malformed config
    """
    model = CONFIG_MODELS.get(block_type)
    if model is None:
        raise ValidationError(f"Unknown block type: {block_type}")
    try:
        return model.model_validate(raw or {})
    except PydanticValidationError as e:
        errors = [_format_error(err) for err in e.errors()]
        raise ValidationError(
            f"Invalid {block_type} config: " + "; ".join(errors),
            errors=errors,
        )
