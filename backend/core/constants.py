"""Constants and enums for the workflow block engine."""

from enum import Enum


class BlockType(str, Enum):
    """Closed set of block type tags persisted on blocks."""

    PREFILL = "prefill"
    VALIDATE = "validate"
    BRANCH = "branch"
    QUERY = "query"
    WRITE = "write"
    EXTERNAL_SEND = "external_send"
    READ_TABLE = "read_table"
    LIST_TOOLS = "list_tools"
    CREATE_RECORD = "create_record"
    UPDATE_RECORD = "update_record"
    FIND_RECORD = "find_record"
    DELETE_RECORD = "delete_record"


class BlockPhase(str, Enum):
    """Lifecycle hook points, declared in firing order."""

    ON_RUN_START = "onRunStart"
    ON_SECTION_ENTER = "onSectionEnter"
    ON_SECTION_SUBMIT = "onSectionSubmit"
    ON_NEXT = "onNext"
    ON_RUN_COMPLETE = "onRunComplete"


class ExecutionMode(str, Enum):
    """Run execution mode."""

    LIVE = "live"
    PREVIEW = "preview"


class RunStatus(str, Enum):
    """Workflow run status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class WriteMode(str, Enum):
    """Table write operation."""

    CREATE = "create"
    UPDATE = "update"
    UPSERT = "upsert"


class ColumnType(str, Enum):
    """Datavault column types that affect filter semantics."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"


# Blocks whose output is mirrored into a virtual step
OUTPUT_BLOCK_TYPES = frozenset(
    {
        BlockType.QUERY.value,
        BlockType.READ_TABLE.value,
        BlockType.LIST_TOOLS.value,
        BlockType.WRITE.value,
    }
)

# Blocks that touch tenant data or the network
SIDE_EFFECT_BLOCK_TYPES = frozenset(
    {
        BlockType.QUERY.value,
        BlockType.WRITE.value,
        BlockType.EXTERNAL_SEND.value,
        BlockType.READ_TABLE.value,
        BlockType.CREATE_RECORD.value,
        BlockType.UPDATE_RECORD.value,
        BlockType.FIND_RECORD.value,
        BlockType.DELETE_RECORD.value,
    }
)

VIRTUAL_STEP_TYPE = "computed"

# ReDoS guard for regex assertions
MAX_REGEX_PATTERN_LENGTH = 100

# Column identifiers interpolated into JSON paths must fully match this
SAFE_IDENTIFIER_PATTERN = r"[a-zA-Z0-9_-]+"

REDACTED = "[REDACTED]"

# Substrings of key names whose values never reach the logs
SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "key",
    "ssn",
    "social",
    "credit",
    "card",
    "cvv",
    "email",
    "phone",
    "address",
    "dob",
    "birth",
)
