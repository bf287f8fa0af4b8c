"""SQL clause builders over JSON ``data`` columns.

Datavault rows and collection records keep their cells in a JSON column
keyed by column id (or field slug). Filters and sorts address those keys
through SQLAlchemy's JSON element accessors, so values always travel as
bound parameters. Keys are still checked against ``SAFE_IDENTIFIER_PATTERN``
before they become part of a JSON path; an unsafe key drops the clause.
"""

import re
from typing import Any, Optional

import structlog
from sqlalchemy import and_, false, or_
from sqlalchemy.sql.elements import ColumnElement

from core.constants import SAFE_IDENTIFIER_PATTERN, ColumnType
from workflow.conditions import parse_float

logger = structlog.get_logger(__name__)

_SAFE_IDENTIFIER = re.compile(SAFE_IDENTIFIER_PATTERN)

_NUMERIC_TYPES = {ColumnType.NUMBER.value}
_BOOLEAN_TYPES = {ColumnType.BOOLEAN.value}
_TEMPORAL_TYPES = {ColumnType.DATE.value, ColumnType.DATETIME.value}


def is_safe_identifier(identifier: Any) -> bool:
    return isinstance(identifier, str) and bool(_SAFE_IDENTIFIER.fullmatch(identifier))


def _in_values(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    return []


def _equality(json_column, column_id: str, value: Any, column_type: str) -> ColumnElement:
    if column_type in _NUMERIC_TYPES:
        number = parse_float(value)
        if number is None:
            return false()
        return json_column[column_id].as_float() == number
    if column_type in _BOOLEAN_TYPES:
        expected = value if isinstance(value, bool) else str(value).lower() in ("true", "1", "yes")
        return json_column[column_id].as_boolean() == expected
    return json_column[column_id].as_string() == str(value)


def _ordering(json_column, column_id: str, operator: str, value: Any, column_type: str):
    if column_type in _NUMERIC_TYPES:
        number = parse_float(value)
        if number is None:
            return false()
        left, right = json_column[column_id].as_float(), number
    elif column_type in _TEMPORAL_TYPES:
        # ISO dates and datetimes order correctly as text
        left, right = json_column[column_id].as_string(), str(value)
    else:
        return None

    if operator == "greater_than":
        return left > right
    if operator == "less_than":
        return left < right
    if operator == "greater_or_equal":
        return left >= right
    return left <= right


def build_filter_clause(
    json_column,
    column_id: Any,
    operator: str,
    value: Any = None,
    column_type: str = ColumnType.TEXT.value,
) -> Optional[ColumnElement]:
    """Translate one ``{columnId, operator, value}`` filter into SQL.

    Returns ``None`` when the filter has to be dropped: unsafe identifier,
    unknown operator, or a value the operator cannot use (``equals`` with
    no value, ``contains`` with an empty needle, range comparison on a text
    column). A numeric comparison against a non-numeric value matches
    nothing.
    """
    if not is_safe_identifier(column_id):
        logger.warning("Dropping filter with unsafe column identifier", column_id=str(column_id)[:64])
        return None

    text = json_column[column_id].as_string()

    if operator == "is_empty":
        return or_(text.is_(None), text == "")
    if operator == "is_not_empty":
        return and_(text.is_not(None), text != "")

    if operator in ("equals", "not_equals"):
        if value is None:
            return None
        clause = _equality(json_column, column_id, value, column_type)
        return ~clause if operator == "not_equals" else clause

    if operator in ("contains", "not_contains", "starts_with", "ends_with"):
        if value is None or value == "":
            return None
        needle = str(value)
        if operator == "starts_with":
            return text.startswith(needle, autoescape=True)
        if operator == "ends_with":
            return text.endswith(needle, autoescape=True)
        clause = text.contains(needle, autoescape=True)
        return ~clause if operator == "not_contains" else clause

    if operator in ("greater_than", "less_than", "greater_or_equal", "less_or_equal"):
        if value is None:
            return None
        return _ordering(json_column, column_id, operator, value, column_type)

    if operator in ("in", "not_in"):
        candidates = _in_values(value)
        if not candidates:
            return None
        clause = text.in_(candidates)
        return ~clause if operator == "not_in" else clause

    logger.warning("Dropping filter with unknown operator", column_id=column_id, operator=operator)
    return None


def build_sort_clause(
    json_column,
    column_id: Any,
    direction: str = "asc",
    column_type: str = ColumnType.TEXT.value,
) -> Optional[ColumnElement]:
    """Ordering expression for a JSON key, ``None`` for unsafe identifiers."""
    if not is_safe_identifier(column_id):
        logger.warning("Dropping sort with unsafe column identifier", column_id=str(column_id)[:64])
        return None

    if column_type in _NUMERIC_TYPES:
        expression = json_column[column_id].as_float()
    else:
        expression = json_column[column_id].as_string()
    return expression.desc() if str(direction).lower() == "desc" else expression.asc()
