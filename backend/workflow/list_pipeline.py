"""List Variable container and the list transformation pipeline.

A List Variable is the JSON-serializable shape passed between Read Table /
Query producers and List Tools consumers::

    {
        "metadata": {"source": "read_table", "sourceId": "...", ...},
        "rows": [{"id": "...", "<columnId>": ...}, ...],
        "count": 2,
        "columns": [{"id": "...", "name": "...", "type": "text"}, ...],
    }

``transform_list`` applies filter → dedupe → sort → offset/limit → select.
Later stages work on the already reduced rows, and ``count`` is
recomputed after every stage.
"""

import copy
from typing import Any, Iterable, Mapping, Optional, TypedDict

from core.utils import stable_json
from workflow.conditions import compare_values, get_value_by_path, parse_float
from workflow.variables import resolve_reference


class ListColumn(TypedDict):
    id: str
    name: str
    type: str


class ListVariable(TypedDict):
    metadata: dict[str, Any]
    rows: list[dict[str, Any]]
    count: int
    columns: list[ListColumn]


# ─── Construction / normalization ─────────────────────────────

def empty_list_variable(source: str = "list_tools") -> ListVariable:
    return {"metadata": {"source": source}, "rows": [], "count": 0, "columns": []}


def is_list_variable(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and isinstance(value.get("rows"), list)
        and isinstance(value.get("metadata"), Mapping)
        and "count" in value
    )


def _infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "text"


def array_to_list_variable(items: Iterable[Any], source: str = "list_tools") -> ListVariable:
    """Wrap a plain array into a List Variable.

    Dict items keep their own ``id`` when present; scalars become
    ``{"id": <index>, "value": item}``. Columns are the union of keys in
    first-seen order.
    """
    rows: list[dict[str, Any]] = []
    columns: dict[str, ListColumn] = {}

    for index, item in enumerate(items):
        if isinstance(item, Mapping):
            row = dict(item)
        else:
            row = {"value": item}
        row.setdefault("id", str(index))
        rows.append(row)
        for key, value in row.items():
            if key != "id" and key not in columns:
                columns[key] = {"id": key, "name": key, "type": _infer_type(value)}

    return {
        "metadata": {"source": source},
        "rows": rows,
        "count": len(rows),
        "columns": list(columns.values()),
    }


def normalize_list(value: Any, source: str = "list_tools") -> Optional[ListVariable]:
    """Coerce input into a List Variable.

    Missing input becomes an empty list; a value that is neither a List
    Variable nor an array returns ``None``.
    """
    if value is None:
        return empty_list_variable(source)
    if is_list_variable(value):
        rows = [dict(r) for r in value["rows"]]
        return {
            "metadata": dict(value.get("metadata") or {}),
            "rows": rows,
            "count": len(rows),
            "columns": [dict(c) for c in value.get("columns") or []],
        }
    if isinstance(value, (list, tuple)):
        return array_to_list_variable(value, source)
    return None


def _with_rows(list_var: ListVariable, rows: list[dict[str, Any]]) -> ListVariable:
    list_var["rows"] = rows
    list_var["count"] = len(rows)
    return list_var


def _field(item: Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


# ─── Stages ───────────────────────────────────────────────────

def _filter_rows(
    rows: list[dict[str, Any]],
    filters: list[Any],
    context_data: Mapping[str, Any],
    alias_map: Optional[Mapping[str, str]],
) -> list[dict[str, Any]]:
    resolved = []
    for f in filters:
        column_id = _field(f, "columnId") or _field(f, "column_id")
        operator = _field(f, "operator") or "equals"
        value = resolve_reference(_field(f, "value"), context_data, alias_map)
        if column_id:
            resolved.append((column_id, operator, value))

    def keep(row: dict[str, Any]) -> bool:
        return all(
            compare_values(get_value_by_path(row, column_id), operator, value)
            for column_id, operator, value in resolved
        )

    return [row for row in rows if keep(row)]


def _dedupe_rows(rows: list[dict[str, Any]], column_id: str) -> list[dict[str, Any]]:
    seen: set[str] = set()
    unique = []
    for row in rows:
        marker = stable_json(get_value_by_path(row, column_id))
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(row)
    return unique


def _sort_key(value: Any) -> tuple:
    number = parse_float(value) if not isinstance(value, str) or value.strip() else None
    if number is not None and not isinstance(value, bool):
        return (0, number, "")
    return (1, 0.0, str(value).lower())


def _sort_rows(rows: list[dict[str, Any]], sorts: list[Any]) -> list[dict[str, Any]]:
    ordered = list(rows)
    # Stable sorts applied from the least significant key up
    for sort_op in reversed(sorts):
        column_id = _field(sort_op, "columnId") or _field(sort_op, "column_id")
        if not column_id:
            continue
        descending = str(_field(sort_op, "direction") or "asc").lower() == "desc"
        present = [r for r in ordered if get_value_by_path(r, column_id) not in (None, "")]
        missing = [r for r in ordered if get_value_by_path(r, column_id) in (None, "")]
        present.sort(key=lambda r: _sort_key(get_value_by_path(r, column_id)), reverse=descending)
        ordered = present + missing
    return ordered


def _select_columns(list_var: ListVariable, select: list[str]) -> ListVariable:
    known = {c["id"]: c for c in list_var["columns"]}
    list_var["columns"] = [
        known.get(column_id, {"id": column_id, "name": column_id, "type": "text"})
        for column_id in select
    ]
    rows = []
    for row in list_var["rows"]:
        projected = {"id": row.get("id")}
        for column_id in select:
            projected[column_id] = row.get(column_id)
        rows.append(projected)
    return _with_rows(list_var, rows)


def transform_list(
    list_var: Any,
    ops: Optional[Mapping[str, Any]] = None,
    context_data: Optional[Mapping[str, Any]] = None,
    alias_map: Optional[Mapping[str, str]] = None,
) -> ListVariable:
    """Run the list pipeline.

    Args:
        list_var: List Variable or plain array (``None`` means empty)
        ops: ``{filters, dedupe, sort, offset, limit, select}``; every key optional
        context_data: Run data used to resolve ``{{var}}`` filter values
        alias_map: Alias → data key map for those references

    Returns:
        A new List Variable; the input is never mutated.
    """
    ops = ops or {}
    context_data = context_data or {}

    result = normalize_list(copy.deepcopy(list_var))
    if result is None:
        result = empty_list_variable()
    metadata = result["metadata"]

    filters = ops.get("filters") or []
    if filters:
        _with_rows(result, _filter_rows(result["rows"], list(filters), context_data, alias_map))
        metadata["filteredBy"] = [
            _field(f, "columnId") or _field(f, "column_id") for f in filters
        ]

    dedupe = ops.get("dedupe")
    if isinstance(dedupe, str):
        dedupe_key = dedupe
    elif dedupe:
        dedupe_key = _field(dedupe, "columnId") or _field(dedupe, "column_id")
    else:
        dedupe_key = None
    if dedupe_key:
        _with_rows(result, _dedupe_rows(result["rows"], dedupe_key))

    sort = ops.get("sort")
    if sort:
        sorts = list(sort) if isinstance(sort, (list, tuple)) else [sort]
        _with_rows(result, _sort_rows(result["rows"], sorts))
        metadata["sortedBy"] = [
            {
                "columnId": _field(s, "columnId") or _field(s, "column_id"),
                "direction": _field(s, "direction") or "asc",
            }
            for s in sorts
        ]

    offset = ops.get("offset")
    if offset:
        _with_rows(result, result["rows"][max(int(offset), 0):])

    limit = ops.get("limit")
    if limit is not None and int(limit) > 0:
        _with_rows(result, result["rows"][: int(limit)])

    select = ops.get("select")
    if select:
        _select_columns(result, list(select))

    result["count"] = len(result["rows"])
    return result
