"""Variable references inside block configs.

Block configs reference run data with ``{{name}}`` tokens or bare dot-paths.
The first path segment may be a step alias; ``alias_map`` maps aliases to
the data keys (step ids) they stand for. A token missing from ``alias_map``
is used as the data key itself.
"""

import re
from typing import Any, Iterable, Mapping, Optional

from workflow.conditions import get_value_by_path

_TOKEN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def resolve_alias(token: str, alias_map: Optional[Mapping[str, str]] = None) -> str:
    if alias_map and token in alias_map:
        return alias_map[token]
    return token


def lookup(path: str, data: Mapping[str, Any], alias_map: Optional[Mapping[str, str]] = None) -> Any:
    """Resolve a dot-path whose head may be an alias."""
    head, _, rest = str(path).partition(".")
    key = resolve_alias(head, alias_map)
    if key not in data and head in data:
        key = head
    value = data.get(key)
    if rest:
        return get_value_by_path(value, rest)
    return value


def is_reference(value: Any) -> bool:
    return isinstance(value, str) and value.strip().startswith("{{") and value.strip().endswith("}}")


def strip_braces(expression: str) -> str:
    text = expression.strip()
    if text.startswith("{{") and text.endswith("}}"):
        return text[2:-2].strip()
    return text


def resolve_reference(
    expression: Any,
    data: Mapping[str, Any],
    alias_map: Optional[Mapping[str, str]] = None,
) -> Any:
    """Resolve a config value against run data.

    ``"{{ path }}"`` returns the raw referenced value (``None`` when
    missing). A longer string with embedded tokens is interpolated as text.
    Anything else is returned unchanged.
    """
    if not isinstance(expression, str):
        return expression

    matches = list(_TOKEN.finditer(expression))
    if not matches:
        return expression

    if len(matches) == 1 and matches[0].group(0) == expression.strip():
        return lookup(matches[0].group(1), data, alias_map)

    def _substitute(match: re.Match) -> str:
        value = lookup(match.group(1), data, alias_map)
        return "" if value is None else str(value)

    return _TOKEN.sub(_substitute, expression)


def resolve_payload_mappings(
    mappings: Optional[Iterable[Any]],
    data: Mapping[str, Any],
    alias_map: Optional[Mapping[str, str]] = None,
) -> dict[str, Any]:
    """Build an outbound payload from ``[{key, value}]`` mappings.

    A mapping value may be a ``{{ }}`` reference, a bare alias/dot-path
    present in ``data``, or a literal.
    """
    payload: dict[str, Any] = {}
    for mapping in mappings or []:
        item = mapping if isinstance(mapping, Mapping) else mapping.model_dump()
        key = item.get("key")
        if not key:
            continue
        raw = item.get("value")
        if isinstance(raw, str) and "{{" not in raw:
            found = lookup(raw, data, alias_map)
            payload[key] = found if found is not None else raw
        else:
            payload[key] = resolve_reference(raw, data, alias_map)
    return payload


def resolve_filter_values(
    filters: Optional[Iterable[Any]],
    data: Mapping[str, Any],
    alias_map: Optional[Mapping[str, str]] = None,
) -> list[dict[str, Any]]:
    """Copy ``[{columnId, operator, value}]`` filters with ``{{ }}`` values resolved."""
    resolved = []
    for f in filters or []:
        item = dict(f) if isinstance(f, Mapping) else f.model_dump(by_alias=True)
        item["value"] = resolve_reference(item.get("value"), data, alias_map)
        resolved.append(item)
    return resolved
