"""Condition evaluation for block configs.

A condition is a flat comparison ``{key, op, value}`` evaluated against a
data bag. ``key`` is a dot-path into the bag; ``value`` is the literal to
compare with. Evaluation is pure: no I/O, no mutation, and it never raises
for bad operands. Numeric comparisons against something that does not parse
as a number are false.

Operators:
    equals, not_equals, contains, greater_than, less_than,
    is_empty, is_not_empty                       (block conditions)
    regex                                        (assertions only)
    not_contains, starts_with, ends_with, in, not_in,
    greater_or_equal, less_or_equal              (row filters)
"""

import json
import math
import re
from typing import Any, Mapping, Optional

import structlog

from core.constants import MAX_REGEX_PATTERN_LENGTH

logger = structlog.get_logger(__name__)

COMPARISON_OPERATORS = frozenset(
    {
        "equals",
        "not_equals",
        "contains",
        "greater_than",
        "less_than",
        "is_empty",
        "is_not_empty",
    }
)

ASSERTION_OPERATORS = COMPARISON_OPERATORS | {"regex"}

ROW_FILTER_OPERATORS = COMPARISON_OPERATORS | {
    "not_contains",
    "starts_with",
    "ends_with",
    "in",
    "not_in",
    "greater_or_equal",
    "less_or_equal",
}

# Leading numeric prefix, as accepted by JavaScript's parseFloat
_FLOAT_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


# ─── Path access ──────────────────────────────────────────────

def get_value_by_path(data: Any, path: str) -> Any:
    """Walk a dot-separated path; a missing link yields ``None``."""
    current = data
    for part in str(path).split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, part, None)
    return current


def set_value_by_path(obj: dict, path: str, value: Any) -> None:
    """Set ``value`` at a dot-path, creating intermediate dicts."""
    parts = str(path).split(".")
    current = obj
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


# ─── Primitive comparisons ────────────────────────────────────

def parse_float(value: Any) -> Optional[float]:
    """Parse like JavaScript ``parseFloat``; ``None`` stands for NaN."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) else number
    if isinstance(value, (list, tuple)):
        # parseFloat([5]) stringifies the array first
        value = ",".join("" if v is None else str(v) for v in value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    for prefix, number in (("Infinity", math.inf), ("+Infinity", math.inf), ("-Infinity", -math.inf)):
        if text.startswith(prefix):
            return number
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return None
    return float(match.group(0))


def compare_numeric(actual: Any, expected: Any) -> Optional[float]:
    """Return ``actual - expected`` or ``None`` when either side is NaN."""
    left = parse_float(actual)
    right = parse_float(expected)
    if left is None or right is None:
        return None
    if left == right:
        return 0.0
    return left - right


def _truthy(value: Any) -> bool:
    # JavaScript Boolean(): containers are truthy even when empty
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _sorted_json(values: list) -> str:
    return json.dumps(sorted(json.dumps(v, sort_keys=True, default=str) for v in values))


def is_equal(actual: Any, expected: Any) -> bool:
    """Loose equality used by conditions and filters."""
    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        return _sorted_json(list(actual)) == _sorted_json(list(expected))

    if isinstance(actual, str) and isinstance(expected, str):
        return actual.lower() == expected.lower()

    if isinstance(actual, bool) or isinstance(expected, bool):
        return _truthy(actual) == _truthy(expected)

    if type(actual) is not type(expected) and not (
        isinstance(actual, (int, float)) and isinstance(expected, (int, float))
    ):
        return False
    return actual == expected


def contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple)):
        return any(is_equal(item, expected) for item in actual)
    if isinstance(actual, str) and isinstance(expected, str):
        return expected.lower() in actual.lower()
    return False


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def matches_regex(value: Any, pattern: Any) -> bool:
    """Regex search with a pattern-length cap; never raises."""
    if not isinstance(value, str):
        return False

    pattern_str = "" if pattern is None else str(pattern)
    if len(pattern_str) > MAX_REGEX_PATTERN_LENGTH:
        logger.warning("Regex pattern too long, rejecting", pattern_prefix=pattern_str[:50])
        return False
    try:
        return re.search(pattern_str, value) is not None
    except re.error:
        logger.warning("Invalid regex pattern", pattern=pattern_str)
        return False


def _starts_with(actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return False
    return str(actual).lower().startswith(str(expected).lower())


def _ends_with(actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return False
    return str(actual).lower().endswith(str(expected).lower())


def _in(actual: Any, expected: Any) -> bool:
    if isinstance(expected, str):
        expected = [part.strip() for part in expected.split(",")]
    if not isinstance(expected, (list, tuple, set)):
        return False
    return any(is_equal(actual, candidate) for candidate in expected)


def _numeric(predicate):
    def compare(actual: Any, expected: Any) -> bool:
        diff = compare_numeric(actual, expected)
        return diff is not None and predicate(diff)

    return compare


_OPERATORS = {
    "equals": is_equal,
    "not_equals": lambda a, e: not is_equal(a, e),
    "contains": contains,
    "not_contains": lambda a, e: not contains(a, e),
    "greater_than": _numeric(lambda d: d > 0),
    "less_than": _numeric(lambda d: d < 0),
    "greater_or_equal": _numeric(lambda d: d >= 0),
    "less_or_equal": _numeric(lambda d: d <= 0),
    "is_empty": lambda a, e: is_empty(a),
    "is_not_empty": lambda a, e: not is_empty(a),
    "starts_with": _starts_with,
    "ends_with": _ends_with,
    "in": _in,
    "not_in": lambda a, e: not _in(a, e),
    "regex": matches_regex,
}


def compare_values(actual: Any, operator: str, expected: Any = None) -> bool:
    """Apply ``operator`` to ``actual`` and ``expected``; unknown ops are false."""
    handler = _OPERATORS.get(operator)
    if handler is None:
        logger.warning("Unknown comparison operator", operator=operator)
        return False
    return handler(actual, expected)


# ─── Public entry points ──────────────────────────────────────

def _as_mapping(condition: Any) -> Mapping[str, Any]:
    if isinstance(condition, Mapping):
        return condition
    if hasattr(condition, "model_dump"):
        return condition.model_dump()
    return vars(condition)


def evaluate_condition(condition: Any, data: Mapping[str, Any]) -> bool:
    """Evaluate a ``{key, op, value}`` condition against ``data``."""
    cond = _as_mapping(condition)
    op = cond.get("op")
    if op not in COMPARISON_OPERATORS and op not in ROW_FILTER_OPERATORS:
        logger.warning("Unknown comparison operator", operator=op)
        return False
    actual = get_value_by_path(data, cond.get("key", ""))
    return compare_values(actual, op, cond.get("value"))


def evaluate_assertion(assertion: Any, data: Mapping[str, Any]) -> bool:
    """Evaluate an assertion; same as a condition plus the ``regex`` op."""
    cond = _as_mapping(assertion)
    op = cond.get("op")
    if op not in ASSERTION_OPERATORS:
        logger.warning("Unknown assertion operator", operator=op)
        return False
    actual = get_value_by_path(data, cond.get("key", ""))
    return compare_values(actual, op, cond.get("value"))
