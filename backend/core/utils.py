"""
Utility functions for the workflow block engine.

Includes:
- UTC datetime helpers
- PII redaction for log payloads
- JSON-stable stringification
"""

import json
from datetime import datetime, timezone
from typing import Any

from core.constants import REDACTED, SENSITIVE_KEYS


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def stable_json(value: Any) -> str:
    """Stringify a value the same way regardless of dict key order."""
    return json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(s in lowered for s in SENSITIVE_KEYS)


def redact(data: Any) -> Any:
    """
    Return a deep copy of ``data`` with sensitive values replaced.

    Any dict key whose lowercase name contains one of ``SENSITIVE_KEYS``
    has its value replaced by ``"[REDACTED]"``; lists and nested dicts are
    walked recursively. Scalars are returned unchanged.

    Args:
        data: Arbitrary JSON-like value

    Returns:
        Redacted copy safe for audit logging
    """
    if not data:
        return data

    if isinstance(data, (list, tuple)):
        return [redact(item) for item in data]

    if not isinstance(data, dict):
        return data

    result: dict[str, Any] = {}
    for key, value in data.items():
        if is_sensitive_key(str(key)):
            result[key] = REDACTED
        elif isinstance(value, (dict, list, tuple)):
            result[key] = redact(value)
        else:
            result[key] = value
    return result
