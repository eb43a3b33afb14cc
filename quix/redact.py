"""
Quix - Redaction helpers for log output.

User content, tool arguments, and tool-server errors can carry credentials.
Everything the orchestration core logs about them goes through these
helpers first.
"""

import re
from typing import Any

MAX_DEPTH = 10
MAX_ITEMS = 100
MAX_STRING = 500

REDACTED = "[REDACTED]"

_SENSITIVE_KEY = re.compile(
    r"(secret|password|token|key|auth|credential|api.?key|bearer|access.?token)",
    re.IGNORECASE,
)
_ASSIGNED_SECRET = re.compile(
    r"(api[_-]?key|token|secret|password|bearer)\s*[=:]\s*\S+", re.IGNORECASE
)
_BEARER_HEADER = re.compile(r"\bBearer\s+\S+", re.IGNORECASE)
_OPAQUE_VALUE = re.compile(r"[A-Za-z0-9+/]{40,}={0,2}")


def sanitize_for_log(data: Any, depth: int = 0) -> Any:
    """Return a log-safe copy of tool arguments, plan steps, or similar data.

    Values under keys that look like credentials are replaced with
    ``[REDACTED]``, free-text values go through :func:`strip_secrets`, and
    long strings and collections are cut short. Tuples stay tuples; sets
    become lists.
    """
    if depth > MAX_DEPTH:
        return "[TRUNCATED]"

    if isinstance(data, dict):
        return {
            k: REDACTED if _SENSITIVE_KEY.search(str(k)) else sanitize_for_log(v, depth + 1)
            for k, v in data.items()
        }

    if isinstance(data, (list, tuple, set, frozenset)):
        items = list(data)
        sanitized = [sanitize_for_log(item, depth + 1) for item in items[:MAX_ITEMS]]
        if len(items) > MAX_ITEMS:
            sanitized.append(f"...[{len(items) - MAX_ITEMS} more]")
        return tuple(sanitized) if isinstance(data, tuple) else sanitized

    if isinstance(data, str):
        cleaned = strip_secrets(data)
        if len(cleaned) > MAX_STRING:
            return cleaned[:MAX_STRING] + "...[TRUNCATED]"
        return cleaned

    return data


def strip_secrets(text: str) -> str:
    """Remove anything that looks like a secret from a free-text message."""
    cleaned = _ASSIGNED_SECRET.sub(rf"\1={REDACTED}", text)
    cleaned = _BEARER_HEADER.sub(f"Bearer {REDACTED}", cleaned)
    return _OPAQUE_VALUE.sub(REDACTED, cleaned)
