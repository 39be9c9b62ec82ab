"""Credential masking for safe logging.

Storage credentials travel through config objects, destinations and log
records.  Wherever one of them would be rendered, :func:`mask_secret` is
applied first so that only the last four characters remain visible.
"""

from __future__ import annotations

from typing import Any

# Substrings: if any of these appear in a key name (case-insensitive), the
# value is masked by :func:`redact`.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "access_grant",
    "credential",
    "secret",
    "token",
    "password",
})


def mask_secret(value: str | None) -> str:
    """Return a placeholder for *value* showing at most its last 4 chars.

    Examples
    --------
    >>> mask_secret("AKIAEXAMPLE:abcd1234")
    '...1234'
    >>> mask_secret("abc")
    '****'
    >>> mask_secret("")
    ''
    """
    if not value:
        return ""
    if len(value) < 8:
        return "****"
    return f"...{value[-4:]}"


def redact(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *payload* with sensitive values masked.

    Nested dicts are handled recursively; the input is never mutated.

    >>> redact({"storage": {"access_grant": "AKIAEXAMPLE:abcd1234"}})
    {'storage': {'access_grant': '...1234'}}
    """
    result: dict[str, Any] = {}
    for key, value in payload.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if isinstance(value, dict):
            result[key] = redact(value)
        elif any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            result[key] = mask_secret(value) if isinstance(value, str) else "<redacted>"
        else:
            result[key] = value
    return result
