"""
================================================================================
Request/Response Sanitizer
================================================================================

Pure functions that mask sensitive values before they reach logs or reports.

    - Headers: fixed set of sensitive names, matched case-insensitively
    - Bodies: any key containing a sensitive marker, at any depth

The input is never mutated; new containers are returned.

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, Optional


# Placeholder substituted for every masked value
REDACTED = "[REDACTED]"

SENSITIVE_HEADERS = frozenset({
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
})

SENSITIVE_FIELD_MARKERS = (
    "password",
    "token",
    "secret",
    "key",
    "ssn",
    "creditcard",
)


def is_sensitive_field(name: Any) -> bool:
    """Return True when a body key should be masked."""
    lowered = str(name).lower()
    return any(marker in lowered for marker in SENSITIVE_FIELD_MARKERS)


def sanitize_headers(headers: Optional[Mapping]) -> Any:
    """
    Mask sensitive header values before logging.

    Non-mapping input (including None) is returned unchanged.
    """
    if not isinstance(headers, Mapping):
        return headers

    masked: Dict[str, Any] = {}
    for key, value in headers.items():
        if str(key).lower() in SENSITIVE_HEADERS:
            masked[key] = REDACTED
        else:
            masked[key] = value
    return masked


def sanitize_body(payload: Any) -> Any:
    """
    Recursively mask sensitive fields in a JSON-like payload.

    Objects are rebuilt key by key, arrays element-wise; scalars pass through.
    """
    if isinstance(payload, Mapping):
        redacted = {}
        for key, value in payload.items():
            if is_sensitive_field(key):
                redacted[key] = REDACTED
            else:
                redacted[key] = sanitize_body(value)
        return redacted
    if isinstance(payload, (list, tuple)):
        return [sanitize_body(item) for item in payload]
    return payload


__all__ = [
    "REDACTED",
    "SENSITIVE_FIELD_MARKERS",
    "SENSITIVE_HEADERS",
    "is_sensitive_field",
    "sanitize_body",
    "sanitize_headers",
]
