"""
Input validation and sanitization helpers.

Pure functions used by the security middleware (injection checks) and the
admin API (reason sanitization, pagination). Nothing here touches Redis.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

_SCRIPT_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"&lt;script&gt;", re.IGNORECASE),
    re.compile(r"&lt;/script&gt;", re.IGNORECASE),
    re.compile(r"&#x3C;script&#x3E;", re.IGNORECASE),
    re.compile(r"&#x3C;&#x2F;script&#x3E;", re.IGNORECASE),
]

SQL_INJECTION_PATTERNS = [
    re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|UNION|SCRIPT)\b", re.IGNORECASE),
    re.compile(r"('|--|;|\||\*|%27|%3B)"),
    re.compile(r"(%3D|=)[^\n]*(%27|'|--|%3B|;)", re.IGNORECASE),
    re.compile(r"(%27|')(%6F|o|%4F)(%72|r|%52)", re.IGNORECASE),
    re.compile(r"exec(\s|\+)+(s|x)p\w+", re.IGNORECASE),
]

NOSQL_INJECTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"\$where", r"\$regex", r"\$ne\b", r"\$gt", r"\$lt", r"\$or\b", r"\$and\b", r"javascript")
]


def _sanitize_string(value: str) -> str:
    for pattern in _SCRIPT_PATTERNS:
        value = pattern.sub("", value)
    return value.strip()


def sanitize_input(value: Any) -> Any:
    """Recursively strip script payloads from strings, list items and dict keys/values."""
    if isinstance(value, str):
        return _sanitize_string(value)
    if isinstance(value, list):
        return [sanitize_input(item) for item in value]
    if isinstance(value, dict):
        return {
            (_sanitize_string(k) if isinstance(k, str) else k): sanitize_input(v)
            for k, v in value.items()
        }
    return value


def contains_sql_injection(text: str) -> bool:
    return any(p.search(text) for p in SQL_INJECTION_PATTERNS)


def contains_nosql_injection(data: Any) -> bool:
    """Mongo-style operator keys or script payloads inside a structured body."""
    if not isinstance(data, (dict, list)):
        return False
    serialized = json.dumps(data, default=str)
    return any(p.search(serialized) for p in NOSQL_INJECTION_PATTERNS)


def contains_injection_attack(data: Any) -> bool:
    if isinstance(data, str):
        return contains_sql_injection(data)
    return contains_nosql_injection(data)


def validate_pagination(page: Optional[int] = None, limit: Optional[int] = None) -> tuple[int, int]:
    """Clamp to page >= 1 and 1 <= limit <= 100 (defaults 1 and 10)."""
    validated_page = max(1, int(page or 1))
    validated_limit = min(100, max(1, int(limit or 10)))
    return validated_page, validated_limit

