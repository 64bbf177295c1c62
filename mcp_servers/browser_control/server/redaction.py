"""Redaction for tool-call logging.

Typed text and scripts can carry credentials, and screenshot results are large
base64 blobs; neither belongs in logs.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_SUBSTRINGS = (
    "token",
    "secret",
    "password",
    "passwd",
    "pwd",
    "authorization",
    "cookie",
    "session",
    "jwt",
    "bearer",
    "api-key",
    "api_key",
    "apikey",
)

# "auth" only as an exact key, so "author" stays readable.
_SENSITIVE_EXACT = {"auth"}

# tool name -> argument keys summarized instead of logged
_TOOL_REDACTIONS: dict[str, set[str]] = {
    "browser_type_text": {"text"},
    "browser_execute_script": {"script"},
}

_MAX_LOGGED_RESULT_CHARS = 512


def is_sensitive_key(key: str) -> bool:
    k = (key or "").strip().lower()
    if not k:
        return False
    if k in _SENSITIVE_EXACT:
        return True
    return any(s in k for s in _SENSITIVE_SUBSTRINGS)


def redacted_summary(value: Any) -> str:
    if value is None:
        return "<redacted>"
    if isinstance(value, (bytes, bytearray)):
        return f"<redacted bytes len={len(value)}>"
    if isinstance(value, str):
        return f"<redacted str len={len(value)}>"
    if isinstance(value, (list, tuple, set)):
        return f"<redacted list len={len(value)}>"
    if isinstance(value, dict):
        return f"<redacted dict keys={len(value)}>"
    return "<redacted>"


def redact_url(url: str) -> str:
    """Drop userinfo and mask sensitive query parameters; other URLs come back unchanged."""
    if not isinstance(url, str) or not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    changed = False
    netloc = parts.netloc
    if "@" in netloc:
        netloc = netloc.split("@", 1)[1]
        changed = True

    # OAuth implicit flows put tokens in the fragment using query syntax.
    query, query_changed = _redact_query(parts.query)
    fragment, fragment_changed = _redact_query(parts.fragment) if "=" in parts.fragment else (parts.fragment, False)

    if not (changed or query_changed or fragment_changed):
        return url
    return urlunsplit((parts.scheme, netloc, parts.path, query, fragment))


def _redact_query(query: str) -> tuple[str, bool]:
    if not query:
        return query, False
    pairs = parse_qsl(query, keep_blank_values=True)
    out_pairs = [(k, "<redacted>" if v and is_sensitive_key(k) else v) for k, v in pairs]
    if out_pairs == pairs:
        return query, False
    return urlencode(out_pairs, doseq=True), True


def redact_tool_arguments(tool: str, args: dict[str, Any]) -> dict[str, Any]:
    """Redact tool arguments for safe logging."""
    return _redact_any(args, tool=tool, key=None)


def redact_result_for_log(payload: Any) -> Any:
    """Shorten long strings (page HTML, screenshot data URLs) in a tool result."""
    if isinstance(payload, dict):
        return {k: redact_result_for_log(v) for k, v in payload.items()}
    if isinstance(payload, list):
        return [redact_result_for_log(v) for v in payload]
    if isinstance(payload, str) and len(payload) > _MAX_LOGGED_RESULT_CHARS:
        if payload.startswith("data:image/"):
            return f"<omitted image len={len(payload)}>"
        return payload[:_MAX_LOGGED_RESULT_CHARS] + f"… <truncated len={len(payload)}>"
    return payload


def _redact_any(value: Any, *, tool: str, key: str | None) -> Any:
    if isinstance(value, dict):
        return {k: _redact_any(v, tool=tool, key=str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact_any(v, tool=tool, key=key) for v in value]

    lk = (key or "").lower()
    if isinstance(value, str) and lk == "url":
        return redact_url(value)
    if lk in _TOOL_REDACTIONS.get(tool, set()):
        return redacted_summary(value)
    if lk and is_sensitive_key(lk):
        return redacted_summary(value)
    return value
