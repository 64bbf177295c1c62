"""
Type definitions for MCP server responses and handlers.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..facade import BrowserBridge

_DATA_URL_PREFIX = "data:"


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


def _split_data_url(value: Any) -> tuple[str, str] | None:
    """Return (mime_type, base64) for a `data:<mime>;base64,<payload>` string."""
    if not isinstance(value, str) or not value.startswith(_DATA_URL_PREFIX):
        return None
    header, sep, payload = value.partition(",")
    if not sep or not header.endswith(";base64") or not payload:
        return None
    mime = header[len(_DATA_URL_PREFIX) : -len(";base64")] or "image/png"
    if not mime.startswith("image/"):
        return None
    return mime, payload


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # The envelope the facade returned; not part of the MCP wire format.
    data: Any | None = None

    @classmethod
    def json(cls, data: Any, *, is_error: bool = False) -> ToolResult:
        text = json.dumps(data, ensure_ascii=False, default=str)
        return cls(content=[ToolContent(type="text", text=text)], is_error=is_error, data=data)

    @classmethod
    def error(cls, message: str, *, tool: str | None = None, code: str | None = None) -> ToolResult:
        payload: dict[str, Any] = {"success": False, "error": message}
        if code:
            payload["code"] = code
        if tool:
            payload["tool"] = tool
        return cls.json(payload, is_error=True)

    @classmethod
    def from_envelope(cls, envelope: dict[str, Any]) -> ToolResult:
        """Render a facade envelope; screenshot data URLs also become image content."""
        ok = bool(envelope.get("success"))
        result = envelope.get("result")
        if isinstance(result, dict):
            result = result.get("dataUrl") or result.get("screenshot")
        image = _split_data_url(result) if ok else None
        if image is None:
            return cls.json(envelope, is_error=not ok)

        mime, payload = image
        summary = {"success": True, "result": f"<image {mime} base64 len={len(payload)}>"}
        return cls(
            content=[
                ToolContent(type="text", text=json.dumps(summary, ensure_ascii=False)),
                ToolContent(type="image", data=payload, mime_type=mime),
            ],
            data=envelope,
        )

    def to_content_list(self) -> list[dict[str, Any]]:
        """Convert to MCP content list format."""
        return [c.to_dict() for c in self.content]


ToolHandler = Callable[["BrowserBridge", dict[str, Any]], ToolResult]
