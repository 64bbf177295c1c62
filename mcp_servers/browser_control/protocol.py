"""
Wire protocol between the bridge and the browser extension.

Outbound (bridge -> extension):
    {"requestId": "req_...", "command": "clickElement", "params": {...}}

Inbound (extension -> bridge):
    {"requestId": "req_...", "result": ...}
    {"requestId": "req_...", "error": "..."}

If both `result` and `error` are present, the error wins. The extension may
also send keepalive frames such as {"type": "ping"} without a requestId.
"""

from __future__ import annotations

import itertools
import json
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

from .errors import ParseError


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CommandFrame:
    request_id: str
    command: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"requestId": self.request_id, "command": self.command, "params": self.params}

    def encode(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class ResponseFrame:
    request_id: str | None
    result: Any = None
    error: str | None = None
    kind: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


def _error_message(raw: Any) -> str | None:
    if not raw:
        return None
    if isinstance(raw, dict):
        msg = raw.get("message")
        if isinstance(msg, str) and msg:
            return msg
        return json.dumps(raw, ensure_ascii=False)
    return str(raw)


def parse_response_frame(raw: str | bytes) -> ResponseFrame:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"frame is not valid UTF-8: {exc}") from exc
    try:
        msg = json.loads(raw)
    except ValueError as exc:
        raise ParseError(f"frame is not valid JSON: {exc}") from exc
    if not isinstance(msg, dict):
        raise ParseError(f"frame must be a JSON object, got {type(msg).__name__}")

    raw_id = msg.get("requestId")
    if isinstance(raw_id, bool):
        raw_id = None
    request_id = str(raw_id) if isinstance(raw_id, (str, int)) and str(raw_id) else None
    kind = msg.get("type") if isinstance(msg.get("type"), str) else None
    return ResponseFrame(
        request_id=request_id,
        result=msg.get("result"),
        error=_error_message(msg.get("error")),
        kind=kind,
    )


class RequestIdFactory:
    """Correlation ids: wall-clock ms, a monotonic counter and a random suffix."""

    def __init__(self, prefix: str = "req") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self._prefix}_{_now_ms()}_{next(self._counter)}_{secrets.token_hex(4)}"
