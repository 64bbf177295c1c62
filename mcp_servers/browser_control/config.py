from __future__ import annotations

import os
from dataclasses import dataclass


def _env_raw(*names: str) -> tuple[str | None, str]:
    for name in names:
        raw = os.environ.get(name)
        if raw is not None and raw.strip():
            return raw.strip(), name
    return None, names[0]


def _env_int(*names: str, default: int) -> int:
    raw, name = _env_raw(*names)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(*names: str, default: float) -> float:
    raw, name = _env_raw(*names)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class BridgeConfig:
    ws_host: str = "127.0.0.1"
    ws_port: int = 8765
    http_port: int = 8103
    command_timeout: float = 30.0
    ping_interval: float = 30.0
    close_timeout: float = 2.0
    max_frame_bytes: int = 16_000_000

    def __post_init__(self) -> None:
        if not 0 <= int(self.ws_port) <= 65535:
            raise ValueError(f"ws_port out of range: {self.ws_port}")
        if not 0 <= int(self.http_port) <= 65535:
            raise ValueError(f"http_port out of range: {self.http_port}")
        if float(self.command_timeout) <= 0:
            raise ValueError("command_timeout must be positive")
        if float(self.ping_interval) <= 0:
            raise ValueError("ping_interval must be positive")
        if float(self.close_timeout) <= 0:
            raise ValueError("close_timeout must be positive")
        if int(self.max_frame_bytes) <= 0:
            raise ValueError("max_frame_bytes must be positive")

    @classmethod
    def from_env(cls) -> BridgeConfig:
        host, _ = _env_raw("MCP_BRIDGE_WS_HOST")
        return cls(
            ws_host=host or "127.0.0.1",
            # WS_PORT / PORT are the names the extension docs and container images use.
            ws_port=_env_int("MCP_BRIDGE_WS_PORT", "WS_PORT", default=8765),
            http_port=_env_int("MCP_BRIDGE_HTTP_PORT", "PORT", default=8103),
            command_timeout=_env_float("MCP_BRIDGE_COMMAND_TIMEOUT", default=30.0),
            ping_interval=_env_float("MCP_BRIDGE_PING_INTERVAL", default=30.0),
            close_timeout=_env_float("MCP_BRIDGE_CLOSE_TIMEOUT", default=2.0),
            max_frame_bytes=_env_int("MCP_BRIDGE_MAX_FRAME_BYTES", default=16_000_000),
        )
