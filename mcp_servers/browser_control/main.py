"""
MCP server for browser control through the Chrome extension bridge.

This module provides the main entry point and protocol handling.
Tool dispatch is handled via registry pattern in server/registry.py; every
tool call ends up as a correlated command on the extension WebSocket.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

from .config import BridgeConfig
from .errors import BridgeError
from .facade import BrowserBridge
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
    tools_list,
)
from .server.redaction import redact_result_for_log, redact_tool_arguments
from .server.registry import create_default_registry
from .server.types import ToolResult

logger = logging.getLogger("mcp.browser_control")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "LATEST_PROTOCOL_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "main",
]


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    data = json.dumps(payload, ensure_ascii=False)
    sys.stdout.buffer.write((data + "\n").encode())
    sys.stdout.buffer.flush()


def _read_message() -> dict[str, Any] | None:
    """Read JSON-RPC message from stdin. Returns None on EOF, {} for a blank or broken line."""
    line = sys.stdin.buffer.readline()
    if not line:
        return None
    line = line.strip()
    if not line:
        return {}
    try:
        msg = json.loads(line.decode())
    except ValueError:
        logger.warning("ignoring malformed JSON-RPC line (len=%d)", len(line))
        return {}
    if not isinstance(msg, dict):
        return {}
    if os.environ.get("MCP_TRACE"):
        logger.info("recv method=%s id=%s", msg.get("method"), msg.get("id"))
    return msg


class McpServer:
    """MCP Server with registry-based tool dispatch."""

    def __init__(self, bridge: BrowserBridge | None = None) -> None:
        self.bridge = bridge if bridge is not None else BrowserBridge(BridgeConfig.from_env())
        self.registry = create_default_registry()

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> None:
        """Handle initialize request."""
        requested = (params or {}).get("protocolVersion") if isinstance(params, dict) else None
        protocol = select_protocol(requested)
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": initialize_result(protocol)})

    def handle_list_tools(self, request_id: Any) -> None:
        """Handle tools/list request."""
        _write_message({"jsonrpc": "2.0", "id": request_id, "result": {"tools": tools_list()}})

    def _log_call(self, name: str, arguments: dict[str, Any]) -> None:
        """Log tool call with sanitized arguments."""
        logger.info("tool=%s args=%s", name, redact_tool_arguments(name, arguments))

    def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> None:
        """Handle tool call via registry dispatch."""
        if not isinstance(arguments, dict):
            arguments = {}
        self._log_call(name, arguments)

        try:
            if not name:
                result = ToolResult.error("Missing tool name", code="validation_error")
            elif not self.registry.has(name):
                result = ToolResult.error(f"Unknown tool: {name}", tool=name, code="validation_error")
            else:
                result = self.registry.dispatch(name, self.bridge, arguments)
        except BridgeError as e:
            logger.info("bridge_error tool=%s code=%s %s", name, e.code, str(e))
            result = ToolResult.error(str(e), tool=name, code=e.code)
        except Exception as exc:
            logger.exception("tool_call_failed")
            result = ToolResult.error(str(exc), tool=name, code="internal_error")

        if os.environ.get("MCP_TRACE"):
            logger.info("tool=%s result=%s", name, redact_result_for_log(result.data))

        _write_message(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": {"content": result.to_content_list(), "isError": result.is_error},
            }
        )

    def dispatch(self, message: dict[str, Any]) -> None:
        """Dispatch incoming JSON-RPC message to appropriate handler."""
        if not message:
            return

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if method == "initialize":
            self.handle_initialize(request_id, params)
        elif method == "notifications/initialized":
            return
        elif method in ("tools/list", "list_tools"):
            self.handle_list_tools(request_id)
        elif method in ("tools/call", "call_tool"):
            name = params.get("name")
            arguments = params.get("arguments") or params.get("args") or {}
            self.handle_call_tool(request_id, name or "", arguments)
        elif method == "ping":
            _write_message({"jsonrpc": "2.0", "id": request_id, "result": {}})
        elif request_id is None:
            # Unknown notification: nothing to answer.
            return
        else:
            _write_message(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32601, "message": f"Method {method} not found"},
                }
            )


def main() -> None:
    """Main entry point: start the bridge, serve MCP over stdio, stop the bridge on EOF."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    server = McpServer()
    try:
        server.bridge.start()
    except BridgeError as exc:
        logger.error("bridge_start_failed: %s", exc)
        raise SystemExit(1) from exc

    try:
        while True:
            message = _read_message()
            if message is None:
                break
            server.dispatch(message)
    finally:
        try:
            server.bridge.stop()
        except BridgeError as exc:
            logger.warning("bridge_stop_incomplete: %s", exc)


if __name__ == "__main__":
    main()
