"""
Tool registry with dispatch table for the MCP server.

Every browser tool maps onto one facade operation; the handler copies the
tool arguments into the operation body and renders the envelope.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .types import ToolHandler, ToolResult

if TYPE_CHECKING:
    from ..facade import BrowserBridge

# tool name -> facade operation
OPERATION_TOOLS: dict[str, str] = {
    "browser_get_page_content": "content",
    "browser_get_page_html": "html",
    "browser_get_selection": "selection",
    "browser_execute_script": "script",
    "browser_click_element": "click",
    "browser_type_text": "type",
    "browser_navigate": "navigate",
    "browser_take_screenshot": "screenshot",
    "browser_get_console_logs": "consoleLogs",
    "browser_clear_console_logs": "clearConsoleLogs",
}


class ToolRegistry:
    """Registry for tool handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, name: str, handler: ToolHandler) -> None:
        """Register a tool handler."""
        self._handlers[name] = handler

    def register_many(self, handlers: dict[str, ToolHandler]) -> None:
        """Register multiple handlers at once."""
        self._handlers.update(handlers)

    def has(self, name: str) -> bool:
        """Check if handler exists."""
        return name in self._handlers

    def dispatch(self, name: str, bridge: BrowserBridge, arguments: dict[str, Any]) -> ToolResult:
        """
        Dispatch tool call to appropriate handler.

        Raises:
            KeyError: If tool not found
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise KeyError(f"Unknown tool: {name}")
        return handler(bridge, arguments)

    @property
    def tool_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._handlers.keys())

    def __len__(self) -> int:
        return len(self._handlers)


def _timeout_arg(arguments: dict[str, Any]) -> float | None:
    raw = arguments.get("timeout")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _operation_handler(operation: str) -> ToolHandler:
    def handler(bridge: BrowserBridge, arguments: dict[str, Any]) -> ToolResult:
        body = {k: v for k, v in arguments.items() if k != "timeout"}
        envelope = bridge.invoke(operation, body, timeout=_timeout_arg(arguments))
        return ToolResult.from_envelope(envelope)

    handler.__name__ = f"handle_{operation}"
    return handler


def _handle_status(bridge: BrowserBridge, arguments: dict[str, Any]) -> ToolResult:  # noqa: ARG001
    return ToolResult.from_envelope(bridge.status_envelope())


def _handle_check_connection(bridge: BrowserBridge, arguments: dict[str, Any]) -> ToolResult:  # noqa: ARG001
    return ToolResult.from_envelope(bridge.check_connection())


def create_default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register("browser_status", _handle_status)
    registry.register("browser_check_connection", _handle_check_connection)
    registry.register_many({name: _operation_handler(op) for name, op in OPERATION_TOOLS.items()})
    return registry
