"""Tool schema definitions."""

from __future__ import annotations

from typing import Any

_SCHEMA = "http://json-schema.org/draft-07/schema#"

_TIMEOUT_PROPERTY: dict[str, Any] = {
    "type": "number",
    "exclusiveMinimum": 0,
    "description": "Per-command timeout in seconds (default: MCP_BRIDGE_COMMAND_TIMEOUT)",
}


def _tool(name: str, description: str, properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    props = dict(properties or {})
    if name not in {"browser_status", "browser_check_connection"}:
        props["timeout"] = _TIMEOUT_PROPERTY
    schema: dict[str, Any] = {"$schema": _SCHEMA, "type": "object", "properties": props}
    if required:
        schema["required"] = required
    return {"name": name, "description": description, "inputSchema": schema}


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        "browser_status",
        """Bridge status: extension connection, ports, last activity, inbound message count.

RESPONSE EXAMPLE:
{"success": true, "status": {"connected": true, "wsPort": 8765, "httpPort": 8103,
 "lastActivity": "2026-01-01T12:00:00.000Z", "messageCount": 4}}""",
    ),
    _tool("browser_check_connection", "Check whether the browser extension is connected (non-blocking)."),
    _tool(
        "browser_get_page_content",
        "Read the active tab: url, title, visible text, metadata, links and images.",
    ),
    _tool("browser_get_page_html", "Read the active tab's full HTML."),
    _tool("browser_get_selection", "Read the text currently selected in the active tab."),
    _tool(
        "browser_execute_script",
        "Execute JavaScript in the active tab and return its result.",
        {"script": {"type": "string", "minLength": 1, "description": "JavaScript source"}},
        ["script"],
    ),
    _tool(
        "browser_click_element",
        "Click the first element matching a CSS selector in the active tab.",
        {"selector": {"type": "string", "minLength": 1, "description": "CSS selector"}},
        ["selector"],
    ),
    _tool(
        "browser_type_text",
        "Type text into the element matching a CSS selector.",
        {
            "selector": {"type": "string", "minLength": 1, "description": "CSS selector"},
            "text": {"type": "string", "minLength": 1, "description": "Text to type"},
        },
        ["selector", "text"],
    ),
    _tool(
        "browser_navigate",
        "Navigate the active tab to a URL.",
        {"url": {"type": "string", "minLength": 1, "description": "Destination URL"}},
        ["url"],
    ),
    _tool(
        "browser_take_screenshot",
        "Capture a screenshot of the active tab.",
        {"fullPage": {"type": "boolean", "default": False, "description": "Capture the full page"}},
    ),
    _tool(
        "browser_get_console_logs",
        "Read console messages captured in the active tab.",
        {
            "limit": {"type": "integer", "minimum": 1, "description": "Return only the last N entries"},
            "types": {
                "type": "array",
                "items": {"type": "string", "enum": ["log", "info", "warn", "error", "debug"]},
                "description": "Filter by console method",
            },
            "since": {"type": "string", "description": "ISO timestamp; only entries at or after it"},
        },
    ),
    _tool("browser_clear_console_logs", "Clear the console messages captured in the active tab."),
]
