from __future__ import annotations

import io
import json
from typing import Any

import pytest

import mcp_servers.browser_control.main as mcp_server
from mcp_servers.browser_control.config import BridgeConfig
from mcp_servers.browser_control.errors import BridgeError, NotConnectedError, RemoteError
from mcp_servers.browser_control.facade import BrowserBridge
from mcp_servers.browser_control.server.registry import OPERATION_TOOLS, ToolRegistry, create_default_registry
from mcp_servers.browser_control.server.types import ToolResult


class FakeBridge(BrowserBridge):
    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        super().__init__(BridgeConfig(ws_port=8765, http_port=8103))
        self.responses = responses or {}
        self.calls: list[tuple[str, dict[str, Any], float | None]] = []

    def execute(self, command: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        self.calls.append((command, dict(params or {}), timeout))
        outcome = self.responses.get(command)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _server(monkeypatch: pytest.MonkeyPatch, bridge: BrowserBridge | None = None) -> tuple[mcp_server.McpServer, list[dict]]:
    sent: list[dict] = []
    monkeypatch.setattr(mcp_server, "_write_message", lambda payload: sent.append(payload))
    return mcp_server.McpServer(bridge=bridge or FakeBridge()), sent


def _payload(message: dict[str, Any]) -> dict[str, Any]:
    return json.loads(message["result"]["content"][0]["text"])


# ═══════════════════════════════════════════════════════════════════════════════
# PROTOCOL
# ═══════════════════════════════════════════════════════════════════════════════


def test_server_initialize(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.handle_initialize(request_id="init")
    result = sent[0]["result"]
    assert result["serverInfo"]["name"] == "browser-control"
    assert result["protocolVersion"] == mcp_server.LATEST_PROTOCOL_VERSION
    assert "tools" in result["capabilities"]
    assert "browser_status" in result["instructions"]


def test_initialize_respects_client_protocol(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.dispatch({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2024-11-05"}})
    assert sent[0]["result"]["protocolVersion"] == "2024-11-05"


def test_initialize_falls_back_to_latest(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.handle_initialize(request_id="init", params={"protocolVersion": "0.0.1"})
    assert sent[0]["result"]["protocolVersion"] == mcp_server.LATEST_PROTOCOL_VERSION


def test_server_list_tools_output(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.dispatch({"id": "1", "method": "tools/list"})
    tools = sent[0]["result"]["tools"]
    names = [t["name"] for t in tools]
    assert names[:2] == ["browser_status", "browser_check_connection"]
    assert set(names) == {"browser_status", "browser_check_connection", *OPERATION_TOOLS}
    for tool in tools:
        schema = tool["inputSchema"]
        assert schema["type"] == "object"
        assert ("timeout" in schema["properties"]) == (tool["name"] in OPERATION_TOOLS)
    type_text = next(t for t in tools if t["name"] == "browser_type_text")
    assert type_text["inputSchema"]["required"] == ["selector", "text"]


def test_every_listed_tool_has_a_handler() -> None:
    from mcp_servers.browser_control.server.contract import tools_list

    registry = create_default_registry()
    assert sorted(registry.tool_names) == sorted(t["name"] for t in tools_list())


def test_server_ping_and_notifications(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.dispatch({"method": "notifications/initialized"})
    srv.dispatch({"method": "notifications/cancelled", "params": {"requestId": 3}})
    srv.dispatch({})
    assert sent == []
    srv.dispatch({"id": 7, "method": "ping"})
    assert sent == [{"jsonrpc": "2.0", "id": 7, "result": {}}]


def test_server_unknown_method_error(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.dispatch({"id": "x", "method": "unknown"})
    assert sent and sent[0]["error"]["code"] == -32601


def test_read_message_handles_eof_and_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Stdin:
        def __init__(self, data: bytes) -> None:
            self.buffer = io.BytesIO(data)

    monkeypatch.setattr(mcp_server.sys, "stdin", _Stdin(b'{"id": 1, "method": "ping"}\n\nnot json\n[1]\n'))
    assert mcp_server._read_message() == {"id": 1, "method": "ping"}
    assert mcp_server._read_message() == {}
    assert mcp_server._read_message() == {}
    assert mcp_server._read_message() == {}
    assert mcp_server._read_message() is None


# ═══════════════════════════════════════════════════════════════════════════════
# TOOL CALLS
# ═══════════════════════════════════════════════════════════════════════════════


def test_call_tool_status_without_extension(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.dispatch({"id": 1, "method": "tools/call", "params": {"name": "browser_status", "arguments": {}}})
    assert sent[0]["result"]["isError"] is False
    payload = _payload(sent[0])
    assert payload["status"] == {
        "connected": False,
        "wsPort": 8765,
        "httpPort": 8103,
        "lastActivity": None,
        "messageCount": 0,
    }


def test_call_tool_check_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.handle_call_tool(request_id=1, name="browser_check_connection", arguments={})
    assert _payload(sent[0]) == {"success": True, "connected": False, "message": "Extension not connected"}


def test_call_tool_forwards_arguments_and_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    bridge = FakeBridge({"typeText": {"success": True, "message": "Typed text into: #q"}})
    srv, sent = _server(monkeypatch, bridge)
    srv.dispatch(
        {
            "id": 2,
            "method": "tools/call",
            "params": {"name": "browser_type_text", "arguments": {"selector": "#q", "text": "hunter2", "timeout": 4}},
        }
    )
    assert bridge.calls == [("typeText", {"selector": "#q", "text": "hunter2"}, 4.0)]
    assert sent[0]["result"]["isError"] is False
    assert _payload(sent[0])["result"]["message"] == "Typed text into: #q"


def test_call_tool_validation_error_is_tool_error(monkeypatch: pytest.MonkeyPatch) -> None:
    bridge = FakeBridge()
    srv, sent = _server(monkeypatch, bridge)
    srv.handle_call_tool(request_id=3, name="browser_navigate", arguments={})
    assert bridge.calls == []
    assert sent[0]["result"]["isError"] is True
    assert _payload(sent[0]) == {"success": False, "error": "url parameter is required", "code": "validation_error"}


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (NotConnectedError(), "not_connected"),
        (RemoteError("Element not found: #x"), "remote_error"),
    ],
)
def test_call_tool_bridge_failures_carry_codes(monkeypatch: pytest.MonkeyPatch, exc: Exception, code: str) -> None:
    srv, sent = _server(monkeypatch, FakeBridge({"clickElement": exc}))
    srv.handle_call_tool(request_id=4, name="browser_click_element", arguments={"selector": "#x"})
    assert sent[0]["result"]["isError"] is True
    payload = _payload(sent[0])
    assert payload["code"] == code
    assert payload["error"] == str(exc)


def test_call_tool_unknown_tool(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)
    srv.handle_call_tool(request_id=5, name="browser_scroll", arguments={})
    assert sent[0]["result"]["isError"] is True
    payload = _payload(sent[0])
    assert payload["code"] == "validation_error"
    assert payload["tool"] == "browser_scroll"


def test_call_tool_screenshot_returns_image_content(monkeypatch: pytest.MonkeyPatch) -> None:
    bridge = FakeBridge({"takeScreenshot": {"dataUrl": "data:image/png;base64,iVBORw0KGgo="}})
    srv, sent = _server(monkeypatch, bridge)
    srv.handle_call_tool(request_id=6, name="browser_take_screenshot", arguments={"fullPage": True})
    assert bridge.calls[0][:2] == ("takeScreenshot", {"fullPage": True})
    content = sent[0]["result"]["content"]
    assert content[1] == {"type": "image", "data": "iVBORw0KGgo=", "mimeType": "image/png"}
    assert "iVBORw0KGgo=" not in content[0]["text"]


def test_call_tool_handler_crash_is_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    srv, sent = _server(monkeypatch)

    def _boom(bridge: BrowserBridge, arguments: dict[str, Any]) -> ToolResult:
        raise RuntimeError("handler bug")

    srv.registry.register("browser_get_page_html", _boom)
    srv.handle_call_tool(request_id=7, name="browser_get_page_html", arguments={})
    payload = _payload(sent[0])
    assert payload["code"] == "internal_error"
    assert payload["error"] == "handler bug"


def test_registry_dispatch_unknown_raises() -> None:
    registry = ToolRegistry()
    assert len(registry) == 0
    with pytest.raises(KeyError):
        registry.dispatch("browser_status", FakeBridge(), {})


def test_from_envelope_keeps_non_image_results_as_json() -> None:
    result = ToolResult.from_envelope({"success": True, "result": {"html": "<p>x</p>"}})
    assert result.is_error is False
    assert [c["type"] for c in result.to_content_list()] == ["text"]
    assert json.loads(result.to_content_list()[0]["text"])["result"] == {"html": "<p>x</p>"}


def test_main_survives_incomplete_bridge_shutdown(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[str] = []

    class _StallingBridge:
        def __init__(self, config: BridgeConfig) -> None:
            self.config = config

        def start(self) -> None:
            events.append("start")

        def stop(self) -> None:
            events.append("stop")
            raise BridgeError("Bridge did not shut down within 5.0s; listener force-closed")

    class _Stdin:
        buffer = io.BytesIO(b"")

    monkeypatch.setattr(mcp_server, "BrowserBridge", _StallingBridge)
    monkeypatch.setattr(mcp_server.sys, "stdin", _Stdin())
    mcp_server.main()
    assert events == ["start", "stop"]
