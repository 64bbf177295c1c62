from __future__ import annotations

import json

import pytest

from mcp_servers.browser_control.config import BridgeConfig
from mcp_servers.browser_control.errors import ParseError
from mcp_servers.browser_control.protocol import CommandFrame, RequestIdFactory, parse_response_frame

_ENV_NAMES = (
    "MCP_BRIDGE_WS_HOST",
    "MCP_BRIDGE_WS_PORT",
    "WS_PORT",
    "MCP_BRIDGE_HTTP_PORT",
    "PORT",
    "MCP_BRIDGE_COMMAND_TIMEOUT",
    "MCP_BRIDGE_PING_INTERVAL",
    "MCP_BRIDGE_CLOSE_TIMEOUT",
    "MCP_BRIDGE_MAX_FRAME_BYTES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_config_defaults() -> None:
    cfg = BridgeConfig.from_env()
    assert cfg.ws_host == "127.0.0.1"
    assert cfg.ws_port == 8765
    assert cfg.http_port == 8103
    assert cfg.command_timeout == 30.0
    assert cfg.ping_interval == 30.0
    assert cfg.close_timeout == 2.0
    assert cfg.max_frame_bytes == 16_000_000


def test_config_reads_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCP_BRIDGE_WS_HOST", "0.0.0.0")
    monkeypatch.setenv("MCP_BRIDGE_WS_PORT", "9001")
    monkeypatch.setenv("MCP_BRIDGE_HTTP_PORT", "9002")
    monkeypatch.setenv("MCP_BRIDGE_COMMAND_TIMEOUT", "2.5")
    monkeypatch.setenv("MCP_BRIDGE_PING_INTERVAL", "10")
    monkeypatch.setenv("MCP_BRIDGE_CLOSE_TIMEOUT", "0.5")
    cfg = BridgeConfig.from_env()
    assert (cfg.ws_host, cfg.ws_port, cfg.http_port) == ("0.0.0.0", 9001, 9002)
    assert cfg.command_timeout == 2.5
    assert cfg.ping_interval == 10.0
    assert cfg.close_timeout == 0.5


def test_config_legacy_port_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WS_PORT", "7001")
    monkeypatch.setenv("PORT", "7002")
    cfg = BridgeConfig.from_env()
    assert (cfg.ws_port, cfg.http_port) == (7001, 7002)

    monkeypatch.setenv("MCP_BRIDGE_WS_PORT", "7101")
    assert BridgeConfig.from_env().ws_port == 7101


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("MCP_BRIDGE_WS_PORT", "eighty"),
        ("MCP_BRIDGE_WS_PORT", "70000"),
        ("MCP_BRIDGE_COMMAND_TIMEOUT", "0"),
        ("MCP_BRIDGE_COMMAND_TIMEOUT", "soon"),
        ("MCP_BRIDGE_PING_INTERVAL", "-1"),
        ("MCP_BRIDGE_CLOSE_TIMEOUT", "0"),
    ],
)
def test_config_rejects_bad_values(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        BridgeConfig.from_env()


def test_parse_error_names_the_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WS_PORT", "abc")
    with pytest.raises(ValueError, match="WS_PORT"):
        BridgeConfig.from_env()


# ═══════════════════════════════════════════════════════════════════════════════
# WIRE FORMAT
# ═══════════════════════════════════════════════════════════════════════════════


def test_command_frame_wire_shape() -> None:
    frame = CommandFrame(request_id="req_1", command="navigate", params={"url": "https://example.test"})
    assert json.loads(frame.encode()) == {
        "requestId": "req_1",
        "command": "navigate",
        "params": {"url": "https://example.test"},
    }


def test_request_ids_are_unique() -> None:
    new_id = RequestIdFactory()
    ids = {new_id() for _ in range(500)}
    assert len(ids) == 500
    assert all(i.startswith("req_") for i in ids)


def test_parse_response_frame_variants() -> None:
    ok = parse_response_frame('{"requestId": "a", "result": {"x": 1}}')
    assert (ok.request_id, ok.result, ok.is_error) == ("a", {"x": 1}, False)

    numeric = parse_response_frame(b'{"requestId": 7, "result": null}')
    assert numeric.request_id == "7"

    err = parse_response_frame('{"requestId": "b", "error": {"message": "No active tab found"}}')
    assert err.is_error and err.error == "No active tab found"

    # Falsy error fields do not turn a response into a failure.
    for empty in ("null", "false", '""', "0", "[]", "{}"):
        assert parse_response_frame(f'{{"requestId": "c", "error": {empty}, "result": 1}}').is_error is False

    ping = parse_response_frame('{"type": "ping"}')
    assert ping.kind == "ping" and ping.request_id is None


@pytest.mark.parametrize("raw", ["", "{", "[]", "3", b"\xff"])
def test_parse_response_frame_rejects_garbage(raw: str | bytes) -> None:
    with pytest.raises(ParseError):
        parse_response_frame(raw)


def test_boolean_request_id_is_treated_as_missing() -> None:
    assert parse_response_frame('{"requestId": true, "result": 1}').request_id is None
