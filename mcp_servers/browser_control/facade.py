"""
Browser control facade.

`BrowserBridge` is the synchronous surface callers use. Each operation
validates its input, dispatches a correlated command to the extension over the
bridge loop and returns an envelope:

    {"success": True, "result": ...}
    {"success": False, "error": "...", "code": "timeout"}

Operations never raise; `execute()` is the raising variant for programmatic use.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import CancelledError as FuturesCancelledError
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any

from .config import BridgeConfig
from .connection import CONNECTED, DISCONNECTED, Connection, ConnectionManager
from .dispatcher import CommandDispatcher
from .errors import BridgeError, CommandTimeoutError, NotConnectedError, ValidationError
from .pending import PendingRequests
from .router import ResponseRouter
from .stats import BridgeStats

logger = logging.getLogger("mcp.browser_control.facade")

# Extra wait on the calling thread beyond the command budget; the loop-side timer
# normally settles the call first.
RESULT_GRACE_S = 1.0


@dataclass(frozen=True, slots=True)
class Operation:
    name: str
    command: str
    required: tuple[str, ...] = ()
    flags: tuple[tuple[str, bool], ...] = ()
    # Passed through only when present: name -> accepted type.
    optional: tuple[tuple[str, type], ...] = ()


OPERATIONS: dict[str, Operation] = {
    op.name: op
    for op in (
        Operation("content", "getPageContent"),
        Operation("html", "getPageHTML"),
        Operation("selection", "getSelection"),
        Operation("script", "executeScript", required=("script",)),
        Operation("click", "clickElement", required=("selector",)),
        Operation("type", "typeText", required=("selector", "text")),
        Operation("navigate", "navigate", required=("url",)),
        Operation("screenshot", "takeScreenshot", flags=(("fullPage", False),)),
        Operation("consoleLogs", "getConsoleLogs", optional=(("limit", int), ("types", list), ("since", str))),
        Operation("clearConsoleLogs", "clearConsoleLogs"),
    )
}


def build_params(op: Operation, body: dict[str, Any] | None) -> dict[str, Any]:
    """Pick and validate the operation's fields from a caller body."""
    if body is not None and not isinstance(body, dict):
        raise ValidationError("request body must be a JSON object")
    body = body or {}

    missing = [name for name in op.required if not isinstance(body.get(name), str) or not body.get(name)]
    if missing:
        if len(missing) == 1 and len(op.required) == 1:
            raise ValidationError(f"{missing[0]} parameter is required")
        raise ValidationError(f"{' and '.join(op.required)} parameters are required")

    params: dict[str, Any] = {name: body[name] for name in op.required}
    for name, default in op.flags:
        params[name] = bool(body.get(name, default))
    for name, kind in op.optional:
        value = body.get(name)
        if value is None:
            continue
        if not isinstance(value, kind) or isinstance(value, bool):
            raise ValidationError(f"{name} must be of type {kind.__name__}")
        params[name] = value
    if "limit" in params and params["limit"] <= 0:
        raise ValidationError("limit must be positive")
    if "types" in params and not all(isinstance(t, str) for t in params["types"]):
        raise ValidationError("types must be a list of strings")
    return params


def error_envelope(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, BridgeError):
        return {"success": False, "error": str(exc), "code": exc.code}
    return {"success": False, "error": str(exc) or type(exc).__name__, "code": "internal_error"}


class BrowserBridge:
    def __init__(self, config: BridgeConfig | None = None) -> None:
        self.config = config or BridgeConfig.from_env()
        self.stats = BridgeStats()
        self.pending = PendingRequests()
        self.router = ResponseRouter(self.pending, self.stats)
        self.connections = ConnectionManager(
            self.config,
            pending=self.pending,
            on_frame=self.router.handle_frame,
            stats=self.stats,
        )
        self.dispatcher = CommandDispatcher(
            self.connections,
            self.pending,
            default_timeout=self.config.command_timeout,
        )
        self.connections.add_listener(CONNECTED, self._on_connected)
        self.connections.add_listener(DISCONNECTED, self._on_disconnected)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        self.connections.start(wait_timeout=wait_timeout)

    def stop(self, *, timeout: float = 5.0) -> None:
        self.connections.stop(timeout=timeout)

    def __enter__(self) -> BrowserBridge:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def _on_connected(self, conn: Connection) -> None:
        logger.info("extension connected to bridge (remote=%s)", conn.remote)

    def _on_disconnected(self, conn: Connection) -> None:
        logger.info("extension disconnected from bridge (remote=%s)", conn.remote)

    # ─────────────────────────────────────────────────────────────────────────
    # Status (snapshots, never block)
    # ─────────────────────────────────────────────────────────────────────────

    def is_connected(self) -> bool:
        return self.connections.is_connected()

    def get_status(self) -> dict[str, Any]:
        return {
            "connected": self.is_connected(),
            "lastActivity": self.stats.last_activity_iso(),
            "messageCount": int(self.stats.message_count),
        }

    def status_envelope(self) -> dict[str, Any]:
        status = self.get_status()
        return {
            "success": True,
            "status": {
                "connected": status["connected"],
                "wsPort": int(self.connections.port),
                "httpPort": int(self.config.http_port),
                "lastActivity": status["lastActivity"],
                "messageCount": status["messageCount"],
            },
        }

    def check_connection(self) -> dict[str, Any]:
        connected = self.is_connected()
        return {
            "success": True,
            "connected": connected,
            "message": "Extension is connected" if connected else "Extension not connected",
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────────────────

    def execute(self, command: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        """Dispatch a command and block for its outcome. Raises BridgeError subclasses."""
        budget = self.config.command_timeout if timeout is None else float(timeout)
        if budget <= 0:
            raise ValidationError("timeout must be positive")
        loop = self.connections.loop
        if loop is None or not loop.is_running() or not self.connections.is_connected():
            raise NotConnectedError()
        if self.connections.in_loop_thread():
            raise BridgeError("execute() cannot be called from the bridge loop thread; await dispatcher.dispatch()")

        fut = asyncio.run_coroutine_threadsafe(self.dispatcher.dispatch(command, params, timeout=budget), loop)
        try:
            return fut.result(timeout=budget + RESULT_GRACE_S)
        except FuturesTimeoutError:
            fut.cancel()
            raise CommandTimeoutError(command, budget) from None
        except FuturesCancelledError:
            raise NotConnectedError("Bridge stopped before the command completed") from None

    def invoke(self, operation: str, body: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        try:
            op = OPERATIONS.get(operation)
            if op is None:
                raise ValidationError(f"Unknown operation: {operation}")
            params = build_params(op, body)
            result = self.execute(op.command, params, timeout=timeout)
        except BridgeError as exc:
            logger.info("operation failed operation=%s code=%s: %s", operation, exc.code, exc)
            return error_envelope(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("operation crashed operation=%s", operation)
            return error_envelope(exc)
        return {"success": True, "result": result}

    def get_page_content(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("content", timeout=timeout)

    def get_page_html(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("html", timeout=timeout)

    def get_selection(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("selection", timeout=timeout)

    def execute_script(self, script: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("script", {"script": script}, timeout=timeout)

    def click_element(self, selector: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("click", {"selector": selector}, timeout=timeout)

    def type_text(self, selector: str, text: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("type", {"selector": selector, "text": text}, timeout=timeout)

    def navigate(self, url: str, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("navigate", {"url": url}, timeout=timeout)

    def take_screenshot(self, full_page: bool = False, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("screenshot", {"fullPage": full_page}, timeout=timeout)

    def get_console_logs(
        self,
        *,
        limit: int | None = None,
        types: list[str] | None = None,
        since: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        return self.invoke("consoleLogs", {"limit": limit, "types": types, "since": since}, timeout=timeout)

    def clear_console_logs(self, *, timeout: float | None = None) -> dict[str, Any]:
        return self.invoke("clearConsoleLogs", timeout=timeout)
