from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from .connection import ConnectionManager
from .errors import CommandTimeoutError, ConnectionLostError, NotConnectedError, ValidationError
from .pending import PendingRequest, PendingRequests
from .protocol import CommandFrame, RequestIdFactory

logger = logging.getLogger("mcp.browser_control.dispatcher")


class CommandDispatcher:
    """Turns (command, params) into a correlated frame and awaits its single outcome."""

    def __init__(
        self,
        connections: ConnectionManager,
        pending: PendingRequests,
        *,
        default_timeout: float = 30.0,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._connections = connections
        self._pending = pending
        self.default_timeout = float(default_timeout)
        self._new_id = id_factory or RequestIdFactory()

    def _next_request_id(self) -> str:
        request_id = self._new_id()
        while request_id in self._pending:
            request_id = self._new_id()
        return request_id

    async def dispatch(self, command: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        if not isinstance(command, str) or not command.strip():
            raise ValidationError("command is required")
        budget = self.default_timeout if timeout is None else float(timeout)
        if budget <= 0:
            raise ValidationError("timeout must be positive")

        conn = self._connections.active
        if conn is None or not conn.open:
            raise NotConnectedError()

        loop = asyncio.get_running_loop()
        frame = CommandFrame(request_id=self._next_request_id(), command=command, params=dict(params or {}))
        entry = PendingRequest(
            request_id=frame.request_id,
            command=command,
            future=loop.create_future(),
            timeout=budget,
            created_at=time.time(),
        )
        entry.timer = loop.call_later(budget, self._expire, frame.request_id)
        self._pending.add(entry)

        try:
            try:
                await conn.peer.send(frame.encode())
            except Exception as exc:  # noqa: BLE001
                failed = self._pending.pop(frame.request_id)
                if failed is not None:
                    failed.reject(ConnectionLostError(f"Failed to send {command} to extension: {exc}"))
                logger.info("command send failed command=%s requestId=%s: %s", command, frame.request_id, exc)
            else:
                logger.info("command sent command=%s requestId=%s", command, frame.request_id)
            return await entry.future
        except asyncio.CancelledError:
            # The caller gave up; nobody is left to receive an outcome.
            self._pending.pop(frame.request_id)
            raise

    def _expire(self, request_id: str) -> None:
        entry = self._pending.pop(request_id)
        if entry is None:
            return
        logger.warning("command timed out command=%s requestId=%s after %.3fs", entry.command, request_id, entry.timeout)
        entry.reject(CommandTimeoutError(entry.command, entry.timeout))
