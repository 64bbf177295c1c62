from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .config import BridgeConfig
from .errors import BridgeError, ConnectionLostError
from .pending import PendingRequests
from .stats import BridgeStats

logger = logging.getLogger("mcp.browser_control.connection")

CONNECTED = "connected"
DISCONNECTED = "disconnected"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ConnectionState(str, Enum):
    INIT = "init"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class Peer(Protocol):
    """What the bridge needs from the extension's end of the duplex channel."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    async def ping(self) -> Any: ...


@dataclass(slots=True)
class Connection:
    peer: Peer
    remote: str | None = None
    open: bool = True


@dataclass
class _Listeners:
    connected: list[Callable[[Connection], None]] = field(default_factory=list)
    disconnected: list[Callable[[Connection], None]] = field(default_factory=list)


class ConnectionManager:
    """WebSocket listener for the browser extension.

    - Sync lifecycle for callers (start/stop); the listener runs on an asyncio
      loop in a dedicated daemon thread.
    - At most one active extension connection. A newcomer replaces the old one,
      which is disconnected and closed explicitly.
    - All connection/frame handling happens on the loop thread: attach(), feed()
      and detach() are the only entry points and must be called there.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        pending: PendingRequests,
        on_frame: Callable[[str | bytes], Any],
        stats: BridgeStats | None = None,
    ) -> None:
        self.config = config
        self.host = config.ws_host
        self.port = int(config.ws_port)
        self._pending = pending
        self._on_frame = on_frame
        self._stats = stats if stats is not None else BridgeStats()
        self._listeners = _Listeners()

        self._state = ConnectionState.INIT
        self._active: Connection | None = None
        self._closing = False
        self._background: set[asyncio.Task[None]] = set()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._stopped: asyncio.Event | None = None
        self._bind_error: str | None = None

        # Typed as Any to stay independent of websockets' server class across versions.
        self._server: Any | None = None
        self._probe_task: asyncio.Task[None] | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Snapshots
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def active(self) -> Connection | None:
        return self._active

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    @property
    def listening(self) -> bool:
        return self._server is not None

    def is_connected(self) -> bool:
        conn = self._active
        return conn is not None and conn.open

    def in_loop_thread(self) -> bool:
        t = self._thread
        return t is not None and t is threading.current_thread()

    def add_listener(self, event: str, callback: Callable[[Connection], None]) -> None:
        if event == CONNECTED:
            self._listeners.connected.append(callback)
        elif event == DISCONNECTED:
            self._listeners.disconnected.append(callback)
        else:
            raise ValueError(f"unknown connection event: {event}")

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle (sync, owns a loop thread)
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        if self._state is ConnectionState.CLOSED:
            raise BridgeError("Bridge is closed; create a new one to listen again")
        if self._thread is not None and self._thread.is_alive():
            return

        self._ready.clear()
        self._bind_error = None
        t = threading.Thread(target=self._run_thread, name="browser-control-bridge", daemon=True)
        self._thread = t
        t.start()

        if not self._ready.wait(timeout=max(0.05, float(wait_timeout))):
            raise BridgeError(f"Bridge failed to start on {self.host}:{self.port} within {wait_timeout}s")
        if self._bind_error is not None:
            t.join(timeout=1.0)
            raise BridgeError(f"Bridge bind failed on {self.host}:{self.port}: {self._bind_error}")

    def stop(self, *, timeout: float = 5.0) -> None:
        """Shut down and join the loop thread. Always leaves the manager CLOSED."""
        if self.in_loop_thread():
            raise BridgeError("stop() cannot be called from the bridge loop thread; await aclose()")
        loop = self._loop
        t = self._thread
        try:
            if loop is not None and loop.is_running():
                fut = asyncio.run_coroutine_threadsafe(self.aclose(), loop)
                try:
                    fut.result(timeout=timeout)
                except FuturesTimeoutError:
                    fut.cancel()
                    with contextlib.suppress(RuntimeError):
                        loop.call_soon_threadsafe(self._abandon)
                    raise BridgeError(f"Bridge did not shut down within {timeout}s; listener force-closed") from None
        finally:
            if t is not None:
                t.join(timeout=timeout)
            self._thread = None
            self._closing = True
            self._state = ConnectionState.CLOSED

    def _abandon(self) -> None:
        """Last resort after a stalled aclose(): drop the listening sockets and end the loop."""
        server = self._server
        self._server = None
        listener = getattr(server, "server", None)
        if listener is not None:
            listener.close()
        if self._stopped is not None:
            self._stopped.set()

    def _run_thread(self) -> None:
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        try:
            await self.serve()
        except Exception as exc:  # noqa: BLE001
            self._bind_error = str(exc) or type(exc).__name__
            self._ready.set()
            return
        self._ready.set()
        stopped = self._stopped
        if stopped is not None:
            await stopped.wait()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle (async, runs on the current loop)
    # ─────────────────────────────────────────────────────────────────────────

    async def serve(self) -> None:
        """Bind the listener on the running loop and start the liveness probe."""
        from websockets.asyncio.server import serve

        if self._state is ConnectionState.CLOSED:
            raise BridgeError("Bridge is closed")

        self._loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        server = await serve(
            self._handle_socket,
            self.host,
            self.port,
            max_size=int(self.config.max_frame_bytes),
            # Liveness is probed by _probe_loop.
            ping_interval=None,
            close_timeout=float(self.config.close_timeout),
        )
        self._server = server
        with contextlib.suppress(Exception):
            self.port = int(list(server.sockets)[0].getsockname()[1])
        self._probe_task = self._loop.create_task(self._probe_loop())
        logger.info("bridge listening on %s:%s", self.host, self.port)

    async def aclose(self) -> None:
        """Close the active connection, then the listener. Returns once both are closed."""
        if self._state is ConnectionState.CLOSED:
            return
        self._closing = True

        try:
            probe = self._probe_task
            self._probe_task = None
            if probe is not None:
                probe.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await probe

            conn = self._active
            if conn is not None:
                self.detach(conn.peer, reason="shutdown")
                await self._close_peer(conn.peer)
        finally:
            server = self._server
            self._server = None
            if server is not None:
                server.close()
                await server.wait_closed()

            if self._background:
                await asyncio.gather(*list(self._background), return_exceptions=True)

            self._state = ConnectionState.CLOSED
            logger.info("bridge stopped")
            if self._stopped is not None:
                self._stopped.set()

    # ─────────────────────────────────────────────────────────────────────────
    # Transport events (loop thread only)
    # ─────────────────────────────────────────────────────────────────────────

    def attach(self, peer: Peer, *, remote: str | None = None) -> Connection:
        if self._closing or self._state is ConnectionState.CLOSED:
            raise BridgeError("Bridge is shutting down")

        previous = self._active
        if previous is not None and previous.peer is not peer:
            logger.info("replacing active extension connection (remote=%s)", previous.remote)
            self.detach(previous.peer, reason="replaced")
            self._close_later(previous.peer)

        conn = Connection(peer=peer, remote=remote)
        self._active = conn
        self._state = ConnectionState.CONNECTED
        self._stats.touch()
        logger.info("extension connected (remote=%s, port=%s)", remote, self.port)
        self._emit(self._listeners.connected, conn)
        return conn

    def feed(self, peer: Peer, raw: str | bytes) -> None:
        conn = self._active
        if conn is None or conn.peer is not peer or not conn.open:
            logger.debug("ignoring frame from inactive extension socket")
            return
        frame = self._on_frame(raw)
        if frame is not None and getattr(frame, "kind", None) == "ping" and getattr(frame, "request_id", None) is None:
            self._spawn(self._send_pong(conn))

    def detach(self, peer: Peer, *, reason: str = "closed") -> bool:
        """Disconnect path: reject every pending request, signal, then drop the connection."""
        conn = self._active
        if conn is None or conn.peer is not peer:
            return False
        conn.open = False
        rejected = self._pending.reject_all(
            lambda entry: ConnectionLostError(f"Extension disconnected ({reason}) while waiting for {entry.command}")
        )
        logger.info("extension disconnected (reason=%s, rejected=%d)", reason, rejected)
        self._state = ConnectionState.DISCONNECTED
        self._emit(self._listeners.disconnected, conn)
        self._active = None
        return True

    def _emit(self, callbacks: list[Callable[[Connection], None]], conn: Connection) -> None:
        for cb in list(callbacks):
            try:
                cb(conn)
            except Exception:  # noqa: BLE001
                logger.exception("connection listener failed")

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (async)
    # ─────────────────────────────────────────────────────────────────────────

    async def _handle_socket(self, ws: Any) -> None:
        from websockets.exceptions import ConnectionClosed

        if self._closing:
            with contextlib.suppress(Exception):
                await ws.close(code=1001, reason="bridge shutting down")
            return

        remote = None
        with contextlib.suppress(Exception):
            addr = ws.remote_address
            remote = f"{addr[0]}:{addr[1]}" if addr else None

        self.attach(ws, remote=remote)
        try:
            async for raw in ws:
                self.feed(ws, raw)
        except ConnectionClosed as exc:
            logger.info("extension socket closed abnormally: %s", exc)
        finally:
            self.detach(ws, reason="closed")

    async def _probe_loop(self) -> None:
        interval = float(self.config.ping_interval)
        while True:
            await asyncio.sleep(interval)
            conn = self._active
            if conn is None or not conn.open:
                continue
            try:
                waiter = await conn.peer.ping()
            except Exception as exc:  # noqa: BLE001
                # Death is reported by the transport's own close; the probe only pokes it.
                logger.debug("liveness probe failed: %s", exc)
                continue
            if isinstance(waiter, asyncio.Future):
                waiter.add_done_callback(lambda fut, c=conn: self._on_pong(c, fut))

    def _on_pong(self, conn: Connection, fut: asyncio.Future[Any]) -> None:
        if fut.cancelled() or fut.exception() is not None:
            return
        if self._active is conn:
            self._stats.touch()

    async def _send_pong(self, conn: Connection) -> None:
        with contextlib.suppress(Exception):
            await conn.peer.send(json.dumps({"type": "pong", "ts": _now_ms()}))

    async def _close_peer(self, peer: Peer) -> None:
        budget = float(self.config.close_timeout)
        try:
            # websockets aborts after close_timeout on its own; the margin covers other peers.
            await asyncio.wait_for(peer.close(), timeout=budget + 0.5)
        except asyncio.TimeoutError:
            logger.info("extension socket did not close within %.1fs; aborting", budget)
            transport = getattr(peer, "transport", None)
            if transport is not None:
                transport.abort()
        except Exception as exc:  # noqa: BLE001
            logger.debug("closing extension socket failed: %s", exc)

    def _close_later(self, peer: Peer) -> None:
        self._spawn(self._close_peer(peer))

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
