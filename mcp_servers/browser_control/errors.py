"""
Error taxonomy for the browser control bridge.

Every failure a caller can observe is a `BridgeError` subclass with a stable
`code`, so the caller-facing layer can map failures without string matching.
"""

from __future__ import annotations


class BridgeError(Exception):
    code = "bridge_error"

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(BridgeError):
    """Invalid caller input. Raised before anything reaches the network."""

    code = "validation_error"


class NotConnectedError(BridgeError):
    code = "not_connected"

    def __init__(self, message: str = "Extension not connected") -> None:
        super().__init__(message)


class CommandTimeoutError(BridgeError):
    code = "timeout"

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = float(timeout)
        super().__init__(f"Command timeout after {int(round(self.timeout * 1000))}ms: {command}")


class ConnectionLostError(BridgeError):
    code = "connection_lost"

    def __init__(self, message: str = "Extension disconnected") -> None:
        super().__init__(message)


class RemoteError(BridgeError):
    """The extension answered with an explicit error."""

    code = "remote_error"

    def __init__(self, message: str, *, command: str | None = None, request_id: str | None = None) -> None:
        self.command = command
        self.request_id = request_id
        super().__init__(message)


class ParseError(BridgeError):
    code = "parse_error"
