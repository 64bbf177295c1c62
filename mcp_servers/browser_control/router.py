from __future__ import annotations

import logging

from .errors import ParseError, RemoteError
from .pending import PendingRequests
from .protocol import ResponseFrame, parse_response_frame
from .stats import BridgeStats

logger = logging.getLogger("mcp.browser_control.router")


class ResponseRouter:
    """Matches inbound frames to pending requests by correlation id."""

    def __init__(self, pending: PendingRequests, stats: BridgeStats | None = None) -> None:
        self._pending = pending
        self.stats = stats if stats is not None else BridgeStats()

    def handle_frame(self, raw: str | bytes) -> ResponseFrame | None:
        """Route one inbound frame. Malformed frames are logged and dropped."""
        try:
            frame = parse_response_frame(raw)
        except ParseError as exc:
            logger.warning("dropping malformed frame from extension: %s", exc)
            return None

        self.stats.message_count += 1
        self.stats.touch()

        if frame.request_id is None:
            return frame

        entry = self._pending.pop(frame.request_id)
        if entry is None:
            # Late (timed out) or unknown id.
            logger.debug("no pending request for requestId=%s", frame.request_id)
            return frame

        if frame.is_error:
            entry.reject(RemoteError(frame.error or "", command=entry.command, request_id=entry.request_id))
        else:
            entry.resolve(frame.result)
        return frame
