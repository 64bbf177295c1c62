from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class PendingRequest:
    """One dispatched command waiting for its response, timeout or disconnect."""

    request_id: str
    command: str
    future: asyncio.Future[Any]
    timeout: float
    created_at: float
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def resolve(self, result: Any) -> bool:
        if self.future.done():
            return False
        self.future.set_result(result)
        return True

    def reject(self, exc: BaseException) -> bool:
        if self.future.done():
            return False
        self.future.set_exception(exc)
        return True


class PendingRequests:
    """Outstanding requests keyed by correlation id.

    Only touched from the bridge event loop. Whoever pops an entry owns its
    outcome: `pop()` is the single point where a request leaves the table, so a
    response racing a timer (or a disconnect) can never settle a caller twice.
    """

    def __init__(self) -> None:
        self._entries: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def add(self, entry: PendingRequest) -> None:
        if entry.request_id in self._entries:
            raise ValueError(f"duplicate request id: {entry.request_id}")
        self._entries[entry.request_id] = entry

    def get(self, request_id: str) -> PendingRequest | None:
        return self._entries.get(request_id)

    def pop(self, request_id: str) -> PendingRequest | None:
        entry = self._entries.pop(request_id, None)
        if entry is not None:
            entry.cancel_timer()
        return entry

    def reject_all(self, make_error: Callable[[PendingRequest], BaseException]) -> int:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.cancel_timer()
            entry.reject(make_error(entry))
        return len(entries)
