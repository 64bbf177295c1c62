from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class BridgeStats:
    """Inbound message count and last activity, shared by the listener and the router."""

    message_count: int = 0
    last_activity: float | None = None

    def touch(self, ts: float | None = None) -> None:
        self.last_activity = time.time() if ts is None else float(ts)

    def last_activity_iso(self) -> str | None:
        if self.last_activity is None:
            return None
        dt = datetime.fromtimestamp(self.last_activity, tz=timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
