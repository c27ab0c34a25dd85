"""Bounded in-memory log of recent security events.

Keeps the last N authentication events (challenge rejections, PIN
failures, lockouts, session changes) for the development diagnostics
endpoint. Entries never contain PINs, secrets or full session ids.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timezone


class SecurityEventLog:
    """Bounded in-memory log of recent security events."""

    def __init__(self, max_entries: int = 500) -> None:
        self._events: deque[dict] = deque(maxlen=max_entries)
        self._store_lock = threading.Lock()

    def record(
        self,
        event_type: str,
        ip: str,
        code: str = "",
        details: dict | None = None,
    ) -> None:
        event = {
            "event_type": event_type,
            "ip": ip,
            "code": code,
            "details": details or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._store_lock:
            self._events.append(event)

    def recent(
        self,
        limit: int = 50,
        event_type: str | None = None,
    ) -> list[dict]:
        """Return recent events, newest first.

        Args:
            limit: Maximum number of events to return.
            event_type: Optional filter by event type.
        """
        with self._store_lock:
            events = list(self._events)

        events.reverse()

        if event_type:
            events = [e for e in events if e["event_type"] == event_type]

        return events[:limit]

    def clear(self) -> None:
        with self._store_lock:
            self._events.clear()
