"""Bearer sessions issued after a correct PIN.

A session is pinned to the IP that created it and expires after
``timeout_ms`` of inactivity. Every successful validation slides the
expiry forward; any IP mismatch or timeout deletes the session.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace

from safepass.helpers import runtime
from safepass.helpers.log_sanitize import mask_token, sanitize_log_value
from safepass.helpers.memory_store import InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30 * 60 * 1000


@dataclass(frozen=True)
class Session:
    id: str
    ip: str
    created_at: int
    last_activity_at: int


class SessionStore:
    """Creates, validates and invalidates IP-pinned sessions."""

    def __init__(
        self,
        store: KeyValueStore[Session] | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self.timeout_ms = timeout_ms
        self._store: KeyValueStore[Session] = (
            store if store is not None else InMemoryKeyValueStore()
        )

    def create(self, ip: str) -> Session:
        now = runtime.now_ms()
        session = Session(
            id=secrets.token_hex(32),
            ip=ip,
            created_at=now,
            last_activity_at=now,
        )
        self._store.set(session.id, session)
        logger.info(
            "New session created for %s: %s",
            sanitize_log_value(ip),
            mask_token(session.id),
        )
        return session

    def expires_at(self, session: Session) -> int:
        return session.last_activity_at + self.timeout_ms

    def validate(self, session_id: str, ip: str) -> bool:
        """Check a session and refresh its activity time.

        Unknown ids return False. A wrong IP or an idle timeout deletes the
        session and returns False.
        """
        if not session_id:
            return False
        now = runtime.now_ms()

        def _validate(session: Session | None) -> tuple[Session | None, str]:
            if session is None:
                return None, "unknown"
            if session.ip != ip:
                return None, "ip_mismatch"
            if now - session.last_activity_at > self.timeout_ms:
                return None, "expired"
            return replace(session, last_activity_at=now), "ok"

        outcome = self._store.update(session_id, _validate)
        if outcome == "ip_mismatch":
            logger.warning(
                "Session IP mismatch for %s from %s",
                mask_token(session_id),
                sanitize_log_value(ip),
            )
        elif outcome == "expired":
            logger.info("Session expired: %s", mask_token(session_id))
        return outcome == "ok"

    def get(self, session_id: str) -> Session | None:
        return self._store.get(session_id)

    def invalidate(self, session_id: str) -> bool:
        deleted = self._store.delete(session_id)
        if deleted:
            logger.info("Session invalidated: %s", mask_token(session_id))
        return deleted

    def sweep(self) -> int:
        """Evict sessions idle beyond the timeout."""
        now = runtime.now_ms()
        removed = self._store.sweep(
            lambda s: now - s.last_activity_at > self.timeout_ms
        )
        if removed:
            logger.info("Cleaned up %d expired sessions", removed)
        return removed

    def stats(self) -> dict:
        now = runtime.now_ms()
        sessions = self._store.values()
        return {
            "totalSessions": len(sessions),
            "recentSessions": sum(
                1 for s in sessions if now - s.last_activity_at < 5 * 60 * 1000
            ),
            "oldestSession": min((s.created_at for s in sessions), default=None),
            "newestSession": max((s.created_at for s in sessions), default=None),
        }
