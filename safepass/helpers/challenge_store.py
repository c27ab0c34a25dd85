"""One-time, IP-bound challenge tokens.

A client fetches a challenge before every protected request and signs the
token into its HMAC. Consumption succeeds exactly once, only from the IP the
token was issued to, and only before it expires. Consumed tokens are kept
until they expire so a replay reports ``ALREADY_USED`` instead of
``NOT_FOUND``.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from enum import StrEnum

from safepass.helpers import runtime
from safepass.helpers.log_sanitize import mask_token, sanitize_log_value
from safepass.helpers.memory_store import InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 5 * 60 * 1000


class ConsumeReason(StrEnum):
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"
    IP_MISMATCH = "IP_MISMATCH"


@dataclass(frozen=True)
class ChallengeToken:
    id: str
    owner_ip: str
    created_at: int
    expires_at: int
    used: bool = False


@dataclass(frozen=True)
class IssuedChallenge:
    id: str
    expires_at: int
    expires_in: int  # seconds


@dataclass(frozen=True)
class ConsumeResult:
    ok: bool
    reason: ConsumeReason


class ChallengeStore:
    """Issues and consumes challenge tokens."""

    def __init__(
        self,
        store: KeyValueStore[ChallengeToken] | None = None,
        ttl_ms: int = DEFAULT_TTL_MS,
    ) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self.ttl_ms = ttl_ms
        self._store: KeyValueStore[ChallengeToken] = (
            store if store is not None else InMemoryKeyValueStore()
        )

    def issue(self, client_ip: str) -> IssuedChallenge:
        now = runtime.now_ms()
        token = ChallengeToken(
            id=secrets.token_hex(32),
            owner_ip=client_ip,
            created_at=now,
            expires_at=now + self.ttl_ms,
        )
        self._store.set(token.id, token)
        logger.info(
            "Issued challenge %s for %s",
            mask_token(token.id),
            sanitize_log_value(client_ip),
        )
        return IssuedChallenge(
            id=token.id,
            expires_at=token.expires_at,
            expires_in=self.ttl_ms // 1000,
        )

    def consume(self, challenge_id: str, client_ip: str) -> ConsumeResult:
        """Validate and mark a token used, atomically."""
        now = runtime.now_ms()

        def _consume(
            token: ChallengeToken | None,
        ) -> tuple[ChallengeToken | None, ConsumeReason]:
            if token is None:
                return None, ConsumeReason.NOT_FOUND
            if token.used:
                return token, ConsumeReason.ALREADY_USED
            if now > token.expires_at:
                return None, ConsumeReason.EXPIRED
            if token.owner_ip != client_ip:
                return token, ConsumeReason.IP_MISMATCH
            return replace(token, used=True), ConsumeReason.OK

        reason = self._store.update(challenge_id, _consume)
        if reason is ConsumeReason.OK:
            logger.info(
                "Consumed challenge %s for %s",
                mask_token(challenge_id),
                sanitize_log_value(client_ip),
            )
            return ConsumeResult(ok=True, reason=reason)

        logger.warning(
            "Rejected challenge %s from %s: %s",
            mask_token(challenge_id),
            sanitize_log_value(client_ip),
            reason,
        )
        return ConsumeResult(ok=False, reason=reason)

    def sweep(self) -> int:
        """Remove every token whose expiry has passed."""
        now = runtime.now_ms()
        removed = self._store.sweep(lambda t: t.expires_at < now)
        if removed:
            logger.info("Cleaned up %d expired challenge tokens", removed)
        return removed

    def stats(self) -> dict:
        now = runtime.now_ms()
        tokens = self._store.values()
        active = sum(1 for t in tokens if not t.used and now <= t.expires_at)
        return {
            "total": len(tokens),
            "active": active,
            "expired": len(tokens) - active,
        }
