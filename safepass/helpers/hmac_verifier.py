"""Request integrity: HMAC-SHA256 bound to a challenge token and timestamp.

Signed message (UTF-8)::

    {payload}|{challenge_token}|{timestamp_ms}

``payload`` is the canonical JSON of the request body (compact separators,
key order preserved, i.e. what ``JSON.stringify`` emits in the browser) or
the request path for bodyless GETs.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Mapping

from safepass.helpers import runtime
from safepass.helpers.errors import AuthError, ErrorCode
from safepass.helpers.log_sanitize import mask_token

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-HMAC-Signature"
TIMESTAMP_HEADER = "X-Timestamp"
CHALLENGE_HEADER = "X-Challenge-Token"

DEFAULT_WINDOW_MS = 5 * 60 * 1000


def canonical_json(body: Any) -> str:
    """Serialize *body* exactly as the browser client does before signing."""
    return json.dumps(
        body if body is not None else {},
        separators=(",", ":"),
        ensure_ascii=False,
    )


@dataclass(frozen=True)
class VerifiedRequest:
    """Proof that a request passed signature and freshness checks."""

    challenge_id: str
    timestamp: int


class HmacVerifier:
    """Signs and verifies request payloads with the shared server secret."""

    def __init__(self, secret: str, window_ms: int = DEFAULT_WINDOW_MS) -> None:
        if not secret:
            raise ValueError("HMAC secret must not be empty")
        self._secret = secret.encode("utf-8")
        self.window_ms = window_ms
        self._stats = {
            "totalRequests": 0,
            "validHMACs": 0,
            "invalidHMACs": 0,
            "expiredRequests": 0,
            "malformedRequests": 0,
        }
        self._stats_lock = threading.Lock()

    def sign(self, payload: str, challenge_id: str, timestamp: int | str) -> str:
        message = f"{payload}|{challenge_id}|{timestamp}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify(
        self,
        signature: str,
        payload: str,
        challenge_id: str,
        timestamp: int | str,
    ) -> bool:
        """Constant-time comparison against the recomputed signature."""
        expected = self.sign(payload, challenge_id, timestamp)
        if len(signature) != len(expected):
            return False
        return hmac.compare_digest(
            signature.lower().encode("utf-8"), expected.encode("utf-8")
        )

    def is_fresh(self, timestamp: int) -> bool:
        """True iff *timestamp* is within the window on either side of now (inclusive)."""
        return abs(runtime.now_ms() - timestamp) <= self.window_ms

    def verify_request(self, payload: str, headers: Mapping[str, str]) -> VerifiedRequest:
        """Run the full header check for a protected request.

        Raises:
            AuthError: ``HMAC_MISSING``, ``TIMESTAMP_INVALID``,
                ``CHALLENGE_MISSING``, ``TIMESTAMP_EXPIRED`` or
                ``HMAC_INVALID``, checked in that order.
        """
        signature = headers.get(SIGNATURE_HEADER)
        raw_timestamp = headers.get(TIMESTAMP_HEADER)
        challenge_id = headers.get(CHALLENGE_HEADER)

        if not signature:
            self._count("malformedRequests")
            raise AuthError(ErrorCode.HMAC_MISSING, "Missing HMAC signature")

        timestamp = _parse_timestamp(raw_timestamp)
        if timestamp is None:
            self._count("malformedRequests")
            raise AuthError(ErrorCode.TIMESTAMP_INVALID, "Invalid timestamp")

        if not challenge_id:
            self._count("malformedRequests")
            raise AuthError(ErrorCode.CHALLENGE_MISSING, "Missing challenge token")

        if not self.is_fresh(timestamp):
            self._count("expiredRequests")
            raise AuthError(
                ErrorCode.TIMESTAMP_EXPIRED,
                "Request timestamp outside acceptable window",
            )

        # The client signs the timestamp exactly as it sent it in the header.
        if not self.verify(signature, payload, challenge_id, raw_timestamp.strip()):
            self._count("invalidHMACs")
            logger.warning("HMAC mismatch for challenge %s", mask_token(challenge_id))
            raise AuthError(ErrorCode.HMAC_INVALID, "Invalid HMAC signature")

        self._count("validHMACs")
        return VerifiedRequest(challenge_id=challenge_id, timestamp=timestamp)

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._stats["totalRequests"] += 1
            self._stats[key] += 1

    def stats(self) -> dict:
        with self._stats_lock:
            stats = dict(self._stats)
        total = stats["totalRequests"]
        rate = stats["validHMACs"] / total * 100 if total else 0.0
        stats["successRate"] = f"{rate:.2f}%"
        stats["windowMs"] = self.window_ms
        return stats


_TIMESTAMP_RE = re.compile(r"-?[0-9]+")


def _parse_timestamp(raw: str | None) -> int | None:
    if raw is None:
        return None
    raw = raw.strip()
    if not _TIMESTAMP_RE.fullmatch(raw):
        return None
    return int(raw)
