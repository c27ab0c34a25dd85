"""PIN authentication state machine.

Per request::

    CHALLENGE_PENDING -> HMAC_VERIFIED -> LOCKOUT_CHECKED -> PIN_CHECKED
        -> SESSION_ISSUED | REJECTED

Signature, timestamp and challenge-id checks (HMAC_VERIFIED) run in
:meth:`HmacVerifier.verify_request` at the route gate; the resulting
:class:`VerifiedRequest` is the only way into :meth:`PinAuthenticator.verify_pin`.
Every rejection is an :class:`AuthError` and is terminal for the request.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError

from safepass.helpers.challenge_store import ChallengeStore
from safepass.helpers.errors import AuthError, ErrorCode
from safepass.helpers.hmac_verifier import VerifiedRequest
from safepass.helpers.lockout import (
    AttemptReservation,
    LockoutStatus,
    LockoutTracker,
)
from safepass.helpers.log_sanitize import sanitize_log_value
from safepass.helpers.security_event_log import SecurityEventLog
from safepass.helpers.session_store import SessionStore

logger = logging.getLogger(__name__)

_ph = PasswordHasher()


def hash_pin(pin: str) -> str:
    """Hash a PIN using Argon2id."""
    return _ph.hash(pin)


def verify_pin_hash(pin_hash: str, pin: str) -> bool:
    """Compare *pin* against an Argon2 hash. Malformed hashes raise."""
    try:
        return _ph.verify(pin_hash, pin)
    except VerifyMismatchError:
        return False


@dataclass(frozen=True)
class PinVerification:
    session_id: str
    expires_at: int


class PinAuthenticator:
    """Orchestrates challenge, lockout, PIN and session checks."""

    def __init__(
        self,
        *,
        challenges: ChallengeStore,
        lockout: LockoutTracker,
        sessions: SessionStore,
        master_pin_hash: str,
        events: SecurityEventLog | None = None,
    ) -> None:
        self.challenges = challenges
        self.lockout = lockout
        self.sessions = sessions
        self._master_pin_hash = master_pin_hash
        self.events = events if events is not None else SecurityEventLog()

    # ---- verify-pin --------------------------------------------------------

    async def verify_pin(
        self, body: Any, verified: VerifiedRequest, ip: str
    ) -> PinVerification:
        self._reserve_attempt(ip)
        try:
            self._consume_challenge(verified.challenge_id, ip)

            pin = body.get("pin") if isinstance(body, dict) else None
            if not isinstance(pin, str) or not pin:
                raise AuthError(ErrorCode.PIN_INVALID, "Missing or invalid PIN")

            matched = await asyncio.to_thread(
                verify_pin_hash, self._master_pin_hash, pin
            )
        except BaseException:
            self.lockout.release_attempt(ip)
            raise

        if not matched:
            count = self.lockout.record_failure(ip, reserved=True)
            if self.lockout.is_locked(ip):
                self.events.record("lockout", ip, ErrorCode.ACCOUNT_LOCKED)
                raise self._locked_error(ip)
            remaining = max(0, self.lockout.max_attempts - count)
            self.events.record(
                "pin_failed",
                ip,
                ErrorCode.PIN_INCORRECT,
                {"attemptsRemaining": remaining},
            )
            raise AuthError(
                ErrorCode.PIN_INCORRECT,
                "Invalid PIN",
                data={"attemptsRemaining": remaining},
            )

        if not self.lockout.record_success(ip, reserved=True):
            # A concurrent failure locked the IP while this PIN was compared.
            self.events.record("locked_attempt", ip, ErrorCode.ACCOUNT_LOCKED)
            raise self._locked_error(ip)
        session = self.sessions.create(ip)
        self.events.record("session_created", ip)
        return PinVerification(
            session_id=session.id,
            expires_at=self.sessions.expires_at(session),
        )

    # ---- logout / session --------------------------------------------------

    def logout(self, body: Any, verified: VerifiedRequest, ip: str) -> bool:
        """Consume the challenge and invalidate the session named in *body*.

        Returns whether a live session was removed.
        """
        self._consume_challenge(verified.challenge_id, ip)

        session_id = body.get("sessionId") if isinstance(body, dict) else None
        if not isinstance(session_id, str) or not session_id:
            raise AuthError(
                ErrorCode.SESSION_MISSING, "Missing session ID", status=400
            )

        removed = self.sessions.invalidate(session_id)
        self.events.record("logout", ip, details={"removed": removed})
        return removed

    def session_status(self, session_id: str | None, ip: str) -> bool:
        if not session_id:
            return False
        return self.sessions.validate(session_id, ip)

    def authorize_session(self, session_id: str | None, ip: str) -> str:
        """Require a live session for *ip*; return its id."""
        if not session_id:
            raise AuthError(ErrorCode.SESSION_MISSING, "Valid session required")
        if not self.sessions.validate(session_id, ip):
            self.events.record("session_rejected", ip, ErrorCode.SESSION_INVALID)
            raise AuthError(ErrorCode.SESSION_INVALID, "Session expired or invalid")
        return session_id

    def lockout_status(self, ip: str) -> LockoutStatus:
        return self.lockout.status(ip)

    # ---- helpers -----------------------------------------------------------

    def _reserve_attempt(self, ip: str) -> None:
        outcome = self.lockout.reserve_attempt(ip)
        if outcome is AttemptReservation.LOCKED:
            logger.warning(
                "Rejected PIN attempt from locked IP %s", sanitize_log_value(ip)
            )
            self.events.record("locked_attempt", ip, ErrorCode.ACCOUNT_LOCKED)
            raise self._locked_error(ip)
        if outcome is AttemptReservation.BUSY:
            self.events.record("attempt_refused", ip, ErrorCode.RATE_LIMITED)
            raise AuthError(
                ErrorCode.RATE_LIMITED, "Another PIN attempt is in progress"
            )

    def _locked_error(self, ip: str) -> AuthError:
        status = self.lockout.status(ip)
        return AuthError(
            ErrorCode.ACCOUNT_LOCKED,
            "Too many failed PIN attempts",
            data={
                "attemptsRemaining": 0,
                "remainingSeconds": status.remaining_seconds,
                "lockoutExpiresAt": status.lockout_expires_at,
            },
        )

    def _consume_challenge(self, challenge_id: str, ip: str) -> None:
        result = self.challenges.consume(challenge_id, ip)
        if not result.ok:
            self.events.record(
                "challenge_rejected",
                ip,
                ErrorCode.CHALLENGE_INVALID,
                {"reason": str(result.reason)},
            )
            raise AuthError(
                ErrorCode.CHALLENGE_INVALID,
                "Invalid or expired challenge token",
                data={"reason": str(result.reason)},
            )
