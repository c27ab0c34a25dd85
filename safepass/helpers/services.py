"""Wires the authentication core from :class:`AuthSettings`."""

from __future__ import annotations

from dataclasses import dataclass

from safepass.helpers.challenge_store import ChallengeStore
from safepass.helpers.hmac_verifier import HmacVerifier
from safepass.helpers.lockout import LockoutTracker
from safepass.helpers.password_deriver import PasswordDeriver
from safepass.helpers.pin_auth import PinAuthenticator
from safepass.helpers.security_event_log import SecurityEventLog
from safepass.helpers.session_store import SessionStore
from safepass.helpers.settings import AuthSettings
from safepass.helpers.sweeper import Sweeper


@dataclass
class AuthServices:
    settings: AuthSettings
    challenges: ChallengeStore
    hmac_verifier: HmacVerifier
    lockout: LockoutTracker
    sessions: SessionStore
    authenticator: PinAuthenticator
    deriver: PasswordDeriver
    events: SecurityEventLog
    sweeper: Sweeper

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> AuthServices:
        challenges = ChallengeStore(ttl_ms=settings.challenge_ttl_ms)
        hmac_verifier = HmacVerifier(
            settings.server_secret, window_ms=settings.hmac_window_ms
        )
        lockout = LockoutTracker(
            max_attempts=settings.max_attempts,
            lockout_duration_ms=settings.lockout_duration_ms,
            reset_window_ms=settings.attempt_reset_window_ms,
        )
        sessions = SessionStore(timeout_ms=settings.session_timeout_ms)
        events = SecurityEventLog()
        authenticator = PinAuthenticator(
            challenges=challenges,
            lockout=lockout,
            sessions=sessions,
            master_pin_hash=settings.master_pin_hash,
            events=events,
        )
        deriver = PasswordDeriver(
            settings.server_secret, default_iterations=settings.pbkdf2_iterations
        )
        sweeper = Sweeper(
            settings.sweep_interval_seconds,
            {
                "challenges": challenges.sweep,
                "sessions": sessions.sweep,
                "lockouts": lockout.sweep,
            },
        )
        return cls(
            settings=settings,
            challenges=challenges,
            hmac_verifier=hmac_verifier,
            lockout=lockout,
            sessions=sessions,
            authenticator=authenticator,
            deriver=deriver,
            events=events,
            sweeper=sweeper,
        )
