"""Process configuration for the SafePass server.

All values come from environment variables (optionally via ``.env``)::

    SERVER_SECRET                 shared HMAC / derivation secret (required)
    MASTER_PIN_HASH               Argon2id hash of the master PIN
    MASTER_PIN                    plaintext PIN, hashed at start-up when no hash is set
    MAX_PIN_ATTEMPTS              failures before lockout (5)
    PIN_LOCKOUT_DURATION          lockout length in ms (24h)
    FAILED_ATTEMPT_RESET_WINDOW   idle time in ms after which the failure count resets (1h)
    SESSION_TIMEOUT               idle session timeout in ms (30min)
    CHALLENGE_TOKEN_EXPIRY        challenge lifetime in ms (5min)
    HMAC_WINDOW                   accepted clock skew for X-Timestamp in ms (5min)
    SWEEP_INTERVAL                seconds between expiry sweeps (60)
    PBKDF2_ITERATIONS             default derivation iterations (100000)
    RATE_LIMIT_WINDOW_MS / RATE_LIMIT_MAX_REQUESTS   global rate limit
    CORS_ORIGIN                   allowed browser origin
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from safepass.helpers import dotenv, runtime

MIN_PBKDF2_ITERATIONS = 100_000


@dataclass(frozen=True)
class AuthSettings:
    server_secret: str
    master_pin_hash: str
    max_attempts: int = 5
    lockout_duration_ms: int = 24 * 60 * 60 * 1000
    attempt_reset_window_ms: int = 60 * 60 * 1000
    session_timeout_ms: int = 30 * 60 * 1000
    challenge_ttl_ms: int = 5 * 60 * 1000
    hmac_window_ms: int = 5 * 60 * 1000
    sweep_interval_seconds: float = 60.0
    pbkdf2_iterations: int = MIN_PBKDF2_ITERATIONS
    rate_limit_window_ms: int = 15 * 60 * 1000
    rate_limit_max_requests: int = 100
    rate_limit_enabled: bool = True
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000"]
    )
    environment: str = "production"

    def __post_init__(self) -> None:
        if not self.server_secret:
            raise RuntimeError("SERVER_SECRET must be configured")
        if not self.master_pin_hash:
            raise RuntimeError("MASTER_PIN_HASH or MASTER_PIN must be configured")
        if self.max_attempts < 1:
            raise RuntimeError("MAX_PIN_ATTEMPTS must be at least 1")
        if self.pbkdf2_iterations < MIN_PBKDF2_ITERATIONS:
            raise RuntimeError(
                f"PBKDF2_ITERATIONS must be at least {MIN_PBKDF2_ITERATIONS}"
            )

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def rate_limit_default(self) -> str:
        window_seconds = max(1, self.rate_limit_window_ms // 1000)
        return f"{self.rate_limit_max_requests} per {window_seconds} seconds"


def _int_env(name: str, default: int) -> int:
    raw = dotenv.get_dotenv_value(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def get_settings() -> AuthSettings:
    """Build :class:`AuthSettings` from the environment.

    Raises:
        RuntimeError: If a required value is missing or malformed.
    """
    dotenv.load_dotenv()

    pin_hash = dotenv.get_dotenv_value("MASTER_PIN_HASH", "") or ""
    if not pin_hash:
        plain_pin = dotenv.get_dotenv_value("MASTER_PIN", "") or ""
        if plain_pin:
            from safepass.helpers.pin_auth import hash_pin

            pin_hash = hash_pin(plain_pin)

    origins = [
        origin.strip()
        for origin in os.environ.get("CORS_ORIGIN", "http://localhost:3000").split(",")
        if origin.strip()
    ]

    return AuthSettings(
        server_secret=dotenv.get_dotenv_value("SERVER_SECRET", "") or "",
        master_pin_hash=pin_hash,
        max_attempts=_int_env("MAX_PIN_ATTEMPTS", 5),
        lockout_duration_ms=_int_env("PIN_LOCKOUT_DURATION", 24 * 60 * 60 * 1000),
        attempt_reset_window_ms=_int_env("FAILED_ATTEMPT_RESET_WINDOW", 60 * 60 * 1000),
        session_timeout_ms=_int_env("SESSION_TIMEOUT", 30 * 60 * 1000),
        challenge_ttl_ms=_int_env("CHALLENGE_TOKEN_EXPIRY", 5 * 60 * 1000),
        hmac_window_ms=_int_env("HMAC_WINDOW", 5 * 60 * 1000),
        sweep_interval_seconds=float(_int_env("SWEEP_INTERVAL", 60)),
        pbkdf2_iterations=_int_env("PBKDF2_ITERATIONS", MIN_PBKDF2_ITERATIONS),
        rate_limit_window_ms=_int_env("RATE_LIMIT_WINDOW_MS", 15 * 60 * 1000),
        rate_limit_max_requests=_int_env("RATE_LIMIT_MAX_REQUESTS", 100),
        cors_origins=origins,
        environment=runtime.get_environment(),
    )
