"""Deterministic per-platform password derivation.

The same (master password, platform, rules, server secret) always yields the
same password; nothing is stored. Derivation::

    salt      = sha256_hex(platform.lower() + ":" + SERVER_SECRET)
    keystream = PBKDF2-HMAC-SHA256(master_password, salt, iterations, length)
    password  = "".join(charset[b % len(charset)] for b in keystream)

Rules come from a per-platform table with a ``default`` fallback; request
overrides are merged on top.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from safepass.helpers.errors import AuthError, ErrorCode
from safepass.helpers.log_sanitize import sanitize_log_value
from safepass.helpers.settings import MIN_PBKDF2_ITERATIONS

logger = logging.getLogger(__name__)

MAX_PBKDF2_ITERATIONS = 1_000_000

LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
NUMBERS = "0123456789"
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
SAFE_SYMBOLS = "!@#$%^&*_+-="
AMBIGUOUS = "0O1lI|`"

_SYMBOL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{}|;:,.<>?]")


class PasswordRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    length: int = Field(16, ge=8, le=128)
    require_symbols: bool = Field(True, alias="requireSymbols")
    exclude_ambiguous: bool = Field(True, alias="excludeAmbiguous")
    safe_symbols_only: bool = Field(False, alias="safeSymbolsOnly")


class PasswordRuleOverrides(BaseModel):
    """Partial rules sent by the client; unset fields keep the platform default."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    length: int | None = Field(None, ge=8, le=128)
    require_symbols: bool | None = Field(None, alias="requireSymbols")
    exclude_ambiguous: bool | None = Field(None, alias="excludeAmbiguous")
    safe_symbols_only: bool | None = Field(None, alias="safeSymbolsOnly")


class GeneratePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    master_password: str = Field(alias="masterPassword", min_length=8)
    platform: str = Field(min_length=1, max_length=50)
    password_length: int | None = Field(None, alias="passwordLength", ge=8, le=128)
    password_rules: PasswordRuleOverrides | None = Field(None, alias="passwordRules")
    iterations: int | None = Field(
        None, ge=MIN_PBKDF2_ITERATIONS, le=MAX_PBKDF2_ITERATIONS
    )


PLATFORM_RULES: dict[str, PasswordRules] = {
    "gmail": PasswordRules(length=16, require_symbols=True, exclude_ambiguous=True),
    "discord": PasswordRules(length=20, require_symbols=True, exclude_ambiguous=False),
    "facebook": PasswordRules(length=18, require_symbols=True, exclude_ambiguous=True),
    "instagram": PasswordRules(length=16, require_symbols=True, exclude_ambiguous=True),
    "twitter": PasswordRules(length=18, require_symbols=True, exclude_ambiguous=False),
    "github": PasswordRules(length=20, require_symbols=True, exclude_ambiguous=False),
    "linkedin": PasswordRules(length=16, require_symbols=True, exclude_ambiguous=True),
    "default": PasswordRules(length=16, require_symbols=True, exclude_ambiguous=True),
}

PLATFORM_PRESETS: list[dict[str, str]] = [
    {"name": "Gmail", "key": "gmail"},
    {"name": "Discord", "key": "discord"},
    {"name": "Facebook", "key": "facebook"},
    {"name": "Instagram", "key": "instagram"},
    {"name": "Twitter", "key": "twitter"},
    {"name": "GitHub", "key": "github"},
    {"name": "LinkedIn", "key": "linkedin"},
    {"name": "Netflix", "key": "netflix"},
    {"name": "Spotify", "key": "spotify"},
    {"name": "Amazon", "key": "amazon"},
]


def platform_key(platform: str) -> str:
    return re.sub(r"\s+", "", platform.lower())


def get_password_rules(
    platform: str, overrides: PasswordRuleOverrides | None = None
) -> PasswordRules:
    base = PLATFORM_RULES.get(platform_key(platform), PLATFORM_RULES["default"])
    if overrides is None:
        return base.model_copy()
    return base.model_copy(update=overrides.model_dump(exclude_none=True))


def build_character_set(rules: PasswordRules) -> str:
    charset = LOWERCASE + UPPERCASE + NUMBERS
    if rules.require_symbols:
        charset += SAFE_SYMBOLS if rules.safe_symbols_only else SYMBOLS
    if rules.exclude_ambiguous:
        charset = "".join(c for c in charset if c not in AMBIGUOUS)
    return charset


def derive_keystream(
    master_password: str,
    platform: str,
    server_secret: str,
    length: int,
    iterations: int,
) -> bytes:
    salt = hashlib.sha256(f"{platform.lower()}:{server_secret}".encode()).hexdigest()
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt.encode(),
        iterations=iterations,
    )
    return kdf.derive(master_password.encode())


def keystream_to_password(keystream: bytes, charset: str) -> str:
    return "".join(charset[b % len(charset)] for b in keystream)


def calculate_password_strength(password: str) -> dict:
    """Descriptive strength score; never gates generation."""
    checks = {
        "length": len(password) >= 16,
        "lowercase": bool(re.search(r"[a-z]", password)),
        "uppercase": bool(re.search(r"[A-Z]", password)),
        "numbers": bool(re.search(r"[0-9]", password)),
        "symbols": bool(_SYMBOL_RE.search(password)),
    }
    score = 20 * sum(checks.values())
    if len(password) >= 20:
        score += 10
    if len(password) >= 24:
        score += 10
    score = min(score, 100)

    if score >= 80:
        level = "strong"
    elif score >= 60:
        level = "medium"
    else:
        level = "weak"
    return {"score": score, "level": level, "checks": checks}


@dataclass(frozen=True)
class GeneratedPassword:
    password: str
    metadata: dict


class PasswordDeriver:
    """Validates requests, derives passwords and keeps generation statistics."""

    def __init__(
        self, server_secret: str, default_iterations: int = MIN_PBKDF2_ITERATIONS
    ) -> None:
        if not server_secret:
            raise ValueError("server_secret must not be empty")
        self._server_secret = server_secret
        self.default_iterations = default_iterations
        self._stats_lock = threading.Lock()
        self._reset_stats()

    @staticmethod
    def parse_request(payload: object) -> GeneratePasswordRequest:
        """Validate a raw JSON body.

        Raises:
            AuthError: ``INVALID_PARAMETERS`` with the validation messages.
        """
        if not isinstance(payload, dict):
            raise AuthError(
                ErrorCode.INVALID_PARAMETERS,
                "Invalid parameters",
                data={"details": ["Request body must be a JSON object"]},
            )
        try:
            return GeneratePasswordRequest.model_validate(payload)
        except ValidationError as e:
            details = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise AuthError(
                ErrorCode.INVALID_PARAMETERS,
                "Invalid parameters",
                data={"details": details},
            ) from e

    def derive(
        self,
        master_password: str,
        platform: str,
        rules: PasswordRules,
        iterations: int | None = None,
    ) -> str:
        """Pure derivation: identical inputs always give the identical password."""
        charset = build_character_set(rules)
        keystream = derive_keystream(
            master_password,
            platform,
            self._server_secret,
            rules.length,
            iterations or self.default_iterations,
        )
        return keystream_to_password(keystream, charset)

    async def generate(self, request: GeneratePasswordRequest) -> GeneratedPassword:
        """Derive the password for *request* in a worker thread."""
        started = time.perf_counter()
        rules = get_password_rules(request.platform, request.password_rules)
        if request.password_length is not None:
            rules = rules.model_copy(update={"length": request.password_length})

        password = await asyncio.to_thread(
            self.derive,
            request.master_password,
            request.platform,
            rules,
            request.iterations,
        )
        elapsed_ms = round((time.perf_counter() - started) * 1000)
        self._record(request.platform, elapsed_ms)
        logger.info(
            "Password generated for platform %s in %dms",
            sanitize_log_value(request.platform),
            elapsed_ms,
        )
        return GeneratedPassword(
            password=password,
            metadata={
                "platform": request.platform,
                "length": len(password),
                "generationTime": elapsed_ms,
                "strength": calculate_password_strength(password),
            },
        )

    # ---- statistics --------------------------------------------------------

    def _reset_stats(self) -> None:
        with self._stats_lock:
            self._total = 0
            self._platforms: dict[str, dict[str, int]] = {}
            self._last_generated: str | None = None

    def _record(self, platform: str, elapsed_ms: int) -> None:
        with self._stats_lock:
            self._total += 1
            self._last_generated = datetime.now(timezone.utc).isoformat()
            entry = self._platforms.setdefault(platform, {"count": 0, "totalTime": 0})
            entry["count"] += 1
            entry["totalTime"] += elapsed_ms

    def stats(self) -> dict:
        with self._stats_lock:
            total_time = sum(p["totalTime"] for p in self._platforms.values())
            return {
                "totalGenerated": self._total,
                "platforms": {k: dict(v) for k, v in self._platforms.items()},
                "lastGenerated": self._last_generated,
                "averageGenerationTime": total_time / self._total if self._total else 0,
            }

    def clear_stats(self) -> None:
        self._reset_stats()
