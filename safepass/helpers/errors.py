"""Error taxonomy shared by the authentication core and the HTTP layer."""

from __future__ import annotations

import traceback
from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    HMAC_MISSING = "HMAC_MISSING"
    HMAC_INVALID = "HMAC_INVALID"
    TIMESTAMP_INVALID = "TIMESTAMP_INVALID"
    TIMESTAMP_EXPIRED = "TIMESTAMP_EXPIRED"
    CHALLENGE_MISSING = "CHALLENGE_MISSING"
    CHALLENGE_INVALID = "CHALLENGE_INVALID"
    PIN_INVALID = "PIN_INVALID"
    PIN_INCORRECT = "PIN_INCORRECT"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    SESSION_MISSING = "SESSION_MISSING"
    SESSION_INVALID = "SESSION_INVALID"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_DEFAULT_STATUS: dict[ErrorCode, int] = {
    ErrorCode.HMAC_MISSING: 400,
    ErrorCode.HMAC_INVALID: 401,
    ErrorCode.TIMESTAMP_INVALID: 400,
    ErrorCode.TIMESTAMP_EXPIRED: 400,
    ErrorCode.CHALLENGE_MISSING: 400,
    ErrorCode.CHALLENGE_INVALID: 400,
    ErrorCode.PIN_INVALID: 400,
    ErrorCode.PIN_INCORRECT: 401,
    ErrorCode.ACCOUNT_LOCKED: 429,
    ErrorCode.SESSION_MISSING: 401,
    ErrorCode.SESSION_INVALID: 401,
    ErrorCode.INVALID_PARAMETERS: 400,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INTERNAL_ERROR: 500,
}


class AuthError(Exception):
    """A terminal, client-visible failure with a discriminated code.

    Raised anywhere in the request pipeline and rendered into the error
    envelope by :class:`safepass.helpers.api.ApiHandler`.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status if status is not None else _DEFAULT_STATUS[code]
        self.data = data

    def __repr__(self) -> str:
        return f"AuthError({self.code!s}, {self.message!r}, status={self.status})"


def format_error(e: BaseException, max_frames: int = 8) -> str:
    """Render an exception with a trimmed traceback for development responses."""
    frames = traceback.format_exception(type(e), e, e.__traceback__)
    body = "".join(frames[-max_frames:]).strip()
    return body or f"{type(e).__name__}: {e}"
