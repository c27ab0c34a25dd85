"""Helpers for writing client-controlled values into log lines."""

import re

_SAFE_LOG_RE = re.compile(r"[^a-zA-Z0-9_.:\-/]")


def sanitize_log_value(value: object) -> str:
    """Replace anything outside a small allowlist so input cannot forge log lines."""
    return _SAFE_LOG_RE.sub("_", str(value))[:128]


def mask_token(token: str | None) -> str:
    """Show only the first 8 characters of a token or session id."""
    if not token:
        return "<none>"
    return sanitize_log_value(token[:8]) + "..."
