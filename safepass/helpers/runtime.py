"""Runtime environment helpers."""

import os
import time


def get_environment() -> str:
    return os.environ.get("APP_ENV", "production").strip().lower() or "production"


def get_web_ui_port() -> int:
    return int(os.environ.get("PORT", "3001"))


def get_web_ui_host() -> str:
    return os.environ.get("WEB_UI_HOST", "localhost")


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds (the unit of ``X-Timestamp``)."""
    return int(time.time() * 1000)
