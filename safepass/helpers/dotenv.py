"""Thin wrapper around python-dotenv for the project ``.env`` file."""

import os

from dotenv import load_dotenv as _load_dotenv

_DOTENV_FILE = ".env"


def get_dotenv_file_path() -> str:
    return os.path.abspath(os.environ.get("SAFEPASS_DOTENV", _DOTENV_FILE))


def load_dotenv() -> bool:
    """Load variables from the ``.env`` file without overriding the process env."""
    return _load_dotenv(get_dotenv_file_path(), override=False)


def get_dotenv_value(key: str, default: str | None = None) -> str | None:
    value = os.environ.get(key)
    if value is None or value == "":
        return default
    return value
