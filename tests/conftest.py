"""Shared pytest fixtures for the test suite.

Provides settings/services wired with a known secret and PIN, a Flask test
client built with ``create_app``, and helpers that produce correctly signed
requests the way the browser client does.
"""

import hashlib
import hmac
import json
import time

import pytest

import run_ui
from safepass.helpers.pin_auth import hash_pin
from safepass.helpers.services import AuthServices
from safepass.helpers.settings import AuthSettings

TEST_SECRET = "test-server-secret-0123456789abcdef"
TEST_PIN = "123456"


def compute_signature(payload: str, challenge: str, timestamp, secret=TEST_SECRET):
    message = f"{payload}|{challenge}|{timestamp}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


@pytest.fixture(scope="session")
def pin_hash():
    """Argon2 hash of TEST_PIN, computed once per run."""
    return hash_pin(TEST_PIN)


@pytest.fixture
def settings(pin_hash):
    return AuthSettings(server_secret=TEST_SECRET, master_pin_hash=pin_hash)


@pytest.fixture
def dev_settings(pin_hash):
    return AuthSettings(
        server_secret=TEST_SECRET,
        master_pin_hash=pin_hash,
        environment="development",
    )


@pytest.fixture
def services(settings):
    return AuthServices.from_settings(settings)


@pytest.fixture
def app(services):
    webapp = run_ui.create_app(services=services)
    webapp.config.update(TESTING=True)
    return webapp


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def dev_client(dev_settings):
    webapp = run_ui.create_app(dev_settings)
    webapp.config.update(TESTING=True)
    return webapp.test_client()


@pytest.fixture
def get_challenge(client):
    def _get_challenge() -> str:
        response = client.get("/challenge")
        assert response.status_code == 200
        return response.get_json()["data"]["token"]

    return _get_challenge


@pytest.fixture
def signed_post(client, get_challenge):
    """POST *body* signed over its canonical JSON with a fresh challenge.

    Keyword overrides allow building tampered or stale requests.
    """

    def _signed_post(
        path,
        body,
        *,
        challenge=None,
        timestamp=None,
        session_id=None,
        secret=TEST_SECRET,
        sign_body=None,
    ):
        if challenge is None:
            challenge = get_challenge()
        ts = str(timestamp if timestamp is not None else int(time.time() * 1000))
        payload = json.dumps(body, separators=(",", ":"), ensure_ascii=False)
        signed = (
            payload
            if sign_body is None
            else json.dumps(sign_body, separators=(",", ":"), ensure_ascii=False)
        )
        headers = {
            "X-HMAC-Signature": compute_signature(signed, challenge, ts, secret),
            "X-Timestamp": ts,
            "X-Challenge-Token": challenge,
        }
        if session_id:
            headers["X-Session-Id"] = session_id
        return client.post(
            path, data=payload, content_type="application/json", headers=headers
        )

    return _signed_post


@pytest.fixture
def login(signed_post):
    def _login(pin=TEST_PIN) -> str:
        response = signed_post("/auth/verify-pin", {"pin": pin})
        assert response.status_code == 200, response.get_json()
        return response.get_json()["data"]["sessionId"]

    return _login
