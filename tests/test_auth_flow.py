"""End-to-end authentication scenarios through the Flask test client."""

import time

from conftest import TEST_PIN


def _error(response):
    body = response.get_json()
    assert body["success"] is False
    return body


class TestChallenge:
    def test_challenge_shape(self, client):
        data = client.get("/challenge").get_json()["data"]
        assert len(data["token"]) == 64
        assert data["csrf"]
        assert data["expiresIn"] == 300
        assert data["expiresAt"] > int(time.time() * 1000)


class TestVerifyPin:
    def test_success_then_replay_rejected(self, client, get_challenge, signed_post):
        challenge = get_challenge()
        response = signed_post("/auth/verify-pin", {"pin": TEST_PIN}, challenge=challenge)
        assert response.status_code == 200
        data = response.get_json()["data"]
        assert len(data["sessionId"]) == 64
        assert data["expiresAt"] > int(time.time() * 1000)

        replay = signed_post("/auth/verify-pin", {"pin": TEST_PIN}, challenge=challenge)
        body = _error(replay)
        assert replay.status_code == 400
        assert body["code"] == "CHALLENGE_INVALID"
        assert body["data"] == {"reason": "ALREADY_USED"}

    def test_unknown_challenge(self, signed_post):
        response = signed_post("/auth/verify-pin", {"pin": TEST_PIN}, challenge="a" * 64)
        assert _error(response)["data"] == {"reason": "NOT_FOUND"}

    def test_missing_signature(self, client, get_challenge):
        response = client.post(
            "/auth/verify-pin",
            json={"pin": TEST_PIN},
            headers={
                "X-Timestamp": str(int(time.time() * 1000)),
                "X-Challenge-Token": get_challenge(),
            },
        )
        assert response.status_code == 400
        assert _error(response)["code"] == "HMAC_MISSING"

    def test_tampered_body(self, signed_post):
        response = signed_post(
            "/auth/verify-pin", {"pin": "999999"}, sign_body={"pin": TEST_PIN}
        )
        assert response.status_code == 401
        assert _error(response)["code"] == "HMAC_INVALID"

    def test_wrong_secret(self, signed_post):
        response = signed_post("/auth/verify-pin", {"pin": TEST_PIN}, secret="guess")
        assert _error(response)["code"] == "HMAC_INVALID"

    def test_stale_timestamp(self, signed_post):
        stale = int(time.time() * 1000) - 10 * 60 * 1000
        response = signed_post("/auth/verify-pin", {"pin": TEST_PIN}, timestamp=stale)
        assert response.status_code == 400
        assert _error(response)["code"] == "TIMESTAMP_EXPIRED"

    def test_hmac_rejection_does_not_consume_challenge(
        self, get_challenge, signed_post
    ):
        challenge = get_challenge()
        signed_post("/auth/verify-pin", {"pin": TEST_PIN}, challenge=challenge, secret="x")
        response = signed_post("/auth/verify-pin", {"pin": TEST_PIN}, challenge=challenge)
        assert response.status_code == 200

    def test_missing_pin(self, signed_post):
        response = signed_post("/auth/verify-pin", {})
        assert response.status_code == 400
        assert _error(response)["code"] == "PIN_INVALID"

    def test_challenge_bound_to_ip(self, client, signed_post):
        other = client.get("/challenge", environ_base={"REMOTE_ADDR": "10.9.8.7"})
        challenge = other.get_json()["data"]["token"]
        response = signed_post("/auth/verify-pin", {"pin": TEST_PIN}, challenge=challenge)
        assert _error(response)["data"] == {"reason": "IP_MISMATCH"}


class TestLockout:
    def test_five_wrong_pins_lock_the_ip(self, client, signed_post):
        for remaining in (4, 3, 2, 1):
            response = signed_post("/auth/verify-pin", {"pin": "000000"})
            assert response.status_code == 401
            body = _error(response)
            assert body["code"] == "PIN_INCORRECT"
            assert body["data"]["attemptsRemaining"] == remaining

        response = signed_post("/auth/verify-pin", {"pin": "000000"})
        assert response.status_code == 429
        body = _error(response)
        assert body["code"] == "ACCOUNT_LOCKED"
        assert body["data"]["attemptsRemaining"] == 0
        assert body["data"]["remainingSeconds"] == 24 * 60 * 60
        assert response.headers["Retry-After"] == str(24 * 60 * 60)

        # Correct PIN is rejected while locked.
        response = signed_post("/auth/verify-pin", {"pin": TEST_PIN})
        assert response.status_code == 429
        assert _error(response)["code"] == "ACCOUNT_LOCKED"

        status = client.get("/auth/lockout-status").get_json()["data"]
        assert status["isLocked"] is True
        assert status["attemptsRemaining"] == 0
        assert status["lockoutExpiresAt"] is not None

    def test_locked_request_does_not_consume_challenge(
        self, services, get_challenge, signed_post
    ):
        for _ in range(5):
            services.lockout.record_failure("127.0.0.1")
        challenge = get_challenge()
        signed_post("/auth/verify-pin", {"pin": TEST_PIN}, challenge=challenge)
        assert services.challenges.consume(challenge, "127.0.0.1").ok is True

    def test_lockout_status_when_clear(self, client):
        data = client.get("/auth/lockout-status").get_json()["data"]
        assert data == {
            "isLocked": False,
            "attemptsRemaining": 5,
            "lockoutExpiresAt": None,
            "remainingSeconds": 0,
        }


class TestSessions:
    def test_session_status(self, client, login):
        session_id = login()
        data = client.get(
            "/auth/session-status", headers={"X-Session-Id": session_id}
        ).get_json()["data"]
        assert data["authenticated"] is True
        assert data["sessionId"] == session_id

        data = client.get("/auth/session-status").get_json()["data"]
        assert data["authenticated"] is False
        assert data["sessionId"] is None

    def test_session_from_other_ip_is_destroyed(self, client, login):
        session_id = login()
        data = client.get(
            "/auth/session-status",
            headers={"X-Session-Id": session_id},
            environ_base={"REMOTE_ADDR": "10.9.8.7"},
        ).get_json()["data"]
        assert data["authenticated"] is False
        data = client.get(
            "/auth/session-status", headers={"X-Session-Id": session_id}
        ).get_json()["data"]
        assert data["authenticated"] is False

    def test_logout(self, client, login, signed_post):
        session_id = login()
        response = signed_post("/auth/logout", {"sessionId": session_id})
        assert response.status_code == 200
        assert response.get_json()["data"]["loggedOut"] is True

        data = client.get(
            "/auth/session-status", headers={"X-Session-Id": session_id}
        ).get_json()["data"]
        assert data["authenticated"] is False

    def test_logout_requires_signature(self, client, login):
        session_id = login()
        response = client.post("/auth/logout", json={"sessionId": session_id})
        assert _error(response)["code"] == "HMAC_MISSING"
