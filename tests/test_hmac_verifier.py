"""Tests for request signing, freshness and header verification."""

import hashlib
import hmac
from unittest.mock import patch

import pytest

from safepass.helpers.errors import AuthError, ErrorCode
from safepass.helpers.hmac_verifier import HmacVerifier, canonical_json

SECRET = "unit-test-secret"
NOW_MS = 1_700_000_000_000
CHALLENGE = "ab" * 32


@pytest.fixture
def verifier():
    return HmacVerifier(SECRET, window_ms=300_000)


@pytest.fixture(autouse=True)
def frozen_clock():
    with patch("time.time", return_value=NOW_MS / 1000):
        yield


def _headers(verifier, payload, timestamp=NOW_MS, challenge=CHALLENGE, signature=None):
    return {
        "X-HMAC-Signature": signature
        or verifier.sign(payload, challenge, timestamp),
        "X-Timestamp": str(timestamp),
        "X-Challenge-Token": challenge,
    }


class TestSign:
    def test_matches_reference_hmac(self, verifier):
        expected = hmac.new(
            SECRET.encode(), b'{"pin":"1234"}|abc|42', hashlib.sha256
        ).hexdigest()
        assert verifier.sign('{"pin":"1234"}', "abc", 42) == expected

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            HmacVerifier("")


class TestVerify:
    def test_accepts_own_signature(self, verifier):
        sig = verifier.sign("payload", CHALLENGE, NOW_MS)
        assert verifier.verify(sig, "payload", CHALLENGE, NOW_MS) is True

    def test_accepts_uppercase_hex(self, verifier):
        sig = verifier.sign("payload", CHALLENGE, NOW_MS).upper()
        assert verifier.verify(sig, "payload", CHALLENGE, NOW_MS) is True

    @pytest.mark.parametrize("field", ["payload", "challenge", "timestamp"])
    def test_any_change_breaks_signature(self, verifier, field):
        sig = verifier.sign("payload", CHALLENGE, NOW_MS)
        args = {"payload": "payload", "challenge": CHALLENGE, "timestamp": NOW_MS}
        args[field] = args[field] + ("x" if isinstance(args[field], str) else 1)
        assert (
            verifier.verify(sig, args["payload"], args["challenge"], args["timestamp"])
            is False
        )

    def test_wrong_length_rejected(self, verifier):
        sig = verifier.sign("payload", CHALLENGE, NOW_MS)
        assert verifier.verify(sig[:-2], "payload", CHALLENGE, NOW_MS) is False


class TestFreshness:
    def test_window_bound_is_inclusive(self, verifier):
        assert verifier.is_fresh(NOW_MS - 300_000) is True
        assert verifier.is_fresh(NOW_MS + 300_000) is True

    def test_outside_window(self, verifier):
        assert verifier.is_fresh(NOW_MS - 300_001) is False
        assert verifier.is_fresh(NOW_MS + 300_001) is False


class TestVerifyRequest:
    def test_valid_request(self, verifier):
        payload = canonical_json({"pin": "123456"})
        verified = verifier.verify_request(payload, _headers(verifier, payload))
        assert verified.challenge_id == CHALLENGE
        assert verified.timestamp == NOW_MS

    def test_missing_signature(self, verifier):
        headers = _headers(verifier, "{}")
        del headers["X-HMAC-Signature"]
        with pytest.raises(AuthError) as exc:
            verifier.verify_request("{}", headers)
        assert exc.value.code is ErrorCode.HMAC_MISSING

    @pytest.mark.parametrize("raw", ["", "abc", "12.5", "--5", "1-2", "\u00b2", None])
    def test_invalid_timestamp(self, verifier, raw):
        headers = _headers(verifier, "{}")
        if raw is None:
            del headers["X-Timestamp"]
        else:
            headers["X-Timestamp"] = raw
        with pytest.raises(AuthError) as exc:
            verifier.verify_request("{}", headers)
        assert exc.value.code is ErrorCode.TIMESTAMP_INVALID

    def test_missing_challenge(self, verifier):
        headers = _headers(verifier, "{}")
        del headers["X-Challenge-Token"]
        with pytest.raises(AuthError) as exc:
            verifier.verify_request("{}", headers)
        assert exc.value.code is ErrorCode.CHALLENGE_MISSING

    def test_stale_timestamp(self, verifier):
        stale = NOW_MS - 300_001
        headers = _headers(verifier, "{}", timestamp=stale)
        with pytest.raises(AuthError) as exc:
            verifier.verify_request("{}", headers)
        assert exc.value.code is ErrorCode.TIMESTAMP_EXPIRED

    def test_tampered_payload(self, verifier):
        headers = _headers(verifier, canonical_json({"pin": "123456"}))
        with pytest.raises(AuthError) as exc:
            verifier.verify_request(canonical_json({"pin": "654321"}), headers)
        assert exc.value.code is ErrorCode.HMAC_INVALID
        assert exc.value.status == 401

    def test_missing_signature_reported_before_bad_timestamp(self, verifier):
        headers = {"X-Timestamp": "garbage"}
        with pytest.raises(AuthError) as exc:
            verifier.verify_request("{}", headers)
        assert exc.value.code is ErrorCode.HMAC_MISSING

    def test_stats_track_outcomes(self, verifier):
        payload = "{}"
        verifier.verify_request(payload, _headers(verifier, payload))
        with pytest.raises(AuthError):
            verifier.verify_request(payload, _headers(verifier, payload, signature="0" * 64))
        stats = verifier.stats()
        assert stats["totalRequests"] == 2
        assert stats["validHMACs"] == 1
        assert stats["invalidHMACs"] == 1
        assert stats["successRate"] == "50.00%"


class TestCanonicalJson:
    def test_compact_and_order_preserving(self):
        body = {"platform": "GitHub", "masterPassword": "hunter22"}
        assert canonical_json(body) == '{"platform":"GitHub","masterPassword":"hunter22"}'

    def test_non_ascii_kept_verbatim(self):
        assert canonical_json({"p": "café"}) == '{"p":"café"}'

    def test_none_is_empty_object(self):
        assert canonical_json(None) == "{}"
