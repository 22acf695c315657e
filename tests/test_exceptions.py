"""Tests for Hookpost exception hierarchy."""

import pytest

from hookpost.exceptions import (
    ConfigurationError,
    DeliveryError,
    DeliveryStateError,
    HookpostError,
    InvalidSignatureError,
    InvalidURLError,
    MalformedSignatureError,
    NotFoundError,
    StaleSignatureError,
    StorageError,
    UnauthorizedError,
    UnknownEventTypeError,
    VerificationError,
)


class TestHookpostError:
    def test_message_and_code(self):
        error = HookpostError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"
        assert error.code == "hookpost_error"

    def test_to_dict(self):
        assert HookpostError("boom").to_dict() == {
            "error": {"code": "hookpost_error", "message": "boom"}
        }


class TestHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            InvalidURLError("http://x"),
            UnknownEventTypeError(["x.y"]),
            NotFoundError("webhook", "whk_1"),
            UnauthorizedError("webhook", "whk_1", "acct_2"),
        ],
    )
    def test_configuration_errors(self, error):
        assert isinstance(error, ConfigurationError)
        assert isinstance(error, HookpostError)

    @pytest.mark.parametrize(
        "error",
        [
            MalformedSignatureError("bad header"),
            StaleSignatureError(400, 300),
            InvalidSignatureError("mismatch"),
        ],
    )
    def test_verification_errors(self, error):
        assert isinstance(error, VerificationError)
        assert not isinstance(error, ConfigurationError)

    def test_runtime_errors(self):
        assert isinstance(StorageError("x"), HookpostError)
        assert isinstance(DeliveryStateError("x"), HookpostError)
        assert not isinstance(DeliveryError("x"), ConfigurationError)


class TestDetails:
    def test_invalid_url(self):
        error = InvalidURLError("http://x.example.com", "must use https")
        assert error.url == "http://x.example.com"
        assert "must use https" in error.message
        assert error.to_dict()["error"]["url"] == "http://x.example.com"

    def test_unknown_event_type(self):
        error = UnknownEventTypeError(["a.b", "c.d"])
        assert error.message == "Unknown event types: a.b, c.d"
        assert error.to_dict()["error"]["event_types"] == ["a.b", "c.d"]

    def test_unknown_event_type_custom_message(self):
        assert UnknownEventTypeError([], "At least one").message == "At least one"

    def test_not_found(self):
        error = NotFoundError("delivery", "whd_1")
        assert error.to_dict()["error"] == {
            "code": "not_found",
            "resource_type": "delivery",
            "resource_id": "whd_1",
            "message": "delivery not found: whd_1",
        }

    def test_unauthorized(self):
        error = UnauthorizedError("webhook", "whk_1", "acct_2")
        assert error.code == "unauthorized"
        assert error.owner_id == "acct_2"

    def test_delivery_error(self):
        error = DeliveryError("HTTP 502", status_code=502, response="bad gateway")
        assert error.reason == "HTTP 502"
        assert error.status_code == 502
        assert error.response == "bad gateway"

    def test_stale_signature(self):
        error = StaleSignatureError(age_seconds=900, tolerance_seconds=300)
        data = error.to_dict()["error"]
        assert data["code"] == "stale_signature"
        assert data["age_seconds"] == 900
        assert data["tolerance_seconds"] == 300
