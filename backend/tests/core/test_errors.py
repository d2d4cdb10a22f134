"""Unit tests for the error taxonomy and message mapping."""

from src.core.errors import (
    GENERIC_ERROR_MESSAGE,
    AuthError,
    NotAuthenticatedError,
    SaveInProgressError,
    TrackerError,
    auth_error_message,
    error_message,
)


class TestAuthErrorMessage:
    """Tests for auth_error_message."""

    def test_known_codes(self):
        assert auth_error_message("auth/email-already-in-use") == "That email is already registered."
        assert auth_error_message("auth/invalid-credential") == "Invalid email or password."
        assert auth_error_message("auth/too-many-requests") == "Too many attempts. Please try again later."
        assert auth_error_message("auth/popup-closed-by-user") == "Google sign-in was closed before completing."

    def test_unknown_code_uses_detail(self):
        assert auth_error_message("auth/quota-exceeded", "Quota exceeded") == "Quota exceeded"

    def test_unknown_code_without_detail(self):
        assert auth_error_message("auth/quota-exceeded") == GENERIC_ERROR_MESSAGE

    def test_auth_error_carries_code(self):
        err = AuthError("auth/wrong-password")
        assert err.code == "auth/wrong-password"
        assert str(err) == "Invalid email or password."
        assert isinstance(err, TrackerError)


class TestErrorMessage:
    """Tests for error_message."""

    def test_exception_message(self):
        assert error_message(ValueError("boom")) == "boom"

    def test_empty_exception_uses_fallback(self):
        assert error_message(RuntimeError()) == GENERIC_ERROR_MESSAGE

    def test_string(self):
        assert error_message("offline") == "offline"

    def test_json_shape(self):
        assert error_message({"code": 7}) == '{"code": 7}'

    def test_unserializable_shape(self):
        assert error_message(object(), "Failed to log meal.") == "Failed to log meal."

    def test_none(self):
        assert error_message(None) == GENERIC_ERROR_MESSAGE

    def test_default_messages(self):
        assert str(NotAuthenticatedError()) == "Please sign in to continue."
        assert str(SaveInProgressError()) == "A save is already in progress."
