"""Error Taxonomy - Exceptions and user-facing messages.

Every error here is recoverable: callers surface ``str(error)`` as a transient
notification and leave local state untouched so the user can retry.
"""

import json
from typing import Any


GENERIC_ERROR_MESSAGE = "Something went wrong."

AUTH_MESSAGES: dict[str, str] = {
    "auth/email-already-in-use": "That email is already registered.",
    "auth/invalid-credential": "Invalid email or password.",
    "auth/wrong-password": "Invalid email or password.",
    "auth/user-not-found": "No account found with that email.",
    "auth/too-many-requests": "Too many attempts. Please try again later.",
    "auth/popup-closed-by-user": "Google sign-in was closed before completing.",
    "auth/weak-password": "Password should be at least 6 characters.",
    "auth/invalid-email": "That email address is not valid.",
    "auth/user-disabled": "This account has been disabled.",
    "auth/user-token-expired": "Your session has expired. Please sign in again.",
    "auth/invalid-user-token": "Your session has expired. Please sign in again.",
}


class TrackerError(Exception):
    """Base class for all recoverable tracker errors."""


class InputValidationError(TrackerError):
    """User input failed validation. Raised before any network call."""


class RemoteOperationError(TrackerError):
    """A call to the storage backend failed."""


class NotAuthenticatedError(TrackerError):
    """An operation needs a signed-in user and there is none."""

    def __init__(self, message: str = "Please sign in to continue.") -> None:
        super().__init__(message)


class SaveInProgressError(TrackerError):
    """A mutating request arrived while another one is still in flight."""

    def __init__(self, message: str = "A save is already in progress.") -> None:
        super().__init__(message)


class AuthError(TrackerError):
    """The auth provider rejected a request.

    Attributes:
        code: Provider error code, e.g. ``auth/invalid-credential``
    """

    def __init__(self, code: str, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        super().__init__(auth_error_message(code, detail))


def auth_error_message(code: str, detail: str | None = None) -> str:
    """Map a provider error code to a user-facing message.

    Args:
        code: Provider error code
        detail: Raw provider message, used when the code is unknown

    Returns:
        Human-readable message
    """
    if code in AUTH_MESSAGES:
        return AUTH_MESSAGES[code]
    return detail or GENERIC_ERROR_MESSAGE


def error_message(err: Any, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
    """Best available human-readable message for any error shape.

    Exceptions give their message, strings are used as-is, anything else is
    JSON-encoded if possible. Unusable shapes degrade to ``fallback``.
    """
    if isinstance(err, BaseException):
        return str(err) or fallback
    if isinstance(err, str):
        return err or fallback
    if err is None:
        return fallback
    try:
        return json.dumps(err)
    except (TypeError, ValueError):
        return fallback
