"""Authentication - Firebase Identity Toolkit client and the user session.

Talks to the Identity Toolkit REST API for password, federated and token
lookups. ``Session`` is the explicit auth state handed to everything that
needs the current user.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..core.errors import AuthError, NotAuthenticatedError
from ..core.models import AuthUser


logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_PROVIDER_ID = "google.com"

# Identity Toolkit REST error messages mapped to client SDK style codes
REST_ERROR_CODES: dict[str, str] = {
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "INVALID_IDP_RESPONSE": "auth/invalid-credential",
    "INVALID_PASSWORD": "auth/wrong-password",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "USER_NOT_FOUND": "auth/user-not-found",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "USER_DISABLED": "auth/user-disabled",
    "WEAK_PASSWORD": "auth/weak-password",
    "INVALID_EMAIL": "auth/invalid-email",
    "TOKEN_EXPIRED": "auth/user-token-expired",
    "INVALID_ID_TOKEN": "auth/invalid-user-token",
}


@dataclass
class AuthConfig:
    """Configuration for the Identity Toolkit client.

    Attributes:
        api_key: Firebase web API key
        base_url: Identity Toolkit endpoint
    """

    api_key: str = ""
    base_url: str = DEFAULT_IDENTITY_TOOLKIT_URL

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Read FIREBASE_API_KEY and IDENTITY_TOOLKIT_URL."""
        return cls(
            api_key=os.environ.get("FIREBASE_API_KEY", ""),
            base_url=os.environ.get("IDENTITY_TOOLKIT_URL", DEFAULT_IDENTITY_TOOLKIT_URL),
        )


def error_code_from_response(payload: Any) -> tuple[str, str | None]:
    """Extract a provider code from an Identity Toolkit error body.

    Messages look like ``"WEAK_PASSWORD : Password should be ..."``; the part
    before the colon picks the code. Unexpected shapes give ``auth/internal-error``.

    Returns:
        Tuple of (code, raw message)
    """
    message = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        raw = payload["error"].get("message")
        if isinstance(raw, str):
            message = raw
    if not message:
        return "auth/internal-error", None

    key = message.split(":", 1)[0].strip()
    return REST_ERROR_CODES.get(key, "auth/internal-error"), message


@dataclass
class IdentityToolkitClient:
    """HTTPX-backed Identity Toolkit client."""

    config: AuthConfig
    http_client: httpx.Client = field(default_factory=httpx.Client)

    def _post(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.config.base_url}/accounts:{method}"
        try:
            response = self.http_client.post(
                url,
                params={"key": self.config.api_key},
                json=body,
                timeout=15,
            )
        except httpx.HTTPError as e:
            logger.error("Identity Toolkit %s failed: %s", method, str(e))
            raise AuthError("auth/network-request-failed", "Network error. Please try again.") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            code, message = error_code_from_response(payload)
            logger.warning("Identity Toolkit %s rejected: %s", method, message or response.status_code)
            raise AuthError(code, message)
        if not isinstance(payload, dict):
            raise AuthError("auth/internal-error")
        return payload

    @staticmethod
    def _user_from_payload(payload: dict[str, Any]) -> AuthUser:
        uid = payload.get("localId")
        if not uid:
            raise AuthError("auth/internal-error")
        return AuthUser(
            uid=uid,
            email=payload.get("email"),
            id_token=payload.get("idToken", ""),
            refresh_token=payload.get("refreshToken", ""),
        )

    def sign_in_with_password(self, email: str, password: str) -> AuthUser:
        """Sign in an existing email/password account."""
        payload = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._user_from_payload(payload)

    def sign_up(self, email: str, password: str) -> AuthUser:
        """Create an email/password account and sign it in."""
        payload = self._post(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._user_from_payload(payload)

    def sign_in_with_idp(self, provider_token: str, provider_id: str = DEFAULT_PROVIDER_ID) -> AuthUser:
        """Sign in with a token issued by a federated provider."""
        payload = self._post(
            "signInWithIdp",
            {
                "postBody": f"id_token={provider_token}&providerId={provider_id}",
                "requestUri": "http://localhost",
                "returnIdpCredential": True,
                "returnSecureToken": True,
            },
        )
        return self._user_from_payload(payload)

    def lookup(self, id_token: str) -> AuthUser:
        """Resolve an ID token to its user."""
        payload = self._post("lookup", {"idToken": id_token})
        users = payload.get("users")
        if not isinstance(users, list) or not users or not isinstance(users[0], dict):
            raise AuthError("auth/user-not-found")
        return self._user_from_payload({**users[0], "idToken": id_token})


class Session:
    """Current-user state for one client.

    ``loading`` stays True until the first sign-in, restore or logout settles
    who the user is.
    """

    def __init__(self, client: IdentityToolkitClient) -> None:
        self._client = client
        self.current_user: AuthUser | None = None
        self.loading = True

    def _settle(self, user: AuthUser | None) -> AuthUser | None:
        self.current_user = user
        self.loading = False
        return user

    def restore(self, id_token: str | None) -> AuthUser | None:
        """Resume a session from an ID token. Invalid tokens leave no user."""
        if not id_token:
            return self._settle(None)
        try:
            user = self._client.lookup(id_token)
        except AuthError as e:
            logger.debug("Token rejected: %s", e.code)
            return self._settle(None)
        logger.debug("Restored session for user: %s", user.uid[:8])
        return self._settle(user)

    def login_with_password(self, email: str, password: str) -> AuthUser:
        user = self._client.sign_in_with_password(email, password)
        logger.info("User signed in: %s", user.uid[:8])
        return self._settle(user)

    def register_with_password(self, email: str, password: str) -> AuthUser:
        user = self._client.sign_up(email, password)
        logger.info("User registered: %s", user.uid[:8])
        return self._settle(user)

    def login_with_federated_provider(
        self, provider_token: str | None, provider_id: str = DEFAULT_PROVIDER_ID
    ) -> AuthUser:
        """Sign in with a federated provider token.

        Raises:
            AuthError: ``auth/popup-closed-by-user`` when the provider flow
                ended without a token
        """
        if not provider_token:
            raise AuthError("auth/popup-closed-by-user")
        user = self._client.sign_in_with_idp(provider_token, provider_id)
        logger.info("User signed in with %s: %s", provider_id, user.uid[:8])
        return self._settle(user)

    def logout(self) -> None:
        if self.current_user is not None:
            logger.info("User signed out: %s", self.current_user.uid[:8])
        self._settle(None)

    def require_user(self) -> AuthUser:
        """Return the current user.

        Raises:
            NotAuthenticatedError: Nobody is signed in
        """
        if self.current_user is None:
            raise NotAuthenticatedError()
        return self.current_user
