"""Anonymous identity for the hosted stores.

Signs in once through the Identity Toolkit REST API with the project's web
API key and keeps the resulting id token fresh. Failure is surfaced to the
caller but never stops the application from starting; store calls made
without a token will simply be rejected downstream.
"""

import logging
import threading
import time
from enum import Enum
from typing import Dict, Optional

import httpx

from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SIGN_UP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signUp"
REFRESH_URL = "https://securetoken.googleapis.com/v1/token"

# Refresh this many seconds before the token actually expires.
TOKEN_EXPIRY_MARGIN = 60


class IdentityStatus(str, Enum):
    PENDING = "pending"
    SIGNED_IN = "signed_in"
    SKIPPED = "skipped"
    FAILED = "failed"


class AnonymousIdentity:
    """Anonymous credential holder.

    Args:
        api_key: Firebase web API key.
        client: Shared HTTP client.
        enabled: False when the configuration is incomplete; sign-in is then
            skipped and no credential is ever attached.
    """

    def __init__(self, api_key: str, client: httpx.Client, enabled: bool = True):
        self._api_key = api_key
        self._client = client
        self._enabled = enabled
        self._lock = threading.Lock()
        self._id_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._expires_at = 0.0
        self.user_id: Optional[str] = None
        self.status = IdentityStatus.PENDING if enabled else IdentityStatus.SKIPPED
        self.last_error: Optional[str] = None

    def sign_in(self) -> None:
        """Create an anonymous session.

        Raises:
            AuthenticationError: The identity service rejected or could not
                be reached.
        """
        if not self._enabled:
            logger.warning("Firebase not properly configured. Skipping authentication.")
            return

        with self._lock:
            payload = self._post(
                SIGN_UP_URL, ("idToken", "refreshToken"), json={"returnSecureToken": True}
            )
            self._store_tokens(
                payload["idToken"], payload["refreshToken"], payload.get("expiresIn", "3600")
            )
            self.user_id = payload.get("localId")
        logger.info("Signed in anonymously", extra={"user_id": self.user_id})

    def id_token(self) -> Optional[str]:
        """Current id token, refreshed when close to expiry. None when not signed in."""
        if not self._enabled or self._refresh_token is None:
            return None
        with self._lock:
            if time.monotonic() >= self._expires_at:
                payload = self._post(
                    REFRESH_URL,
                    ("id_token", "refresh_token"),
                    data={"grant_type": "refresh_token", "refresh_token": self._refresh_token},
                )
                self._store_tokens(
                    payload["id_token"], payload["refresh_token"], payload.get("expires_in", "3600")
                )
            return self._id_token

    def auth_headers(self, scheme: str = "Firebase") -> Dict[str, str]:
        """Authorization header for Storage ("Firebase") or Firestore ("Bearer")."""
        token = self.id_token()
        return {"Authorization": f"{scheme} {token}"} if token else {}

    def _post(self, url: str, required: tuple, **kwargs) -> dict:
        try:
            resp = self._client.post(url, params={"key": self._api_key}, **kwargs)
            resp.raise_for_status()
            payload = resp.json()
            missing = [key for key in required if key not in payload]
            if missing:
                raise KeyError(f"identity response lacks {missing}")
            return payload
        except (httpx.HTTPError, ValueError, KeyError) as e:
            self.status = IdentityStatus.FAILED
            self.last_error = str(e)
            logger.error(f"Error signing in anonymously: {e}")
            raise AuthenticationError() from e

    def _store_tokens(self, id_token: str, refresh_token: str, expires_in: str) -> None:
        self._id_token = id_token
        self._refresh_token = refresh_token
        self._expires_at = time.monotonic() + int(expires_in) - TOKEN_EXPIRY_MARGIN
        self.status = IdentityStatus.SIGNED_IN
        self.last_error = None
