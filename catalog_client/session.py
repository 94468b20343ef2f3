"""Session store: authentication state shared by every view.

A :class:`Session` is created once per process and handed to the clients and
views that need it. It owns the token (durably, through a
:class:`~catalog_client.token_store.TokenStore`), the identity of the logged
in user, and the bearer credential attached to the shared
:class:`~catalog_client.services.http_client.ApiClient`.

``authenticated`` is derived from the token and nothing else, so the
invariant ``authenticated == (token is not None)`` holds after every
operation.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from catalog_client.errors import AuthError, CatalogClientError
from catalog_client.models import UserIdentity
from catalog_client.services.http_client import ApiClient
from catalog_client.token_store import TokenStore

logger = logging.getLogger(__name__)

LOGIN_FAILED = "Login failed"
SIGNUP_FAILED = "Signup failed"


class SessionState(Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a session operation. Never raised, always returned."""
    success: bool
    error: Optional[str] = None
    user: Optional[UserIdentity] = None


Listener = Callable[["Session"], None]


class Session:
    """Authentication context for one client process."""

    def __init__(self, api: ApiClient, token_store: TokenStore) -> None:
        self.api = api
        self.token_store = token_store
        self._token: Optional[str] = None
        self._user: Optional[UserIdentity] = None
        self._pending_logins = 0
        self._listeners: List[Listener] = []

    # ------------------------- State ------------------------- #
    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[UserIdentity]:
        return self._user

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    @property
    def state(self) -> SessionState:
        if self.authenticated:
            return SessionState.AUTHENTICATED
        if self._pending_logins:
            return SessionState.AUTHENTICATING
        return SessionState.ANONYMOUS

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every state change. Returns an unsubscribe hook."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _attach(self, token: str) -> None:
        self._token = token
        self.api.set_bearer_token(token)

    # ------------------------- Lifecycle ------------------------- #
    def restore(self) -> None:
        """Re-attach a durable token left by a previous process.

        The token is not validated here; a stale token shows up later as a
        rejected request (see :meth:`expire`).
        """
        token = self.token_store.load()
        if not token:
            return
        self._attach(token)
        logger.info("Session restored from stored token")
        self._notify()

    async def login(self, username: str, password: str) -> AuthResult:
        self._pending_logins += 1
        self._notify()
        try:
            data = await self.api.post(
                "/api/auth/login", json={"username": username, "password": password}
            )
            token = data.get("token") if isinstance(data, dict) else None
            if not token:
                raise AuthError(LOGIN_FAILED)
            user = self._user_from_payload(data.get("user"))
        except CatalogClientError as e:
            self._pending_logins -= 1
            logger.warning(f"Login failed for {username!r}: {e.message}")
            self._notify()
            return AuthResult(success=False, error=e.detail or LOGIN_FAILED)

        self._pending_logins -= 1
        try:
            self.token_store.save(token)
        except OSError as e:
            # The session still works for this process
            logger.warning(f"Could not store the session token: {e}")
        self._attach(token)
        self._user = user
        logger.info(f"Logged in as {username!r}")
        self._notify()
        return AuthResult(success=True, user=user)

    async def signup(self, profile: Dict[str, Any]) -> AuthResult:
        """Register a new account.

        Only the returned identity is kept: signup never stores a token, so
        the new user still has to log in before acting as an authenticated
        member.
        """
        try:
            data = await self.api.post("/api/auth/signup", json=profile)
            payload = data.get("user", data) if isinstance(data, dict) else None
            user = self._user_from_payload(payload)
            if user is None:
                raise AuthError(SIGNUP_FAILED)
        except CatalogClientError as e:
            logger.warning(f"Signup failed: {e.message}")
            return AuthResult(success=False, error=e.detail or SIGNUP_FAILED)

        self._user = user
        logger.info(f"Signed up {user.username!r}")
        self._notify()
        return AuthResult(success=True, user=user)

    def logout(self) -> None:
        """Forget the token, the credential and the identity. Safe to repeat."""
        was_active = self.authenticated or self._user is not None
        self.token_store.clear()
        self.api.clear_bearer_token()
        self._token = None
        self._user = None
        if was_active:
            logger.info("Logged out")
            self._notify()

    def expire(self) -> None:
        """Drop a token the backend has just rejected."""
        if self.authenticated:
            logger.warning("Stored session token was rejected; logging out")
        self.logout()

    async def fetch_current_user(self) -> AuthResult:
        """Load the identity behind a restored token."""
        if not self.authenticated:
            return AuthResult(success=False, error="Not logged in")
        try:
            data = await self.api.get("/api/auth/me")
            user = self._user_from_payload(data)
            if user is None:
                raise AuthError("User not found", 401)
        except AuthError as e:
            if e.status_code == 401:
                self.expire()
            return AuthResult(success=False, error=e.detail or "Session expired")
        except CatalogClientError as e:
            return AuthResult(success=False, error=e.detail or "Failed to load profile")

        self._user = user
        self._notify()
        return AuthResult(success=True, user=user)

    @staticmethod
    def _user_from_payload(payload: Any) -> Optional[UserIdentity]:
        if not isinstance(payload, dict) or "id" not in payload:
            return None
        return UserIdentity.from_dict(payload)
