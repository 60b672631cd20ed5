"""
AuthClient - Authentication operations for InsForge.

Handles user sign up, sign in and sign out, and provides the current
auth headers to the rest of the SDK (including the realtime handshake).
Uses Result pattern - never raises exceptions.
"""

from typing import Optional, Dict, Any, Callable, List
import inspect
import logging

import aiohttp

from .types import (
    InsForgeResponse,
    InsForgeError,
    User,
    Session,
    AuthData,
)

logger = logging.getLogger(__name__)

AuthStateListener = Callable[[Optional[Session]], Any]


class AuthClient:
    """Authentication client for user management."""

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession,
        api_key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self._auth_url = f"{base_url}/api/auth"
        self._session = session
        self._api_key = api_key
        self._headers = dict(headers or {})
        self._current: Optional[Session] = None
        self._listeners: List[AuthStateListener] = []

    def get_headers(self) -> Dict[str, str]:
        """Build request headers for the current auth state.

        Authorization carries the user's access token when signed in,
        otherwise the API key.
        """
        headers: Dict[str, str] = dict(self._headers)
        headers["Content-Type"] = "application/json"
        if self._api_key:
            headers["apikey"] = self._api_key
        token = self.get_token() or self._api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def get_token(self) -> Optional[str]:
        """Get current access token."""
        return self._current.access_token if self._current else None

    def get_session(self) -> Optional[Session]:
        """Get current session."""
        return self._current

    def on_auth_state_change(self, listener: AuthStateListener) -> None:
        """Call ``listener`` with the new session (or None) on every change."""
        self._listeners.append(listener)

    async def _set_session(self, session: Optional[Session]) -> None:
        self._current = session
        for listener in list(self._listeners):
            try:
                result = listener(session)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Auth state listener raised")

    async def _authenticate(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        default_error: str,
    ) -> InsForgeResponse[AuthData]:
        url = f"{self._auth_url}/{endpoint}"
        logger.debug("POST %s", url)
        try:
            async with self._session.post(
                url,
                json=payload,
                headers=self.get_headers(),
            ) as response:
                data = await response.json()
                logger.debug("Response: %s", response.status)

                if not response.ok:
                    return InsForgeResponse(
                        data=None,
                        error=InsForgeError(
                            message=data.get("message") or data.get("error") or default_error,
                            status=response.status,
                            code=data.get("error"),
                            details=data,
                        ),
                    )

                user = User.from_dict(data["user"])
                session = None
                if data.get("accessToken"):
                    session = Session(access_token=data["accessToken"], user=user)
                    await self._set_session(session)

                return InsForgeResponse(
                    data=AuthData(
                        user=user,
                        session=session,
                        require_email_verification=bool(
                            data.get("requireEmailVerification", False)
                        ),
                    ),
                    error=None,
                )
        except Exception as e:
            logger.warning("Auth request to %s failed: %s", url, e)
            return InsForgeResponse(
                data=None,
                error=InsForgeError(message=str(e), code="NETWORK_ERROR"),
            )

    async def sign_up(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
    ) -> InsForgeResponse[AuthData]:
        """Register a new user with email and password."""
        payload: Dict[str, Any] = {"email": email, "password": password}
        if name:
            payload["name"] = name
        return await self._authenticate("users", payload, "Sign up failed")

    async def sign_in(
        self,
        email: str,
        password: str,
    ) -> InsForgeResponse[AuthData]:
        """Sign in with email and password."""
        return await self._authenticate(
            "sessions", {"email": email, "password": password}, "Sign in failed"
        )

    async def sign_out(self) -> InsForgeResponse[None]:
        """Sign out the current user."""
        await self._set_session(None)
        logger.debug("User signed out")
        return InsForgeResponse(data=None, error=None)

    async def get_current_user(self) -> InsForgeResponse[User]:
        """Get the current authenticated user."""
        if not self._current:
            return InsForgeResponse(
                data=None,
                error=InsForgeError(message="Not authenticated", code="NOT_AUTHENTICATED"),
            )

        try:
            async with self._session.get(
                f"{self._auth_url}/sessions/current",
                headers=self.get_headers(),
            ) as response:
                data = await response.json()

                if not response.ok:
                    return InsForgeResponse(
                        data=None,
                        error=InsForgeError(
                            message=data.get("message") or "Failed to fetch user",
                            status=response.status,
                            code=data.get("error"),
                        ),
                    )

                return InsForgeResponse(data=User.from_dict(data["user"]), error=None)
        except Exception as e:
            return InsForgeResponse(
                data=None,
                error=InsForgeError(message=str(e), code="NETWORK_ERROR"),
            )
