"""
InsForgeClient - Main client class for InsForge Python SDK.

Entry point for all InsForge operations.
Initializes and exposes the auth and realtime clients.
"""

from typing import Optional, Any
import aiohttp

from .auth import AuthClient
from .options import ClientOptions
from .realtime import RealtimeClient, RealtimeChannel

__version__ = "0.1.0"


class InsForgeClient:
    """
    Main InsForge client class.

    Example:
        async with InsForgeClient(url="https://app.insforge.dev", key="anon-key") as client:
            await client.auth.sign_in(email="user@example.com", password="password")
            channel = client.channel("chat:lobby")
            await channel.subscribe()
    """

    def __init__(
        self,
        url: str,
        key: Optional[str] = None,
        options: Optional[ClientOptions] = None,
    ) -> None:
        """
        Initialize InsForge client.

        Args:
            url: Base URL of the InsForge instance
            key: Anonymous or service API key
            options: Extra headers and realtime settings
        """
        if not url:
            raise ValueError("InsForgeClient: url is required")

        # Normalize URL
        self._base_url = url.rstrip("/")
        self._api_key = key
        self._options = options or ClientOptions()

        headers = dict(self._options.headers)
        headers["X-Client-Info"] = f"insforge-python/{__version__}"

        # Create HTTP session
        self._session = aiohttp.ClientSession(headers=headers)

        self.auth = AuthClient(self._base_url, self._session, self._api_key)

        # Socket.IO speaks plain http(s) URLs; the realtime handshake
        # picks up the current user token through auth.get_headers
        self.realtime = RealtimeClient(
            self._base_url,
            api_key=self._api_key,
            token_provider=self.auth.get_headers,
            options=self._options.realtime,
            headers=headers,
        )

    @property
    def url(self) -> str:
        return self._base_url

    def channel(self, name: str) -> RealtimeChannel:
        """Create or get a realtime channel."""
        return self.realtime.channel(name)

    async def close(self) -> None:
        """Close the client and release resources."""
        await self.realtime.disconnect()
        await self._session.close()

    async def __aenter__(self) -> "InsForgeClient":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit."""
        await self.close()
