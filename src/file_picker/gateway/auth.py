"""Server-side authentication against the Indexing Service's auth service.

Exchanges the fixed service-account credentials for a short-lived bearer
token with a password grant and caches it until it expires or a call is
refused with 401.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from ..core.settings import Settings
from .errors import AuthenticationError, TransientError

logger = logging.getLogger(__name__)

# Refresh this many seconds before the advertised expiry
EXPIRY_MARGIN_SECONDS = 30


class TokenProvider:
    """Obtains and caches the bearer token.

    Example:
        provider = TokenProvider(settings)
        headers = await provider.auth_headers()
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize provider.

        Args:
            settings: Application settings with auth URL and credentials.
            transport: Optional httpx transport (used by tests).
        """
        self.settings = settings
        self._transport = transport
        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def has_token(self) -> bool:
        if self._token is None:
            return False
        return self._expires_at is None or time.monotonic() < self._expires_at

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        self._token = None
        self._expires_at = None

    async def get_token(self) -> str:
        """Return a cached token, authenticating if there is none."""
        if self.has_token:
            return self._token
        async with self._lock:
            if not self.has_token:
                await self.authenticate()
            return self._token

    async def auth_headers(self) -> dict[str, str]:
        token = await self.get_token()
        return {"Authorization": f"Bearer {token}"}

    async def authenticate(self) -> str:
        """Run the password grant and cache the resulting token.

        Returns:
            The bearer token.

        Raises:
            ConfigurationError: If credentials or URLs are not configured.
            AuthenticationError: If the grant is rejected.
            TransientError: If the auth service cannot be reached.
        """
        email, password = self.settings.require_credentials()
        self.settings.require_endpoints()

        url = f"{self.settings.auth_url}/auth/v1/token"
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    url,
                    params={"grant_type": "password"},
                    headers={
                        "Content-Type": "application/json",
                        "Apikey": self.settings.anon_key,
                    },
                    json={"email": email, "password": password},
                )
        except httpx.TimeoutException as e:
            raise TransientError(f"Authentication request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientError(f"Authentication service unreachable: {e}") from e

        data = _safe_json(response)
        if response.status_code >= 400:
            reason = ""
            if isinstance(data, dict):
                reason = data.get("error_description") or data.get("msg") or ""
            reason = reason or response.reason_phrase
            logger.error(f"Service-account authentication failed ({response.status_code})")
            raise AuthenticationError(
                f"Authentication failed: {reason}",
                status_code=response.status_code,
            )

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Authentication failed: no access token in response")

        self._token = token
        expires_in = data.get("expires_in")
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            self._expires_at = time.monotonic() + max(expires_in - EXPIRY_MARGIN_SECONDS, 0)
        else:
            self._expires_at = None

        logger.info("Authenticated with the Indexing Service")
        return token


def _safe_json(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None
