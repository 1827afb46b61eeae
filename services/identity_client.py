"""
Identity Client
Resolves bearer tokens issued by the hosted identity provider
"""

import logging
from typing import Optional
import httpx

from config import settings
from schemas import AuthUser
from services.errors import AuthError, NetworkError
from services.rest_data_store import error_from_response


logger = logging.getLogger(__name__)


class IdentityClient:
    """
    Thin client for the identity provider's user endpoint.

    Sign-up, sign-in and session refresh stay with the provider; this side
    only checks that a token is still valid and who it belongs to.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.BACKEND_URL or "").rstrip("/")
        self.api_key = api_key or settings.BACKEND_API_KEY
        self.timeout = timeout or settings.BACKEND_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/auth/v1",
                timeout=self.timeout,
                transport=self._transport,
                headers={"apikey": self.api_key or ""},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_user(self, access_token: str) -> AuthUser:
        """
        Look up the user owning an access token

        Raises:
            AuthError: token missing, invalid or expired
            NetworkError: provider unreachable
        """
        if not access_token:
            raise AuthError("User not authenticated")

        client = await self._get_client()
        try:
            response = await client.get(
                "/user", headers={"Authorization": f"Bearer {access_token}"}
            )
        except httpx.TransportError as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise NetworkError(str(e)) from e

        if response.status_code in (401, 403):
            raise AuthError()
        if response.is_error:
            raise error_from_response(response)

        data = response.json()
        return AuthUser(id=data["id"], email=data.get("email"), access_token=access_token)


class LocalIdentity:
    """
    Development-only resolver for the sql data store: the bearer token is
    taken to be the user id. Never wired up when DATA_STORE is "rest".
    """

    async def get_user(self, access_token: str) -> AuthUser:
        if not access_token or not access_token.strip():
            raise AuthError("User not authenticated")
        return AuthUser(id=access_token.strip(), access_token=access_token)

    async def close(self) -> None:
        return None
