"""Bearer token acquisition for Microsoft Graph"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from ..api.exceptions import AuthenticationError
from ..constants import DEFAULT_HTTP_TIMEOUT, DEFAULT_TOKEN_SKEW, GRAPH_SCOPE
from ..models.config import GraphSettings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class BearerToken:
    """Access token and the clock time it stops being valid"""

    value: str
    expires_at: float

    def __repr__(self) -> str:
        return f"BearerToken(<redacted>, expires_at={self.expires_at})"


class AuthProvider(ABC):
    """Source of bearer tokens"""

    @abstractmethod
    async def get_token(self) -> BearerToken:
        """
        Obtain a token for Graph

        Raises:
            AuthenticationError: If no token can be obtained
        """
        pass


class TokenCache:
    """Holds one token and answers whether it is still usable

    The clock is injected so expiry can be tested without waiting.
    """

    def __init__(self, clock: Clock = time.time, skew: float = DEFAULT_TOKEN_SKEW):
        self.clock = clock
        self.skew = skew
        self._token: Optional[BearerToken] = None

    def get(self) -> Optional[BearerToken]:
        token = self._token
        if token is None:
            return None
        if self.clock() >= token.expires_at - self.skew:
            return None
        return token

    def put(self, token: BearerToken) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class CachedAuthProvider(AuthProvider):
    """Wraps a provider so it is only called on a cache miss"""

    def __init__(self, provider: AuthProvider, cache: Optional[TokenCache] = None):
        self.provider = provider
        self.cache = cache or TokenCache()

    async def get_token(self) -> BearerToken:
        token = self.cache.get()
        if token is not None:
            return token

        logger.debug("Token cache miss, requesting a new token")
        token = await self.provider.get_token()
        self.cache.put(token)
        return token


class ClientSecretAuthProvider(AuthProvider):
    """OAuth2 client credentials flow against Entra ID"""

    def __init__(self,
                 settings: GraphSettings,
                 http_client: Optional[httpx.AsyncClient] = None,
                 clock: Clock = time.time):
        """
        Initialize provider

        Args:
            settings: Tenant, client id and secret
            http_client: Client to use, a private one is created if omitted
            clock: Time source for the expiry timestamp
        """
        self.settings = settings
        self.http_client = http_client
        self.clock = clock

    @property
    def token_url(self) -> str:
        authority = self.settings.authority.rstrip("/")
        return f"{authority}/{self.settings.tenant_id}/oauth2/v2.0/token"

    async def get_token(self) -> BearerToken:
        if not self.settings.is_configured:
            raise AuthenticationError("Graph credentials are not configured")

        form = {
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "scope": GRAPH_SCOPE,
            "grant_type": "client_credentials",
        }

        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.token_url, data=form)
            else:
                async with httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT) as client:
                    response = await client.post(self.token_url, data=form)
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(f"Token request failed with status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthenticationError("Token response is not JSON") from e

        access_token = payload.get("access_token")
        if not access_token:
            raise AuthenticationError("Token response has no access_token")

        expires_in = float(payload.get("expires_in", 3600))
        logger.info("Obtained Graph token, valid for %ds", int(expires_in))
        return BearerToken(value=access_token, expires_at=self.clock() + expires_in)
