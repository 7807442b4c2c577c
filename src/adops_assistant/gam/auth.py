# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Access token handling for the Google Ad Manager SOAP API.

Two pieces live here:

- ``ServiceAccountTokenExchange`` trades a signed service-account assertion
  for a short-lived bearer token (OAuth2 JWT bearer grant).
- ``CredentialCache`` keeps that token until shortly before it expires and
  makes concurrent callers share a single refresh instead of each starting
  their own exchange.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import httpx
from jose import jwt
from jose.exceptions import JOSEError

from .errors import CredentialError

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
GAM_SCOPES = (
    "https://www.googleapis.com/auth/dfp",
    "https://www.googleapis.com/auth/admanager",
)

# Google issues one-hour tokens; used when the response omits expires_in
DEFAULT_TOKEN_LIFETIME = 3600.0


class TokenExchange(Protocol):
    """Anything that can produce a fresh bearer token."""

    async def exchange(self) -> tuple[str, float]:
        """Return ``(access_token, expires_in_seconds)``."""
        ...


@dataclass(frozen=True)
class Credential:
    """A bearer token and the clock reading at which it expires."""

    access_token: str
    expires_at: float


class ServiceAccountTokenExchange:
    """OAuth2 JWT bearer exchange for a Google service account."""

    def __init__(
        self,
        service_account_email: Optional[str],
        private_key: Optional[str],
        token_url: str = GOOGLE_TOKEN_URL,
        scopes: tuple[str, ...] = GAM_SCOPES,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the exchange.

        Args:
            service_account_email: Service account client email
            private_key: PEM private key; literal ``\\n`` sequences are restored
            token_url: OAuth2 token endpoint
            scopes: Scopes requested for the token
            timeout: Request timeout in seconds
            http_client: Optional preconfigured client (tests inject a mock transport)
            clock: Wall clock used for the assertion's iat/exp claims
        """
        self._email = service_account_email
        self._private_key = private_key.replace("\\n", "\n") if private_key else None
        self._token_url = token_url
        self._scopes = scopes
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None
        self._client_loop: Optional[asyncio.AbstractEventLoop] = None
        self._clock = clock

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client for the running event loop."""
        loop = asyncio.get_running_loop()
        stale = self._owns_client and self._client_loop is not loop
        if self._client is None or self._client.is_closed or stale:
            # Pooled connections belong to the loop that opened them
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
            self._client_loop = loop
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this exchange created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    def build_assertion(self) -> str:
        """Sign the JWT assertion presented to the token endpoint."""
        now = int(self._clock())
        claims = {
            "iss": self._email,
            "scope": " ".join(self._scopes),
            "aud": self._token_url,
            "iat": now,
            "exp": now + int(DEFAULT_TOKEN_LIFETIME),
        }
        return jwt.encode(claims, self._private_key, algorithm="RS256")

    async def exchange(self) -> tuple[str, float]:
        """Trade a signed assertion for an access token.

        Returns:
            Tuple of access token and its lifetime in seconds

        Raises:
            CredentialError: Credentials missing, signing failed, or the
                token endpoint refused or could not be reached
        """
        if not self._email or not self._private_key:
            raise CredentialError(
                "Google service account credentials not configured. Set "
                "GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_PRIVATE_KEY environment variables."
            )

        try:
            assertion = self.build_assertion()
        except JOSEError as e:
            raise CredentialError(f"Could not sign service account assertion: {e}") from e

        client = await self._get_client()
        try:
            response = await client.post(
                self._token_url,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as e:
            logger.error(f"Token endpoint unreachable: {e}")
            raise CredentialError(f"Token endpoint unreachable: {e}") from e

        if response.status_code != 200:
            logger.error(f"Token exchange failed: {response.status_code} - {response.text}")
            raise CredentialError(
                f"Token exchange failed with status {response.status_code}: {response.text}"
            )

        try:
            token_data = response.json()
        except ValueError as e:
            raise CredentialError(f"Token endpoint returned invalid JSON: {e}") from e

        access_token = token_data.get("access_token")
        if not access_token:
            raise CredentialError("Failed to get Google Ad Manager access token")

        return access_token, float(token_data.get("expires_in", DEFAULT_TOKEN_LIFETIME))


class CredentialCache:
    """Caches a bearer token and refreshes it at most once at a time.

    A token is served until ``safety_margin`` seconds before it expires.
    While a refresh is running, every caller awaits the same in-flight
    task. A failed refresh raises ``CredentialError`` in every waiting
    caller and leaves the cache as it was; retrying is up to the caller.
    """

    def __init__(
        self,
        exchange: TokenExchange,
        safety_margin: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            exchange: Source of fresh tokens
            safety_margin: Seconds before expiry at which a token is no longer served
            clock: Monotonic clock, injectable for tests
        """
        self._exchange = exchange
        self._safety_margin = safety_margin
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._refresh: Optional[asyncio.Task[str]] = None

    @property
    def credential(self) -> Optional[Credential]:
        """The cached credential, if any."""
        return self._credential

    @property
    def is_refreshing(self) -> bool:
        return self._refresh is not None

    def _is_fresh(self, credential: Optional[Credential]) -> bool:
        return (
            credential is not None
            and self._clock() < credential.expires_at - self._safety_margin
        )

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing it if needed.

        Raises:
            CredentialError: The token exchange failed
        """
        if self._is_fresh(self._credential):
            logger.debug("Using cached access token")
            return self._credential.access_token

        if self._refresh is None:
            logger.info("Fetching new access token")
            self._refresh = asyncio.ensure_future(self._run_refresh())

        # One waiter giving up must not cancel the refresh for the others
        return await asyncio.shield(self._refresh)

    async def _run_refresh(self) -> str:
        try:
            try:
                access_token, expires_in = await self._exchange.exchange()
            except CredentialError:
                raise
            except Exception as e:
                raise CredentialError(f"Token exchange failed: {e}") from e

            if expires_in <= self._safety_margin:
                # Would already be stale when handed out, and never cached
                raise CredentialError(
                    f"Token lifetime {expires_in:.0f}s does not exceed the "
                    f"{self._safety_margin:.0f}s safety margin"
                )

            self._credential = Credential(
                access_token=access_token,
                expires_at=self._clock() + expires_in,
            )
            return access_token
        finally:
            self._refresh = None

    def clear(self) -> None:
        """Drop the cached token so the next call refreshes."""
        self._credential = None
