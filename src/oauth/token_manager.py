"""
Token manager for Advertising API OAuth integration.

This module manages the OAuth token lifecycle including:
- Token exchange (authorization code + PKCE verifier -> access/refresh tokens)
- Token refresh (refresh token -> new access token)
- Automatic refresh shortly before expiry
- Token validation and status checks

Refreshes are serialized per region: a burst of concurrent callers that all
find the token near expiry triggers exactly one network refresh, and the
rest observe the freshly stored token.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from .config import AdsOAuthConfig
from .exceptions import (
    HTTPError,
    InvalidResponseError,
    NoAccessTokenError,
    NoRefreshTokenError,
    OAuthError,
    TokenNotFoundError,
    TokenRequestError,
    TokenStorageError,
)
from .regions import Region
from .token_storage import FileTokenStorage, TokenStorage, TokenStorageKey

logger = logging.getLogger(__name__)


@dataclass
class TokenResponse:
    """
    Token endpoint response.

    Attributes:
        access_token: Short-lived access token for API calls
        token_type: Token type (typically "bearer")
        expires_in: Access token lifetime in seconds
        refresh_token: Refresh token (not guaranteed to rotate on refresh)
        scope: Granted OAuth scopes
    """

    access_token: str
    token_type: str
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    def expiry_date(self, now: Optional[datetime] = None) -> datetime:
        """
        Calculate the expiration datetime relative to ``now``.

        Returns:
            Timezone-aware UTC datetime when the access token expires
        """
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=self.expires_in)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenResponse":
        """
        Create TokenResponse from the decoded JSON payload.

        Raises:
            KeyError: If required fields are missing
            TypeError: If the payload is not an object
            ValueError: If fields have invalid values
        """
        access_token = data["access_token"]
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token must be a non-empty string")

        refresh_token = data.get("refresh_token")
        return cls(
            access_token=access_token,
            token_type=str(data.get("token_type", "bearer")),
            expires_in=int(data["expires_in"]),
            refresh_token=refresh_token if refresh_token else None,
            scope=data.get("scope"),
        )


def _decode_oauth_error(response: httpx.Response) -> Optional[OAuthError]:
    """Build an OAuthError from a provider error body, if it has one."""
    try:
        data = response.json()
    except ValueError:
        return None

    if not isinstance(data, dict) or not isinstance(data.get("error"), str):
        return None

    description = data.get("error_description")
    return OAuthError(data["error"], description if isinstance(description, str) else None)


class TokenManager:
    """
    Manages OAuth token lifecycle per region.

    Responsibilities:
    - Exchange authorization codes for tokens
    - Refresh access tokens before expiry
    - Provide valid access tokens to API clients
    - Track token status
    """

    def __init__(
        self,
        config: AdsOAuthConfig,
        storage: Optional[TokenStorage] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize token manager.

        Args:
            config: OAuth configuration
            storage: Token storage (FileTokenStorage on config.token_file if
                not provided)
            http_client: Shared HTTP client (one is created and owned if
                not provided)
        """
        self.config = config
        self.storage = storage or FileTokenStorage(config.token_file)
        self._http = http_client
        self._owns_http = http_client is None
        self._locks: Dict[Region, asyncio.Lock] = {}

    def _lock_for(self, region: Region) -> asyncio.Lock:
        lock = self._locks.get(region)
        if lock is None:
            lock = self._locks[region] = asyncio.Lock()
        return lock

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._http

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def get_access_token(self, region: Region) -> str:
        """
        Get a valid access token, refreshing if necessary.

        This is the main method used by API clients. It refreshes when no
        expiry is stored or the token expires within refresh_buffer_seconds.

        Args:
            region: Region to get a token for

        Returns:
            Valid access token string

        Raises:
            NoRefreshTokenError: Refresh needed but no refresh token stored
            NoAccessTokenError: No access token stored after refresh attempt
            OAuthError / HTTPError: Token endpoint rejected the refresh
            TokenStorageError: Token store failed
        """
        async with self._lock_for(region):
            expiry = await self._load_expiry(region)

            if expiry is None:
                logger.info(f"No token expiry stored for {region.value}, refreshing")
                await self._refresh(region)
            else:
                remaining = (expiry - datetime.now(timezone.utc)).total_seconds()
                if remaining < self.config.refresh_buffer_seconds:
                    logger.info(
                        f"Token for {region.value} expires soon "
                        f"(within {self.config.refresh_buffer_seconds}s), refreshing..."
                    )
                    await self._refresh(region)

            access_token = await self._retrieve(TokenStorageKey.ACCESS_TOKEN, region)
            if access_token is None:
                raise NoAccessTokenError("No access token available. Please login.")
            return access_token

    async def refresh_token(self, region: Region) -> TokenResponse:
        """
        Refresh the access token using the stored refresh token.

        Args:
            region: Region to refresh

        Returns:
            New TokenResponse (already persisted)

        Raises:
            NoRefreshTokenError: If no refresh token is stored (no network call)
            OAuthError: Provider returned a structured error
            HTTPError: Non-200 response without an OAuth error body
            InvalidResponseError: 200 response that is not a token payload
            TokenRequestError: Network failure after all retries
            TokenStorageError: Token store failed
        """
        async with self._lock_for(region):
            return await self._refresh(region)

    async def exchange_code(
        self, region: Region, code: str, code_verifier: str, redirect_uri: str
    ) -> TokenResponse:
        """
        Exchange authorization code for access and refresh tokens.

        Called once after the callback server receives the code.

        Args:
            region: Region being authorized
            code: Code received from the OAuth callback
            code_verifier: PKCE verifier matching the challenge that was sent
            redirect_uri: Redirect URI used in the authorization request

        Returns:
            TokenResponse (already persisted)

        Raises:
            Same as refresh_token(), except NoRefreshTokenError
        """
        async with self._lock_for(region):
            logger.info(f"Exchanging authorization code for tokens ({region.value})")
            tokens = await self._request_tokens(
                region,
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "code_verifier": code_verifier,
                },
                "exchange",
            )
            await self._save_tokens(tokens, region)
            logger.info(f"Successfully obtained and saved tokens for {region.value}")
            return tokens

    async def is_authenticated(self, region: Region) -> bool:
        """
        Check if both access and refresh tokens are stored.

        Returns:
            True if authorized (have tokens), False otherwise
        """
        has_access = await self._exists(TokenStorageKey.ACCESS_TOKEN, region)
        has_refresh = await self._exists(TokenStorageKey.REFRESH_TOKEN, region)
        return has_access and has_refresh

    async def revoke(self, region: Region) -> None:
        """
        Delete stored tokens for a region (local revocation).

        This does NOT revoke tokens on the provider's servers. After
        revocation, the authorization flow must be run again.
        """
        try:
            await self.storage.delete_all(region)
        except TokenStorageError:
            raise
        except Exception as e:
            raise TokenStorageError(f"Failed to delete tokens: {e}", inner=e) from e
        logger.info(f"Tokens revoked (local) for {region.value}")

    async def get_token_status(self, region: Region) -> dict:
        """
        Get current token status for diagnostics.

        Returns:
            Dictionary with token status information:
            - region: Region code
            - authorized: Whether access and refresh tokens are stored
            - expired: Whether the access token is expired
            - expires_at: When the access token expires (ISO timestamp)
            - expires_in_seconds: Seconds until expiry
            - needs_refresh: Whether the next get_access_token() refreshes
        """
        authorized = await self.is_authenticated(region)
        expiry = await self._load_expiry(region)

        if not authorized and expiry is None:
            return {"region": region.value, "authorized": False, "message": "No tokens stored"}

        if expiry is None:
            return {
                "region": region.value,
                "authorized": authorized,
                "expired": True,
                "expires_at": None,
                "expires_in_seconds": 0,
                "needs_refresh": True,
            }

        expires_in = (expiry - datetime.now(timezone.utc)).total_seconds()
        return {
            "region": region.value,
            "authorized": authorized,
            "expired": expires_in <= 0,
            "expires_at": expiry.isoformat(),
            "expires_in_seconds": max(0, expires_in),
            "needs_refresh": expires_in < self.config.refresh_buffer_seconds,
        }

    # Internals (callers hold the region lock where it matters)

    async def _refresh(self, region: Region) -> TokenResponse:
        refresh_token = await self._retrieve(TokenStorageKey.REFRESH_TOKEN, region)
        if refresh_token is None:
            raise NoRefreshTokenError("No refresh token available. Please login.")

        logger.info(f"Refreshing access token for {region.value}")
        tokens = await self._request_tokens(
            region,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            "refresh",
        )
        await self._save_tokens(tokens, region)
        logger.info(f"Successfully refreshed tokens for {region.value}")
        return tokens

    async def _request_tokens(
        self, region: Region, form: Dict[str, str], action: str
    ) -> TokenResponse:
        """
        POST a form to the region's token endpoint.

        Network errors and 5xx responses are retried with exponential
        backoff; other responses are handled immediately.
        """
        attempt = 0
        while True:
            try:
                response = await self._client().post(
                    region.token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                    timeout=self.config.request_timeout,
                )
            except httpx.TransportError as e:
                if attempt < self.config.max_retries:
                    await self._backoff(attempt, f"network error during token {action}: {e}")
                    attempt += 1
                    continue
                logger.error(f"Token {action} failed after {attempt + 1} attempts: {e}")
                raise TokenRequestError(
                    f"Network error during token {action} after {attempt + 1} attempts: {e}"
                ) from e

            if response.status_code >= 500 and attempt < self.config.max_retries:
                await self._backoff(attempt, f"server error ({response.status_code})")
                attempt += 1
                continue

            return self._parse_token_response(response, action)

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay = self.config.retry_base_delay * (2**attempt)
        logger.warning(
            f"Retrying after {delay}s due to {reason} "
            f"(attempt {attempt + 1}/{self.config.max_retries})"
        )
        await asyncio.sleep(delay)

    def _parse_token_response(self, response: httpx.Response, action: str) -> TokenResponse:
        if response.status_code != 200:
            logger.error(f"Token {action} failed: {response.status_code}")
            oauth_error = _decode_oauth_error(response)
            if oauth_error is not None:
                raise oauth_error
            raise HTTPError(response.status_code, response.text or None)

        try:
            return TokenResponse.from_dict(response.json())
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid response from token endpoint: {e}")
            raise InvalidResponseError(f"Invalid response from token endpoint: {e}") from e

    async def _save_tokens(self, tokens: TokenResponse, region: Region) -> None:
        expiry = tokens.expiry_date()
        try:
            await self.storage.save(tokens.access_token, TokenStorageKey.ACCESS_TOKEN, region)
            # Refresh tokens are not guaranteed to rotate; keep the old one if absent
            if tokens.refresh_token:
                await self.storage.save(
                    tokens.refresh_token, TokenStorageKey.REFRESH_TOKEN, region
                )
            await self.storage.save(expiry.isoformat(), TokenStorageKey.TOKEN_EXPIRY, region)
        except TokenStorageError:
            raise
        except Exception as e:
            raise TokenStorageError(f"Failed to save tokens: {e}", inner=e) from e

    async def _retrieve(self, key: str, region: Region) -> Optional[str]:
        try:
            return await self.storage.retrieve(key, region)
        except TokenNotFoundError:
            return None
        except TokenStorageError:
            raise
        except Exception as e:
            raise TokenStorageError(f"Failed to read {key}: {e}", inner=e) from e

    async def _exists(self, key: str, region: Region) -> bool:
        try:
            return await self.storage.exists(key, region)
        except TokenStorageError:
            raise
        except Exception as e:
            raise TokenStorageError(f"Failed to check {key}: {e}", inner=e) from e

    async def _load_expiry(self, region: Region) -> Optional[datetime]:
        value = await self._retrieve(TokenStorageKey.TOKEN_EXPIRY, region)
        if value is None:
            return None
        try:
            expiry = datetime.fromisoformat(value)
        except ValueError:
            logger.warning(f"Unparseable token expiry for {region.value}: {value!r}")
            return None
        # Ensure timezone-aware
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return expiry
