"""
Advertising API client with OAuth authentication.

This module provides an authenticated async HTTP client for the account
endpoints of the Advertising API. It handles:

- OAuth token retrieval with automatic refresh (via OAuthCoordinator)
- Request retry logic for transient errors
- Error handling and logging
- 401/403 response handling with clear re-authorization guidance

Campaign management endpoints are out of scope; this client covers the
profile discovery calls every integration starts with.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from src.oauth.coordinator import OAuthCoordinator
from src.oauth.exceptions import AdsOAuthError, OAuthError, TokenNotAvailableError
from src.oauth.regions import Region

from .exceptions import AdsAPIError, AdsAuthenticationError, AdsRateLimitError
from .models import ManagerAccount, ManagerAccountsResponse, Profile

logger = logging.getLogger(__name__)

PROFILES_ENDPOINT = "/v2/profiles"
MANAGER_ACCOUNTS_ENDPOINT = "/managerAccounts"

ONBOARDING_URL = "https://advertising.amazon.com/API/docs/en-us/guides/onboarding/overview"


class AdsAPIClient:
    """
    Authenticated HTTP client for the Advertising API.

    Example:
        async with OAuthCoordinator() as oauth:
            client = AdsAPIClient(oauth)
            profiles = await client.fetch_profiles(Region.NORTH_AMERICA)
            await client.aclose()
    """

    def __init__(
        self,
        oauth_coordinator: OAuthCoordinator,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
    ):
        """
        Initialize Advertising API client.

        Args:
            oauth_coordinator: OAuth coordinator for authentication
            http_client: Shared HTTP client (one is created and owned if not provided)
            max_retries: Maximum number of retries for transient errors
            retry_delay: Base delay between retries in seconds (exponential backoff)
            timeout: Request timeout in seconds
        """
        self.oauth = oauth_coordinator
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "AdsAPIClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this client created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        region: Region,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Make authenticated HTTP request to the Advertising API.

        Args:
            method: HTTP method
            region: Region whose API host and tokens are used
            endpoint: API endpoint path
            params: Query parameters

        Returns:
            Response object (2xx)

        Raises:
            AdsAuthenticationError: No usable tokens, 401 or 403
            AdsRateLimitError: If rate limit exceeded (429)
            AdsAPIError: For other API and network errors
        """
        try:
            headers = await self.oauth.get_authorization_header(region)
        except (TokenNotAvailableError, OAuthError) as e:
            logger.error(f"Not authorized for {region.value}: {e}")
            raise AdsAuthenticationError(
                f"No valid OAuth tokens for {region.value}. "
                f"Run: ads-oauth authorize --region {region.value}"
            ) from e

        headers["Accept"] = "application/json"
        url = f"{region.api_base_url}{endpoint}"
        logger.debug(f"{method} {url}")

        attempt = 0
        while True:
            try:
                response = await self._client.request(
                    method, url, headers=headers, params=params, timeout=self.timeout
                )
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"Network error: {e}. Retrying in {delay}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue
                logger.error(f"Network error after {self.max_retries} retries: {e}")
                raise AdsAPIError(f"Network error: {e}") from e

            status = response.status_code

            if status == 401:
                logger.error("Authentication failed (401)")
                raise AdsAuthenticationError(
                    "Authentication failed. OAuth token may be expired or revoked. "
                    f"Re-authorize: ads-oauth authorize --region {region.value}",
                    status_code=401,
                )

            if status == 403:
                logger.error("Access denied (403)")
                raise AdsAuthenticationError(
                    "Your account is not approved for Advertising API access. "
                    f"Please complete the onboarding process at {ONBOARDING_URL}",
                    status_code=403,
                )

            if status == 429:
                logger.warning("Rate limit exceeded (429)")
                raise AdsRateLimitError(
                    "Advertising API rate limit exceeded. Please wait before retrying.",
                    status_code=429,
                )

            if status >= 500:
                if attempt < self.max_retries:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"Server error ({status}). "
                        f"Retrying in {delay}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue
                logger.error(f"Server error ({status}) after {self.max_retries} retries")
                raise AdsAPIError(
                    f"Advertising API server error ({status}): {response.text}",
                    status_code=status,
                )

            if not response.is_success:
                logger.error(f"API error ({status}): {response.text}")
                raise AdsAPIError(
                    f"Advertising API error ({status}): {response.text}",
                    status_code=status,
                )

            logger.debug(f"Response: {status}")
            return response

    async def fetch_profiles(self, region: Region) -> List[Profile]:
        """
        List advertising profiles available to the authorized user.

        Raises:
            AdsAuthenticationError: If authentication fails
            AdsAPIError: For API errors or an unexpected response shape
        """
        logger.info(f"Fetching profiles for {region.display_name}")
        response = await self._request("GET", region, PROFILES_ENDPOINT)
        try:
            data = response.json()
            if not isinstance(data, list):
                raise AdsAPIError("Unexpected profiles response: expected a list")
            return [Profile.model_validate(item) for item in data]
        except (ValueError, ValidationError) as e:
            raise AdsAPIError(f"Invalid profiles response: {e}") from e

    async def fetch_manager_accounts(self, region: Region) -> List[ManagerAccount]:
        """
        List manager accounts (and their linked profiles) for the user.

        Raises:
            AdsAuthenticationError: If authentication fails
            AdsAPIError: For API errors or an unexpected response shape
        """
        logger.info(f"Fetching manager accounts for {region.display_name}")
        response = await self._request("GET", region, MANAGER_ACCOUNTS_ENDPOINT)
        try:
            payload = ManagerAccountsResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AdsAPIError(f"Invalid manager accounts response: {e}") from e
        return payload.manager_accounts

    async def verify_connection(self, region: Region) -> bool:
        """
        Check that the stored tokens can reach account data.

        Manager accounts are tried first; regular advertisers without one
        fall back to the profiles endpoint.

        Returns:
            True if at least one manager account or profile is visible
            (False on any API or token error)
        """
        try:
            if await self.fetch_manager_accounts(region):
                return True
        except (AdsAPIError, AdsOAuthError) as e:
            logger.debug(f"Manager accounts unavailable, trying profiles: {e}")

        try:
            return bool(await self.fetch_profiles(region))
        except (AdsAPIError, AdsOAuthError) as e:
            logger.warning(f"Connection check failed for {region.value}: {e}")
            return False
