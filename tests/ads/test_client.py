"""Tests for the Advertising API client."""

from unittest import mock

import httpx
import pytest
import pytest_asyncio
from pytest_httpx import HTTPXMock

from src.ads.client import AdsAPIClient
from src.ads.exceptions import AdsAPIError, AdsAuthenticationError, AdsRateLimitError
from src.ads.models import Profile
from src.oauth.exceptions import HTTPError, NoRefreshTokenError, TokenRequestError
from src.oauth.regions import Region

NA = Region.NORTH_AMERICA
PROFILES_URL = "https://advertising-api.amazon.com/v2/profiles"
MANAGER_ACCOUNTS_URL = "https://advertising-api.amazon.com/managerAccounts"

PROFILE = {
    "profileId": 3401234567890,
    "countryCode": "US",
    "currencyCode": "USD",
    "timezone": "America/Los_Angeles",
    "accountInfo": {
        "id": "A1B2C3D4E5",
        "type": "seller",
        "name": "Example Shop",
        "validPaymentMethod": True,
    },
}

MANAGER_ACCOUNTS = {
    "managerAccounts": [
        {
            "managerAccountId": "amzn1.ads-account.g.abc",
            "managerAccountName": "Example Group",
            "linkedAccounts": [
                {
                    "profileId": 123,
                    "accountId": "ENTITY1",
                    "accountName": "Example Shop",
                    "marketplaceId": "ATVPDKIKX0DER",
                }
            ],
        }
    ]
}


@pytest.fixture
def oauth():
    """Coordinator stand-in that always returns valid headers."""
    coordinator = mock.AsyncMock()
    coordinator.get_authorization_header.return_value = {
        "Authorization": "Bearer test_token",
        "Amazon-Advertising-API-ClientId": "test_client_id",
    }
    return coordinator


@pytest_asyncio.fixture
async def client(oauth):
    """Client with no retry delay."""
    api = AdsAPIClient(oauth, retry_delay=0)
    yield api
    await api.aclose()


class TestFetchProfiles:
    """Tests for fetch_profiles()."""

    @pytest.mark.asyncio
    async def test_fetch_profiles(self, client, httpx_mock: HTTPXMock):
        """Profiles are parsed and ids normalized to strings."""
        httpx_mock.add_response(url=PROFILES_URL, method="GET", json=[PROFILE])

        profiles = await client.fetch_profiles(NA)

        assert len(profiles) == 1
        assert isinstance(profiles[0], Profile)
        assert profiles[0].profile_id == "3401234567890"
        assert profiles[0].account_info.name == "Example Shop"
        assert profiles[0].account_info.valid_payment_method is True

    @pytest.mark.asyncio
    async def test_sends_auth_headers(self, client, httpx_mock: HTTPXMock):
        """Requests carry bearer token and client id."""
        httpx_mock.add_response(url=PROFILES_URL, json=[])

        await client.fetch_profiles(NA)

        request = httpx_mock.get_requests()[0]
        assert request.headers["Authorization"] == "Bearer test_token"
        assert request.headers["Amazon-Advertising-API-ClientId"] == "test_client_id"
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_regional_host(self, client, httpx_mock: HTTPXMock):
        """Each region calls its own API host."""
        httpx_mock.add_response(url="https://advertising-api-eu.amazon.com/v2/profiles", json=[])

        assert await client.fetch_profiles(Region.EUROPE) == []

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, client, httpx_mock: HTTPXMock):
        """A non-list payload raises AdsAPIError."""
        httpx_mock.add_response(url=PROFILES_URL, json={"profiles": []})

        with pytest.raises(AdsAPIError, match="expected a list"):
            await client.fetch_profiles(NA)

    @pytest.mark.asyncio
    async def test_invalid_profile(self, client, httpx_mock: HTTPXMock):
        """A profile missing fields raises AdsAPIError."""
        httpx_mock.add_response(url=PROFILES_URL, json=[{"profileId": 1}])

        with pytest.raises(AdsAPIError, match="Invalid profiles response"):
            await client.fetch_profiles(NA)


class TestFetchManagerAccounts:
    """Tests for fetch_manager_accounts()."""

    @pytest.mark.asyncio
    async def test_fetch_manager_accounts(self, client, httpx_mock: HTTPXMock):
        """Manager accounts and linked profiles are parsed."""
        httpx_mock.add_response(url=MANAGER_ACCOUNTS_URL, json=MANAGER_ACCOUNTS)

        accounts = await client.fetch_manager_accounts(NA)

        assert len(accounts) == 1
        assert accounts[0].manager_account_name == "Example Group"
        assert accounts[0].linked_accounts[0].profile_id == "123"
        assert accounts[0].linked_accounts[0].marketplace_id == "ATVPDKIKX0DER"


class TestErrorHandling:
    """Tests for HTTP error handling."""

    @pytest.mark.asyncio
    async def test_no_tokens(self, client, oauth, httpx_mock: HTTPXMock):
        """Missing tokens raise AdsAuthenticationError without a request."""
        oauth.get_authorization_header.side_effect = NoRefreshTokenError("No refresh token")

        with pytest.raises(AdsAuthenticationError, match="ads-oauth authorize --region NA"):
            await client.fetch_profiles(NA)
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_unauthorized(self, client, httpx_mock: HTTPXMock):
        """401 raises AdsAuthenticationError."""
        httpx_mock.add_response(url=PROFILES_URL, status_code=401)

        with pytest.raises(AdsAuthenticationError) as exc_info:
            await client.fetch_profiles(NA)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_forbidden(self, client, httpx_mock: HTTPXMock):
        """403 explains that API access needs onboarding."""
        httpx_mock.add_response(url=PROFILES_URL, status_code=403)

        with pytest.raises(AdsAuthenticationError, match="not approved for Advertising API"):
            await client.fetch_profiles(NA)

    @pytest.mark.asyncio
    async def test_rate_limited(self, client, httpx_mock: HTTPXMock):
        """429 raises AdsRateLimitError."""
        httpx_mock.add_response(url=PROFILES_URL, status_code=429)

        with pytest.raises(AdsRateLimitError):
            await client.fetch_profiles(NA)

    @pytest.mark.asyncio
    async def test_server_error_retried(self, client, httpx_mock: HTTPXMock):
        """5xx responses are retried."""
        httpx_mock.add_response(url=PROFILES_URL, status_code=500)
        httpx_mock.add_response(url=PROFILES_URL, json=[PROFILE])

        profiles = await client.fetch_profiles(NA)

        assert len(profiles) == 1
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_server_error_exhausted(self, client, httpx_mock: HTTPXMock):
        """Persistent 5xx responses raise AdsAPIError."""
        for _ in range(3):
            httpx_mock.add_response(url=PROFILES_URL, status_code=502, text="bad gateway")

        with pytest.raises(AdsAPIError) as exc_info:
            await client.fetch_profiles(NA)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_network_error(self, client, httpx_mock: HTTPXMock):
        """Persistent network failures raise AdsAPIError."""
        for _ in range(3):
            httpx_mock.add_exception(httpx.ConnectError("Connection refused"), url=PROFILES_URL)

        with pytest.raises(AdsAPIError, match="Network error"):
            await client.fetch_profiles(NA)

    @pytest.mark.asyncio
    async def test_client_error(self, client, httpx_mock: HTTPXMock):
        """Other 4xx responses raise AdsAPIError with the status."""
        httpx_mock.add_response(url=PROFILES_URL, status_code=400, text="bad request")

        with pytest.raises(AdsAPIError) as exc_info:
            await client.fetch_profiles(NA)
        assert exc_info.value.status_code == 400


class TestVerifyConnection:
    """Tests for verify_connection()."""

    @pytest.mark.asyncio
    async def test_manager_accounts_found(self, client, httpx_mock: HTTPXMock):
        """Manager accounts alone verify the connection."""
        httpx_mock.add_response(url=MANAGER_ACCOUNTS_URL, json=MANAGER_ACCOUNTS)

        assert await client.verify_connection(NA) is True

    @pytest.mark.asyncio
    async def test_falls_back_to_profiles(self, client, httpx_mock: HTTPXMock):
        """Without manager accounts the profiles endpoint decides."""
        httpx_mock.add_response(url=MANAGER_ACCOUNTS_URL, status_code=404)
        httpx_mock.add_response(url=PROFILES_URL, json=[PROFILE])

        assert await client.verify_connection(NA) is True

    @pytest.mark.asyncio
    async def test_nothing_visible(self, client, httpx_mock: HTTPXMock):
        """No accounts anywhere means the connection is not usable."""
        httpx_mock.add_response(url=MANAGER_ACCOUNTS_URL, json={"managerAccounts": []})
        httpx_mock.add_response(url=PROFILES_URL, status_code=401)

        assert await client.verify_connection(NA) is False

    @pytest.mark.asyncio
    async def test_token_endpoint_failure(self, client, oauth, httpx_mock: HTTPXMock):
        """A token refresh that fails with an HTTP error reports False."""
        oauth.get_authorization_header.side_effect = HTTPError(502, "Bad Gateway")

        assert await client.verify_connection(NA) is False
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_token_network_failure(self, client, oauth, httpx_mock: HTTPXMock):
        """A token endpoint that cannot be reached reports False."""
        oauth.get_authorization_header.side_effect = TokenRequestError("Network error")

        assert await client.verify_connection(NA) is False
