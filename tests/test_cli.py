"""Tests for the ads-oauth CLI commands."""

from unittest import mock

import pytest
from click.testing import CliRunner

from src.ads.exceptions import AdsAuthenticationError
from src.ads.models import Profile
from src.cli import cli
from src.oauth.config import AdsOAuthConfig
from src.oauth.exceptions import AuthorizationTimeoutError, CallbackOAuthError
from src.oauth.regions import Region

AUTH_URL = "https://www.amazon.com/ap/oa?client_id=test_client_id"


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config(tmp_path) -> AdsOAuthConfig:
    """CLI configuration pointing at a temporary token file."""
    return AdsOAuthConfig(
        client_id="test_client_id",
        client_secret="test_client_secret",
        token_file=str(tmp_path / "tokens.json"),
    )


@pytest.fixture
def coordinator():
    """Patch the coordinator used by the CLI."""
    instance = mock.AsyncMock()
    instance.is_authenticated.return_value = False
    instance.initiate_authorization.return_value = AUTH_URL
    with mock.patch("src.cli.OAuthCoordinator", return_value=instance):
        yield instance


class TestAuthorizeCommand:
    """Tests for 'ads-oauth authorize' command."""

    def test_authorize_opens_browser_and_waits(self, runner, config, coordinator):
        """authorize prints the URL, opens the browser and waits for the flow."""
        with mock.patch("src.cli.webbrowser.open", return_value=True) as open_browser:
            result = runner.invoke(cli, ["authorize", "--region", "na"], obj={"config": config})

        assert result.exit_code == 0
        assert AUTH_URL in result.output
        assert "Authorization successful for North America" in result.output
        open_browser.assert_called_once_with(AUTH_URL)
        coordinator.initiate_authorization.assert_awaited_once_with(Region.NORTH_AMERICA)
        coordinator.wait_for_authorization.assert_awaited_once_with(Region.NORTH_AMERICA)
        coordinator.aclose.assert_awaited_once()

    def test_authorize_no_browser(self, runner, config, coordinator):
        """--no-browser only prints the URL."""
        with mock.patch("src.cli.webbrowser.open") as open_browser:
            result = runner.invoke(
                cli, ["authorize", "--region", "EU", "--no-browser"], obj={"config": config}
            )

        assert result.exit_code == 0
        assert AUTH_URL in result.output
        open_browser.assert_not_called()

    def test_authorize_when_already_authorized(self, runner, config, coordinator):
        """An authorized region is left alone without --force."""
        coordinator.is_authenticated.return_value = True

        result = runner.invoke(cli, ["authorize", "--region", "FE"], obj={"config": config})

        assert result.exit_code == 0
        assert "Already authorized for Far East" in result.output
        coordinator.initiate_authorization.assert_not_awaited()

    def test_authorize_force(self, runner, config, coordinator):
        """--force re-runs the flow even when authorized."""
        coordinator.is_authenticated.return_value = True

        with mock.patch("src.cli.webbrowser.open", return_value=True):
            result = runner.invoke(
                cli, ["authorize", "--region", "NA", "--force"], obj={"config": config}
            )

        assert result.exit_code == 0
        coordinator.initiate_authorization.assert_awaited_once()

    def test_authorize_timeout(self, runner, config, coordinator):
        """A timed-out flow exits with an error."""
        coordinator.wait_for_authorization.side_effect = AuthorizationTimeoutError(
            "No authorization callback received within 300 seconds"
        )

        with mock.patch("src.cli.webbrowser.open", return_value=True):
            result = runner.invoke(cli, ["authorize", "--region", "NA"], obj={"config": config})

        assert result.exit_code == 1
        assert "No authorization callback received" in result.output
        coordinator.aclose.assert_awaited_once()

    def test_authorize_denied(self, runner, config, coordinator):
        """A provider error is reported."""
        coordinator.wait_for_authorization.side_effect = CallbackOAuthError(
            "access_denied", "User denied access"
        )

        with mock.patch("src.cli.webbrowser.open", return_value=True):
            result = runner.invoke(cli, ["authorize", "--region", "NA"], obj={"config": config})

        assert result.exit_code == 1
        assert "Authorization failed: User denied access" in result.output

    def test_authorize_rejects_unknown_region(self, runner, config, coordinator):
        """Only NA, EU and FE are accepted."""
        result = runner.invoke(cli, ["authorize", "--region", "XX"], obj={"config": config})

        assert result.exit_code != 0
        coordinator.initiate_authorization.assert_not_awaited()


class TestStatusCommand:
    """Tests for 'ads-oauth status' command."""

    def test_status_all_regions(self, runner, config, coordinator):
        """status shows every region by default."""
        coordinator.get_status.side_effect = [
            {
                "region": "NA",
                "authorized": True,
                "expired": False,
                "expires_at": "2026-01-25T11:00:00+00:00",
                "expires_in_seconds": 1800.0,
                "needs_refresh": False,
                "pending_authorization": False,
            },
            {"region": "EU", "authorized": False, "message": "No tokens stored"},
            {"region": "FE", "authorized": False, "message": "No tokens stored"},
        ]

        result = runner.invoke(cli, ["status"], obj={"config": config})

        assert result.exit_code == 0
        assert "=== North America (NA) ===" in result.output
        assert "Expires in: 1800s" in result.output
        assert "=== Europe (EU) ===" in result.output
        assert result.output.count("No tokens stored") == 2

    def test_status_single_region(self, runner, config, coordinator):
        """--region limits the output."""
        coordinator.get_status.return_value = {
            "region": "EU",
            "authorized": False,
            "message": "No tokens stored",
        }

        result = runner.invoke(cli, ["status", "--region", "eu"], obj={"config": config})

        assert result.exit_code == 0
        coordinator.get_status.assert_awaited_once_with(Region.EUROPE)


class TestLogoutCommand:
    """Tests for 'ads-oauth logout' command."""

    def test_logout(self, runner, config, coordinator):
        """logout deletes tokens for the region."""
        result = runner.invoke(cli, ["logout", "--region", "NA"], obj={"config": config})

        assert result.exit_code == 0
        assert "Logged out of North America" in result.output
        coordinator.logout.assert_awaited_once_with(Region.NORTH_AMERICA)


class TestProfilesCommand:
    """Tests for 'ads-oauth profiles' command."""

    def test_profiles_listed(self, runner, config, coordinator):
        """profiles prints one line per profile."""
        profile = Profile.model_validate(
            {
                "profileId": 42,
                "countryCode": "US",
                "currencyCode": "USD",
                "timezone": "America/Los_Angeles",
                "accountInfo": {"id": "A1", "type": "seller", "name": "Example Shop"},
            }
        )
        client = mock.AsyncMock()
        client.fetch_profiles.return_value = [profile]

        with mock.patch("src.cli.AdsAPIClient", return_value=client):
            result = runner.invoke(cli, ["profiles", "--region", "NA"], obj={"config": config})

        assert result.exit_code == 0
        assert "42  US  USD  Example Shop (seller)" in result.output
        client.aclose.assert_awaited_once()

    def test_profiles_not_authorized(self, runner, config, coordinator):
        """Authentication errors exit with an error."""
        client = mock.AsyncMock()
        client.fetch_profiles.side_effect = AdsAuthenticationError("No valid OAuth tokens for NA")

        with mock.patch("src.cli.AdsAPIClient", return_value=client):
            result = runner.invoke(cli, ["profiles", "--region", "NA"], obj={"config": config})

        assert result.exit_code == 1
        assert "No valid OAuth tokens" in result.output


class TestConfiguration:
    """Tests for configuration loading in the CLI group."""

    def test_missing_credentials(self, runner):
        """Without credentials the CLI exits with guidance."""
        result = runner.invoke(
            cli, ["status"], env={"ADS_CLIENT_ID": "", "ADS_CLIENT_SECRET": ""}
        )

        assert result.exit_code == 1
        assert "Missing Advertising API OAuth credentials" in result.output

    def test_token_file_option(self, runner, coordinator, tmp_path):
        """--token-file overrides the configured token path."""
        token_file = str(tmp_path / "custom.json")
        coordinator.get_status.return_value = {
            "region": "NA",
            "authorized": False,
            "message": "No tokens stored",
        }

        with mock.patch("src.cli.OAuthCoordinator", return_value=coordinator) as factory:
            result = runner.invoke(
                cli,
                ["--token-file", token_file, "status", "--region", "NA"],
                env={"ADS_CLIENT_ID": "id", "ADS_CLIENT_SECRET": "secret"},
            )

        assert result.exit_code == 0
        assert factory.call_args.kwargs["config"].token_file == token_file
