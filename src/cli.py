"""
Click CLI for Advertising API OAuth.

This module provides command-line interface commands for authorizing
regions, inspecting token status and logging out. It plays the part of the
application around the OAuth core: it opens the browser and waits for the
flow to finish.

Usage:
    export ADS_CLIENT_ID="your_client_id"
    export ADS_CLIENT_SECRET="your_client_secret"

    ads-oauth authorize --region NA
    ads-oauth status
    ads-oauth profiles --region NA
    ads-oauth logout --region NA
"""

import asyncio
import dataclasses
import logging
import sys
import webbrowser
from typing import Optional

import click

from src.ads.client import AdsAPIClient
from src.ads.exceptions import AdsAPIError
from src.oauth.config import AdsOAuthConfig
from src.oauth.coordinator import OAuthCoordinator
from src.oauth.exceptions import (
    AdsOAuthError,
    AuthorizationTimeoutError,
    ConfigurationError,
    FailedToStartError,
)
from src.oauth.regions import Region

logger = logging.getLogger(__name__)

REGION_CHOICES = [region.value for region in Region]


def _print_error(message: str) -> None:
    """Print error message to stderr."""
    click.secho(f"Error: {message}", fg="red", err=True)


def _print_success(message: str) -> None:
    """Print success message."""
    click.secho(message, fg="green")


def _print_warning(message: str) -> None:
    """Print warning message."""
    click.secho(f"Warning: {message}", fg="yellow")


def _get_config(ctx: click.Context) -> AdsOAuthConfig:
    """Get the OAuth configuration from context."""
    return ctx.obj["config"]


def _print_status(status: dict) -> None:
    region = Region.from_code(status["region"])
    click.echo()
    click.secho(f"=== {region.display_name} ({region.value}) ===", bold=True)

    if not status["authorized"]:
        click.echo("Authorized: no")
        if status.get("message"):
            click.echo(status["message"])
        return

    click.echo("Authorized: yes")
    if status.get("expires_at"):
        click.echo(f"Expires:    {status['expires_at']}")
    if status.get("expired"):
        click.echo("Access token expired (will refresh on next use)")
    else:
        click.echo(f"Expires in: {int(status['expires_in_seconds'])}s")
    if status.get("pending_authorization"):
        click.echo("Authorization in progress")


@click.group()
@click.option(
    "--token-file",
    default=None,
    help="Token file path (default: ~/.ads_oauth/tokens.json)",
    envvar="ADS_TOKEN_FILE",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx: click.Context, token_file: Optional[str], verbose: bool) -> None:
    """
    Advertising API OAuth - authorize regions and manage tokens.

    Credentials are read from ADS_CLIENT_ID and ADS_CLIENT_SECRET.
    """
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if "config" in ctx.obj:
        return

    try:
        config = AdsOAuthConfig.from_env()
    except ConfigurationError as e:
        _print_error(str(e))
        sys.exit(1)

    if token_file:
        config = dataclasses.replace(config, token_file=token_file)

    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose


async def _run_authorize(
    config: AdsOAuthConfig, region: Region, open_browser: bool, force: bool
) -> bool:
    coordinator = OAuthCoordinator(config=config)
    try:
        if not force and await coordinator.is_authenticated(region):
            _print_success(f"Already authorized for {region.display_name}.")
            click.echo("Use --force to re-authorize.")
            return False

        url = await coordinator.initiate_authorization(region)
        click.echo(f"Open this URL to authorize {region.display_name}:")
        click.echo(url)
        if open_browser and not webbrowser.open(url):
            _print_warning("Could not open a browser; open the URL manually.")

        click.echo(
            f"Waiting up to {config.authorization_timeout:g}s for the authorization "
            "callback..."
        )
        await coordinator.wait_for_authorization(region)
        return True
    finally:
        await coordinator.aclose()


@cli.command()
@click.option(
    "--region",
    "region_code",
    required=True,
    type=click.Choice(REGION_CHOICES, case_sensitive=False),
    help="Region to authorize",
)
@click.option("--no-browser", is_flag=True, help="Print the URL instead of opening a browser")
@click.option("--force", is_flag=True, help="Re-authorize even if tokens are stored")
@click.pass_context
def authorize(ctx: click.Context, region_code: str, no_browser: bool, force: bool) -> None:
    """Run the browser authorization flow for a region."""
    config = _get_config(ctx)
    region = Region.from_code(region_code)

    try:
        authorized_now = asyncio.run(_run_authorize(config, region, not no_browser, force))
    except AuthorizationTimeoutError as e:
        _print_error(f"{e}. Please try again.")
        sys.exit(1)
    except FailedToStartError as e:
        _print_error(f"{e}. Is another authorization running?")
        sys.exit(1)
    except AdsOAuthError as e:
        _print_error(f"Authorization failed: {e}")
        sys.exit(1)

    if not authorized_now:
        return

    _print_success(f"Authorization successful for {region.display_name}.")
    click.echo(f"Tokens saved to: {config.token_file}")


async def _collect_status(config: AdsOAuthConfig, regions: list) -> list:
    coordinator = OAuthCoordinator(config=config)
    try:
        return [await coordinator.get_status(region) for region in regions]
    finally:
        await coordinator.aclose()


@cli.command()
@click.option(
    "--region",
    "region_code",
    type=click.Choice(REGION_CHOICES, case_sensitive=False),
    help="Only show this region",
)
@click.pass_context
def status(ctx: click.Context, region_code: Optional[str]) -> None:
    """Show token status per region."""
    config = _get_config(ctx)
    regions = [Region.from_code(region_code)] if region_code else list(Region)

    try:
        statuses = asyncio.run(_collect_status(config, regions))
    except AdsOAuthError as e:
        _print_error(str(e))
        sys.exit(1)

    for entry in statuses:
        _print_status(entry)


async def _run_logout(config: AdsOAuthConfig, region: Region) -> None:
    coordinator = OAuthCoordinator(config=config)
    try:
        await coordinator.logout(region)
    finally:
        await coordinator.aclose()


@cli.command()
@click.option(
    "--region",
    "region_code",
    required=True,
    type=click.Choice(REGION_CHOICES, case_sensitive=False),
    help="Region to log out of",
)
@click.pass_context
def logout(ctx: click.Context, region_code: str) -> None:
    """Delete stored tokens for a region."""
    config = _get_config(ctx)
    region = Region.from_code(region_code)

    try:
        asyncio.run(_run_logout(config, region))
    except AdsOAuthError as e:
        _print_error(str(e))
        sys.exit(1)

    _print_success(f"Logged out of {region.display_name}.")


async def _fetch_profiles(config: AdsOAuthConfig, region: Region) -> list:
    coordinator = OAuthCoordinator(config=config)
    client = AdsAPIClient(coordinator, timeout=config.request_timeout)
    try:
        return await client.fetch_profiles(region)
    finally:
        await client.aclose()
        await coordinator.aclose()


@cli.command()
@click.option(
    "--region",
    "region_code",
    required=True,
    type=click.Choice(REGION_CHOICES, case_sensitive=False),
    help="Region to query",
)
@click.pass_context
def profiles(ctx: click.Context, region_code: str) -> None:
    """List advertising profiles visible to the authorized account."""
    config = _get_config(ctx)
    region = Region.from_code(region_code)

    try:
        found = asyncio.run(_fetch_profiles(config, region))
    except (AdsAPIError, AdsOAuthError) as e:
        _print_error(str(e))
        sys.exit(1)

    if not found:
        _print_warning(f"No profiles found for {region.display_name}.")
        return

    for profile in found:
        click.echo(
            f"{profile.profile_id}  {profile.country_code}  {profile.currency_code}  "
            f"{profile.account_info.name} ({profile.account_info.type})"
        )


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
