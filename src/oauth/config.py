"""
OAuth configuration for Advertising API integration.

This module provides configuration management for the local-loopback
OAuth 2.0 Authorization Code + PKCE flow. Configuration can be loaded from
environment variables or provided programmatically.
"""

import os
from dataclasses import dataclass
from typing import Tuple

from .exceptions import ConfigurationError

DEFAULT_SCOPES = ("profile", "advertising::campaign_management")


@dataclass
class AdsOAuthConfig:
    """
    Configuration for Advertising API OAuth 2.0.

    The redirect URI (http://localhost:{callback_port}/callback) must be
    registered with the identity provider ahead of time, so the callback
    port is fixed. As a consequence only one authorization flow can be in
    flight per process at a time.

    Attributes:
        client_id: Application client ID
        client_secret: Application client secret
        scopes: OAuth scopes requested during authorization
        callback_host: Interface the callback server binds to
        callback_port: Port for the callback server (default: 8765)
        redirect_host: Host name used in the registered redirect URI
        callback_path: URL path for the callback
        authorization_timeout: Seconds to wait for the browser redirect
        shutdown_grace: Seconds to keep the listener open after success
        refresh_buffer_seconds: Refresh tokens this many seconds before expiry
        request_timeout: Timeout for token endpoint requests (seconds)
        max_retries: Retries for transient token endpoint failures
        retry_base_delay: Base delay for exponential backoff (seconds)
        token_file: Path to the JSON token file used by FileTokenStorage
    """

    # Required - from the Advertising API console
    client_id: str
    client_secret: str

    scopes: Tuple[str, ...] = DEFAULT_SCOPES

    # Callback configuration
    callback_host: str = "127.0.0.1"
    callback_port: int = 8765
    redirect_host: str = "localhost"
    callback_path: str = "/callback"

    # Flow timing
    authorization_timeout: float = 300.0
    shutdown_grace: float = 0.5

    # Token refresh settings
    refresh_buffer_seconds: int = 300  # Refresh 5 min before expiry
    request_timeout: float = 30.0
    max_retries: int = 2
    retry_base_delay: float = 1.0

    token_file: str = "~/.ads_oauth/tokens.json"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.client_id:
            raise ConfigurationError("client_id cannot be empty")

        if not self.client_secret:
            raise ConfigurationError("client_secret cannot be empty")

        if not self.scopes:
            raise ConfigurationError("scopes cannot be empty")
        self.scopes = tuple(self.scopes)

        if not isinstance(self.callback_port, int) or not (
            1 <= self.callback_port <= 65535
        ):
            raise ConfigurationError(
                f"callback_port must be between 1 and 65535, got {self.callback_port}"
            )

        if not self.callback_path.startswith("/callback"):
            raise ConfigurationError(
                f"callback_path must start with /callback, got {self.callback_path}"
            )

        if self.authorization_timeout <= 0:
            raise ConfigurationError("authorization_timeout must be positive")

        if self.shutdown_grace < 0:
            raise ConfigurationError("shutdown_grace cannot be negative")

        if self.refresh_buffer_seconds < 0:
            raise ConfigurationError("refresh_buffer_seconds cannot be negative")

        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")

        if self.retry_base_delay < 0:
            raise ConfigurationError("retry_base_delay cannot be negative")

    def redirect_uri(self, port: int) -> str:
        """
        Redirect URI for a callback server bound to ``port``.

        Returns:
            Callback URL (e.g., http://localhost:8765/callback)
        """
        return f"http://{self.redirect_host}:{port}{self.callback_path}"

    @classmethod
    def from_env(cls) -> "AdsOAuthConfig":
        """
        Load configuration from environment variables.

        Required environment variables:
            ADS_CLIENT_ID: Application client ID
            ADS_CLIENT_SECRET: Application client secret

        Optional environment variables:
            ADS_SCOPES: Space-separated scopes
            ADS_CALLBACK_PORT: Callback port (default: 8765)
            ADS_AUTH_TIMEOUT: Seconds to wait for the callback (default: 300)
            ADS_TOKEN_FILE: Token file path (default: ~/.ads_oauth/tokens.json)

        Returns:
            AdsOAuthConfig instance

        Raises:
            ConfigurationError: If required variables are missing or invalid
        """
        client_id = os.environ.get("ADS_CLIENT_ID")
        client_secret = os.environ.get("ADS_CLIENT_SECRET")

        if not client_id or not client_secret:
            raise ConfigurationError(
                "Missing Advertising API OAuth credentials. Set environment variables:\n"
                "  ADS_CLIENT_ID=your_client_id\n"
                "  ADS_CLIENT_SECRET=your_client_secret"
            )

        scopes = os.environ.get("ADS_SCOPES")

        try:
            callback_port = int(os.environ.get("ADS_CALLBACK_PORT", "8765"))
            authorization_timeout = float(os.environ.get("ADS_AUTH_TIMEOUT", "300"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting in environment: {e}") from e

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            scopes=tuple(scopes.split()) if scopes else DEFAULT_SCOPES,
            callback_port=callback_port,
            authorization_timeout=authorization_timeout,
            token_file=os.environ.get("ADS_TOKEN_FILE", "~/.ads_oauth/tokens.json"),
        )
