"""
OAuth 2.0 module for Advertising API integration.

This module provides the OAuth 2.0 Authorization Code flow with PKCE for
authenticating with the Advertising API in its three regions (NA, EU, FE).

The flow runs entirely on the user's machine:
- A short-lived callback server on the loopback interface receives the redirect
- The authorization code is exchanged for tokens with the PKCE verifier
- Tokens are refreshed automatically shortly before they expire

Public API:
    AdsOAuthConfig: OAuth configuration management
    Region: Advertising API regions and their endpoints
    OAuthCallbackServer: Local callback listener
    TokenStorage: Token store contract (InMemoryTokenStorage, FileTokenStorage)
    TokenManager: Token lifecycle management
    OAuthCoordinator: High-level OAuth interface

Exceptions:
    AdsOAuthError: Base exception
    ConfigurationError: Configuration error
    AuthorizationError: Authorization flow error (timeout, cancellation)
    CallbackServerError: Callback listener error
    OAuthError: Structured error from the identity provider
    HTTPError: Unexpected HTTP status from the token endpoint
    TokenNotAvailableError: No valid tokens
    TokenStorageError: Storage operation failed
"""

from .callback_server import OAuthCallbackServer
from .config import AdsOAuthConfig
from .coordinator import OAuthCoordinator
from .exceptions import (
    AdsOAuthError,
    AlreadyRunningError,
    AuthorizationCancelledError,
    AuthorizationError,
    AuthorizationTimeoutError,
    CallbackOAuthError,
    CallbackServerError,
    ConfigurationError,
    FailedToGetPortError,
    FailedToStartError,
    HTTPError,
    InvalidCallbackPathError,
    InvalidRequestError,
    InvalidResponseError,
    InvalidURLError,
    MissingCodeError,
    NoAccessTokenError,
    NoRefreshTokenError,
    OAuthError,
    PKCEGenerationError,
    StateMismatchError,
    TokenNotAvailableError,
    TokenNotFoundError,
    TokenRequestError,
    TokenStorageError,
)
from .html import DefaultOAuthHTMLProvider, OAuthHTMLProvider
from .pkce import generate_code_challenge, generate_code_verifier, generate_pkce_pair
from .regions import Region
from .session import AuthorizationSession, SessionOutcome
from .token_manager import TokenManager, TokenResponse
from .token_storage import (
    FileTokenStorage,
    InMemoryTokenStorage,
    TokenStorage,
    TokenStorageKey,
)

__all__ = [
    # Configuration
    "AdsOAuthConfig",
    "Region",
    # PKCE
    "generate_code_verifier",
    "generate_code_challenge",
    "generate_pkce_pair",
    # Callback Server
    "OAuthCallbackServer",
    "OAuthHTMLProvider",
    "DefaultOAuthHTMLProvider",
    # Token Storage
    "TokenStorage",
    "TokenStorageKey",
    "InMemoryTokenStorage",
    "FileTokenStorage",
    # Token Manager
    "TokenManager",
    "TokenResponse",
    # Coordinator
    "OAuthCoordinator",
    "AuthorizationSession",
    "SessionOutcome",
    # Exceptions
    "AdsOAuthError",
    "ConfigurationError",
    "InvalidURLError",
    "InvalidResponseError",
    "HTTPError",
    "OAuthError",
    "TokenRequestError",
    "TokenNotAvailableError",
    "NoAccessTokenError",
    "NoRefreshTokenError",
    "PKCEGenerationError",
    "AuthorizationError",
    "AuthorizationTimeoutError",
    "AuthorizationCancelledError",
    "TokenStorageError",
    "TokenNotFoundError",
    "CallbackServerError",
    "AlreadyRunningError",
    "FailedToStartError",
    "FailedToGetPortError",
    "InvalidRequestError",
    "InvalidCallbackPathError",
    "MissingCodeError",
    "StateMismatchError",
    "CallbackOAuthError",
]
