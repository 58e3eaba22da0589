"""
OAuth exception classes for the Advertising API SDK.

This module defines the exception hierarchy for all OAuth-related errors.
Every exception derives from AdsOAuthError so callers can catch the whole
family at once, while the more specific classes let them react to (and show
users) the exact failure, e.g. OAuthError.description.
"""

from typing import Optional


class AdsOAuthError(Exception):
    """Base exception for all Advertising API OAuth errors."""

    pass


class ConfigurationError(AdsOAuthError):
    """OAuth configuration error (missing or invalid configuration)."""

    pass


class InvalidURLError(AdsOAuthError):
    """Authorization URL could not be constructed from the given inputs."""

    pass


class InvalidResponseError(AdsOAuthError):
    """Token endpoint returned something that is not a usable response."""

    pass


class HTTPError(AdsOAuthError):
    """
    Non-2xx response from the token endpoint without an OAuth error body.

    Attributes:
        status_code: HTTP status code returned by the endpoint
        body: Raw response body (if any)
    """

    def __init__(self, status_code: int, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP error: {status_code}")


class OAuthError(AdsOAuthError):
    """
    Structured OAuth error returned by the identity provider.

    Attributes:
        error: OAuth error code (e.g. "invalid_grant", "access_denied")
        description: Human-readable description suitable for display
    """

    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        super().__init__(description or f"OAuth error: {error}")


class TokenRequestError(AdsOAuthError):
    """Token endpoint could not be reached (network failure after retries)."""

    pass


class TokenNotAvailableError(AdsOAuthError):
    """No valid tokens available (need to authorize first)."""

    pass


class NoAccessTokenError(TokenNotAvailableError):
    """No access token stored for the region."""

    pass


class NoRefreshTokenError(TokenNotAvailableError):
    """No refresh token stored for the region."""

    pass


class PKCEGenerationError(AdsOAuthError):
    """PKCE code verifier could not be encoded."""

    pass


class AuthorizationError(AdsOAuthError):
    """OAuth authorization flow error."""

    pass


class AuthorizationTimeoutError(AuthorizationError):
    """No callback received within the configured window."""

    pass


class AuthorizationCancelledError(AuthorizationError):
    """Authorization flow was cancelled before a callback arrived."""

    pass


class TokenStorageError(AdsOAuthError):
    """
    Token storage operation failed.

    Attributes:
        inner: The exception raised by the storage backend, if any
    """

    def __init__(self, message: str, inner: Optional[BaseException] = None):
        self.inner = inner
        super().__init__(message)


class TokenNotFoundError(AdsOAuthError):
    """Requested key has no value in the token store."""

    pass


class CallbackServerError(AdsOAuthError):
    """Base exception for local callback server failures."""

    pass


class AlreadyRunningError(CallbackServerError):
    """Callback server was started twice without an intervening stop()."""

    pass


class FailedToStartError(CallbackServerError):
    """Callback server could not bind its listening socket."""

    pass


class FailedToGetPortError(CallbackServerError):
    """Bound listener did not expose a port."""

    pass


class InvalidRequestError(CallbackServerError):
    """Callback request was not a well-formed GET request."""

    pass


class InvalidCallbackPathError(CallbackServerError):
    """Callback request was sent to a path other than /callback."""

    pass


class MissingCodeError(CallbackServerError):
    """Callback carried neither an authorization code nor an error."""

    pass


class StateMismatchError(CallbackServerError):
    """Callback state parameter does not match the one sent (possible CSRF)."""

    pass


class CallbackOAuthError(CallbackServerError, OAuthError):
    """Provider redirected back with an OAuth error instead of a code."""

    pass
