"""Exceptions for the Advertising API client."""

from typing import Optional


class AdsAPIError(Exception):
    """
    Base exception for Advertising API errors.

    Attributes:
        message: Error message
        status_code: HTTP status code if applicable
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class AdsAuthenticationError(AdsAPIError):
    """
    Authentication failure with the Advertising API.

    The access token is missing, expired, or revoked, or the account is not
    approved for Advertising API access.

    Resolution:
        Run ``ads-oauth authorize --region <NA|EU|FE>`` and complete the
        authorization flow in your browser.
    """

    pass


class AdsRateLimitError(AdsAPIError):
    """API rate limit exceeded."""

    pass
