"""
Advertising API client module.

This module provides access to the account endpoints of the Advertising
API using OAuth 2.0 authentication. It includes:

- AdsAPIClient: Authenticated async HTTP client
- Profile / ManagerAccount: account data models

Authentication is handled automatically via the OAuth module.
"""

from .client import AdsAPIClient
from .exceptions import AdsAPIError, AdsAuthenticationError, AdsRateLimitError
from .models import AccountInfo, LinkedAccount, ManagerAccount, ManagerAccountsResponse, Profile

__all__ = [
    "AdsAPIClient",
    "AdsAPIError",
    "AdsAuthenticationError",
    "AdsRateLimitError",
    "AccountInfo",
    "LinkedAccount",
    "ManagerAccount",
    "ManagerAccountsResponse",
    "Profile",
]
