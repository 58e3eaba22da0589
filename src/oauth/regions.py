"""
Advertising API regions and their endpoints.

Each region has its own token endpoint and API host. The authorization
endpoint (Login with Amazon) is shared by all regions.
"""

from enum import Enum


class Region(str, Enum):
    """Advertising API region."""

    NORTH_AMERICA = "NA"
    EUROPE = "EU"
    FAR_EAST = "FE"

    @property
    def display_name(self) -> str:
        """Human-readable region name."""
        return _DISPLAY_NAMES[self]

    @property
    def authorization_url(self) -> str:
        """OAuth authorization endpoint opened in the user's browser."""
        return "https://www.amazon.com/ap/oa"

    @property
    def token_url(self) -> str:
        """OAuth token endpoint for code exchange and refresh."""
        return _TOKEN_URLS[self]

    @property
    def api_base_url(self) -> str:
        """Advertising API base URL."""
        return _API_BASE_URLS[self]

    @classmethod
    def from_code(cls, code: str) -> "Region":
        """
        Look up a region by its short code (case-insensitive).

        Args:
            code: Region code such as "NA", "eu" or "FE"

        Returns:
            Matching Region

        Raises:
            ValueError: If the code is not a known region
        """
        try:
            return cls(code.strip().upper())
        except ValueError:
            valid = ", ".join(r.value for r in cls)
            raise ValueError(f"Unknown region '{code}'. Expected one of: {valid}") from None


_DISPLAY_NAMES = {
    Region.NORTH_AMERICA: "North America",
    Region.EUROPE: "Europe",
    Region.FAR_EAST: "Far East",
}

_TOKEN_URLS = {
    Region.NORTH_AMERICA: "https://api.amazon.com/auth/o2/token",
    Region.EUROPE: "https://api.amazon.co.uk/auth/o2/token",
    Region.FAR_EAST: "https://api.amazon.co.jp/auth/o2/token",
}

_API_BASE_URLS = {
    Region.NORTH_AMERICA: "https://advertising-api.amazon.com",
    Region.EUROPE: "https://advertising-api-eu.amazon.com",
    Region.FAR_EAST: "https://advertising-api-fe.amazon.com",
}
