"""
Token storage for Advertising API OAuth integration.

This module defines the region-scoped key/value contract the token manager
relies on, plus two implementations:

- InMemoryTokenStorage: process-local storage for tests and short-lived tools
- FileTokenStorage: plaintext JSON file with user-only permissions (600)

Applications with a secure store (OS keychain, database) implement
TokenStorage themselves; only the contract matters to the token manager.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict

from .exceptions import TokenNotFoundError, TokenStorageError
from .regions import Region

logger = logging.getLogger(__name__)


class TokenStorageKey:
    """Standard keys for token storage."""

    ACCESS_TOKEN = "ads_access_token"
    REFRESH_TOKEN = "ads_refresh_token"
    TOKEN_EXPIRY = "ads_token_expiry"  # ISO-8601 UTC timestamp


class TokenStorage(ABC):
    """
    Region-scoped key/value store for OAuth token material.

    ``retrieve`` raises TokenNotFoundError for a missing key; any other
    exception is treated by the token manager as a storage failure.
    """

    @abstractmethod
    async def save(self, value: str, key: str, region: Region) -> None:
        """Save a value for a key and region."""

    @abstractmethod
    async def retrieve(self, key: str, region: Region) -> str:
        """Retrieve a value, raising TokenNotFoundError when absent."""

    @abstractmethod
    async def exists(self, key: str, region: Region) -> bool:
        """Check whether a value exists for a key and region."""

    @abstractmethod
    async def delete(self, key: str, region: Region) -> None:
        """Delete a value (no-op when absent)."""

    @abstractmethod
    async def delete_all(self, region: Region) -> None:
        """Delete every value stored for a region."""


class InMemoryTokenStorage(TokenStorage):
    """
    In-memory token storage.

    Not persistent: contents are lost when the process exits.
    """

    def __init__(self) -> None:
        self._values: Dict[Region, Dict[str, str]] = {}
        self._lock = asyncio.Lock()

    async def save(self, value: str, key: str, region: Region) -> None:
        async with self._lock:
            self._values.setdefault(region, {})[key] = value

    async def retrieve(self, key: str, region: Region) -> str:
        async with self._lock:
            try:
                return self._values[region][key]
            except KeyError:
                raise TokenNotFoundError(f"No value for {key} in region {region.value}") from None

    async def exists(self, key: str, region: Region) -> bool:
        async with self._lock:
            return key in self._values.get(region, {})

    async def delete(self, key: str, region: Region) -> None:
        async with self._lock:
            self._values.get(region, {}).pop(key, None)

    async def delete_all(self, region: Region) -> None:
        async with self._lock:
            self._values.pop(region, None)

    def clear(self) -> None:
        """Remove everything for every region."""
        self._values.clear()


class FileTokenStorage(TokenStorage):
    """
    File-based token storage (plaintext JSON).

    Layout: ``{"NA": {"ads_access_token": "...", ...}, "EU": {...}}``.
    The file is rewritten on every change and restricted to user-only
    read/write permissions.
    """

    def __init__(self, token_file: str):
        """
        Initialize token storage.

        Args:
            token_file: Path to the token file (``~`` is expanded)
        """
        self.token_file = Path(token_file).expanduser()
        self._lock = asyncio.Lock()

    def _set_secure_permissions(self) -> None:
        """Set file permissions to user-only read/write (600)."""
        try:
            self.token_file.chmod(0o600)
            logger.debug(f"Set secure permissions (600) on {self.token_file}")
        except OSError as e:
            logger.warning(f"Could not set secure permissions: {e}")

    def _read(self) -> Dict[str, Dict[str, str]]:
        if not self.token_file.exists():
            return {}
        try:
            with open(self.token_file, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(
                f"Invalid token file at {self.token_file}, "
                f"will need re-authorization: {e}"
            )
            return {}
        except OSError as e:
            logger.error(f"Failed to read token file: {e}")
            raise TokenStorageError(f"Failed to read token file: {e}", inner=e) from e

        if not isinstance(data, dict):
            logger.warning(f"Unexpected token file layout at {self.token_file}, ignoring")
            return {}
        return data

    def _write(self, data: Dict[str, Dict[str, str]]) -> None:
        try:
            self.token_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.token_file, "w") as f:
                json.dump(data, f, indent=2)
            self._set_secure_permissions()
        except OSError as e:
            logger.error(f"Failed to save tokens: {e}")
            raise TokenStorageError(f"Failed to save tokens: {e}", inner=e) from e

    async def save(self, value: str, key: str, region: Region) -> None:
        async with self._lock:
            data = self._read()
            data.setdefault(region.value, {})[key] = value
            self._write(data)
            logger.debug(f"Saved {key} for region {region.value} to {self.token_file}")

    async def retrieve(self, key: str, region: Region) -> str:
        async with self._lock:
            value = self._read().get(region.value, {}).get(key)
        if value is None:
            raise TokenNotFoundError(f"No value for {key} in region {region.value}")
        return value

    async def exists(self, key: str, region: Region) -> bool:
        async with self._lock:
            return key in self._read().get(region.value, {})

    async def delete(self, key: str, region: Region) -> None:
        async with self._lock:
            data = self._read()
            if data.get(region.value, {}).pop(key, None) is not None:
                self._write(data)

    async def delete_all(self, region: Region) -> None:
        async with self._lock:
            data = self._read()
            if data.pop(region.value, None) is not None:
                self._write(data)
                logger.info(f"Deleted stored tokens for region {region.value}")
