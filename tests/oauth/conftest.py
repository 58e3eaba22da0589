"""Pytest fixtures for OAuth tests."""

import socket

import pytest

from src.oauth.config import AdsOAuthConfig
from src.oauth.token_storage import InMemoryTokenStorage


@pytest.fixture
def free_port() -> int:
    """Find a loopback port that is currently free."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def config(free_port: int, tmp_path) -> AdsOAuthConfig:
    """OAuth config with fast timings and an ephemeral callback port."""
    return AdsOAuthConfig(
        client_id="test_client_id",
        client_secret="test_client_secret",
        callback_port=free_port,
        authorization_timeout=5.0,
        shutdown_grace=0.05,
        retry_base_delay=0.0,
        token_file=str(tmp_path / "tokens.json"),
    )


@pytest.fixture
def storage() -> InMemoryTokenStorage:
    """Empty in-memory token storage."""
    return InMemoryTokenStorage()
