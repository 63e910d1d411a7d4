"""
Pytest configuration and fixtures for Crucible tests.
"""

import tempfile
from pathlib import Path

import pytest

from crucible import App, MemoryStateStore
from crucible.settings import reload_settings

from .fakes import cloud


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    """Isolated settings: fixed stage, instant polling, dummy credentials."""
    for key, value in {
        "CRUCIBLE_STAGE": "test",
        "CRUCIBLE_ADOPT": "false",
        "CRUCIBLE_LOCAL": "false",
        "CRUCIBLE_POLL_INITIAL_DELAY": "0",
        "CRUCIBLE_POLL_MAX_DELAY": "0",
        "CRUCIBLE_POLL_TIMEOUT": "5",
        "CRUCIBLE_CLOUDFLARE_API_TOKEN": "cf-token",
        "CRUCIBLE_CLOUDFLARE_ACCOUNT_ID": "acct",
        "CRUCIBLE_CLOUDFLARE_BASE_URL": "https://cloudflare.test/client/v4",
        "CRUCIBLE_PLANETSCALE_API_TOKEN": "ps-id:ps-token",
        "CRUCIBLE_PLANETSCALE_ORGANIZATION": "acme",
        "CRUCIBLE_PLANETSCALE_BASE_URL": "https://planetscale.test/v1",
    }.items():
        monkeypatch.setenv(key, value)
    yield reload_settings()
    reload_settings()


@pytest.fixture(autouse=True)
def fake_cloud():
    """The shared FakeCloud spy, reset for every test."""
    cloud.reset()
    yield cloud
    cloud.reset()


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def make_app(store, temp_dir):
    """Factory for App scopes sharing one state store, i.e. successive runs."""

    def _make(**kwargs) -> App:
        kwargs.setdefault("state", store)
        kwargs.setdefault("root_dir", temp_dir)
        return App("demo", "test", **kwargs)

    return _make
