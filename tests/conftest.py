"""Test configuration and fixtures."""

import pytest

from operator_catalog_mirror.cache.blob_store import BlobCache
from operator_catalog_mirror.core.types import SyncConfig
from tests.helpers import FakeRegistryTransport, FakeTokenProvider


@pytest.fixture
def working_dir(tmp_path):
    """Empty working directory."""
    path = tmp_path / "working-dir"
    path.mkdir()
    return path


@pytest.fixture
def sync_config(working_dir, tmp_path):
    """Sync configuration writing into the temporary working directory."""
    return SyncConfig(
        working_dir=working_dir,
        index_path=tmp_path / "config.json",
        auth_mode="none",
    )


@pytest.fixture
def blob_cache(working_dir):
    """Blob cache rooted in the working directory."""
    return BlobCache(working_dir / "blobs-store")


@pytest.fixture
def transport():
    """In-memory registry transport."""
    return FakeRegistryTransport()


@pytest.fixture
def token_provider():
    """Token provider that never touches the network."""
    return FakeTokenProvider()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (local HTTP server)"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")
