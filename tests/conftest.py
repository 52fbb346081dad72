"""
Pytest configuration and shared fixtures
"""
import pytest
from pathlib import Path

# Load .env from project root for all tests (override=True to ensure fresh values)
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

from tests.fixtures.mock_docker import web_and_cache_swarm


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: mark test as requiring a live Docker daemon (TEST_MODE=live)"
    )


@pytest.fixture
def swarm():
    """Swarm with the replicated "web" and global "cache" services"""
    return web_and_cache_swarm()
