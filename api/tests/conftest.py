"""Shared test configuration.

Environment is pinned before any `learnpath` import so the cached settings
see it (no log files, testing mode).
"""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402


@pytest.fixture
def client() -> TestClient:
    """Test client without lifespan (no Cassandra connection)."""
    from learnpath.main import app

    return TestClient(app)
