from collections.abc import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from gatekeeper.core.gateway import ratelimit
from gatekeeper.core.gateway.auth import get_auth_provider
from gatekeeper.main import app
from tests.utils.auth import FakeAuthProvider


@pytest.fixture(autouse=True)
def _memory_login_limiter() -> Generator[None, None, None]:
    """Fresh in-memory login limiter per test so tests don't require Redis."""
    with patch.object(ratelimit, "get_redis", return_value=None):
        ratelimit.reset_login_rate_limiter()
        yield
        ratelimit.reset_login_rate_limiter()


@pytest.fixture
def auth_provider() -> FakeAuthProvider:
    return FakeAuthProvider()


@pytest.fixture
def client(auth_provider: FakeAuthProvider) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_auth_provider] = lambda: auth_provider
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
