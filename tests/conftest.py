"""Test configuration and fixtures."""

import os
from unittest.mock import Mock

import pytest

# Keep the app on in-memory storage regardless of the developer's .env
os.environ["REDIS_URL"] = ""
os.environ.pop("SENTRY_DSN", None)

from models.model_config import ModelDescriptor
from models.usage import MemoryUsageStore
from services.model_dispatcher import ModelDispatcher


class RateLimitError(Exception):
    """Stand-in for an upstream 429 error."""

    def __init__(self, message="Rate limit reached for requests"):
        self.message = message
        self.status_code = 429
        super().__init__(message)


class FakeClock:
    """Callable returning a settable ISO date."""

    def __init__(self, today="2026-10-17"):
        self.today = today

    def __call__(self):
        return self.today


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limit_error():
    return RateLimitError


@pytest.fixture
def store():
    return MemoryUsageStore()


@pytest.fixture
def client():
    """Inference client mock that answers every request."""
    mock = Mock()
    mock.complete.return_value = "Hello from the model"
    mock.list_models.return_value = []
    return mock


@pytest.fixture
def two_models():
    return [
        ModelDescriptor(name="A", tier="low", daily_limit=2, description="Model A"),
        ModelDescriptor(name="B", tier="low", daily_limit=2, description="Model B"),
    ]


@pytest.fixture
def five_models():
    return [
        ModelDescriptor(name=f"model-{i}", tier="low", daily_limit=10, description=f"Model {i}")
        for i in range(5)
    ]


@pytest.fixture
def make_dispatcher(client, store, clock):
    """Build a dispatcher over the shared mock client, store and clock."""

    def _make(configs, **kwargs):
        kwargs.setdefault("client", client)
        kwargs.setdefault("store", store)
        kwargs.setdefault("today", clock)
        return ModelDispatcher(configs=configs, **kwargs)

    return _make
