"""
Fixtures for connect-flow tests.
"""

import pytest

from connectors.controller import ConnectController, ConnectRequest
from connectors.registry import ConnectionFactoryRegistry
from connectors.session_store import MappingSessionStore
from fakes import FakeOAuth1Factory, FakeOAuth2Factory, InMemoryConnectionRepository


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def session_data() -> dict:
    return {}


@pytest.fixture
def connect_request(session_data) -> ConnectRequest:
    return ConnectRequest(session=MappingSessionStore(session_data))


@pytest.fixture
def repository() -> InMemoryConnectionRepository:
    return InMemoryConnectionRepository()


@pytest.fixture
def twitter_factory() -> FakeOAuth1Factory:
    return FakeOAuth1Factory()


@pytest.fixture
def github_factory() -> FakeOAuth2Factory:
    return FakeOAuth2Factory()


@pytest.fixture
def factory_registry(twitter_factory, github_factory) -> ConnectionFactoryRegistry:
    registry = ConnectionFactoryRegistry()
    registry.register(twitter_factory)
    registry.register(github_factory)
    return registry


@pytest.fixture
def controller(factory_registry) -> ConnectController:
    return ConnectController("https://app.example.com", factory_registry)
