"""Integration fixtures: the real app over an in-memory store and scripted collaborators."""

import pytest
from fastapi.testclient import TestClient

from dealerbot.main import create_app
from dealerbot.tools.gateway import LoggingMessageBus


@pytest.fixture
def reasoner(make_reasoner):
    return make_reasoner()


@pytest.fixture
def bus():
    return LoggingMessageBus()


@pytest.fixture
def services(make_services, reasoner, bus):
    return make_services(reasoner=reasoner, bus=bus)


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as test_client:
        yield test_client
