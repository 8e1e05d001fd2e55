"""
Shared fixtures for the signaling server tests.
"""
import pytest
from fastapi.testclient import TestClient

from app import app
from coordinator import RoomCoordinator
from hub import SignalingHub


class FakeClient:
    """Stands in for a WebSocket: records every message the hub sends."""

    def __init__(self):
        self.messages = []

    async def send(self, message: dict):
        self.messages.append(message)

    def events(self):
        return [message["event"] for message in self.messages]

    def clear(self):
        self.messages.clear()


@pytest.fixture
def coordinator():
    return RoomCoordinator()


@pytest.fixture
async def hub():
    hub = SignalingHub(RoomCoordinator())
    await hub.start()
    yield hub
    await hub.stop()


@pytest.fixture
def fake_client_factory():
    return FakeClient


@pytest.fixture
def client():
    # Entering the context runs the lifespan, which starts the hub
    with TestClient(app) as client:
        yield client
