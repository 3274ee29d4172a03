import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("LOG_LEVEL", "WARNING")

from app import create_app  # noqa: E402
from backend import RelayBackend, get_relay_backend  # noqa: E402


class RecordingSubscriber:
    def __init__(self):
        self.received = []

    def deliver(self, message):
        self.received.append(message)


class BrokenSubscriber:
    def __init__(self):
        self.attempts = 0

    def deliver(self, message):
        self.attempts += 1
        raise RuntimeError("connection already closed")


@pytest.fixture
def backend() -> RelayBackend:
    return RelayBackend()


@pytest.fixture
def client(backend: RelayBackend) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_relay_backend] = lambda: backend
    return TestClient(app)
