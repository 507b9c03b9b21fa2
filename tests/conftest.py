import pytest

from backend import RoomRegistry
from connections import ConnectionRegistry
from lifecycle import SignalingHub
from rate_limiter import RateLimiter
from relay import SignalRouter


class RecordingTransport:
    """Transport double that records every delivered frame."""

    def __init__(self):
        self.sent = []
        self.dead = set()

    def deliver(self, connection_id, event, payload):
        if connection_id in self.dead:
            raise ConnectionError("socket closed")
        self.sent.append((connection_id, event, payload))

    def events_for(self, connection_id, event=None):
        return [
            payload for target, name, payload in self.sent
            if target == connection_id and (event is None or name == event)
        ]

    def clear(self):
        self.sent.clear()


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def router(transport):
    return SignalRouter(transport)


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(per_second=1000, clock=clock)


@pytest.fixture
def registry(router, rate_limiter, clock):
    return RoomRegistry(router, rate_limiter, clock=clock, presence_broadcast="host")


@pytest.fixture
def connection_registry():
    return ConnectionRegistry(max_per_address=3)


@pytest.fixture
def hub(registry, router, rate_limiter, connection_registry):
    return SignalingHub(registry, router, rate_limiter, connection_registry)
