import threading
import time
from typing import List, Optional

import pytest

from hassagent.codec import RequestType
from hassagent.errors import TransportError
from hassagent.registry import SensorRegistry
from hassagent.tracker import SensorTracker


class FakeClient:
    """
    Stands in for APIClient. Records every request it is asked to send and
    answers with a fixed body (or a callable computing one per request).
    """

    def __init__(self, body=b'{"success":true}', delay: float = 0.0, secret: Optional[str] = None):
        self.body = body
        self.delay = delay
        self.secret = secret
        self.sent: List[tuple] = []
        self._lock = threading.Lock()

    def send(self, request) -> bytes:
        rtype = request.request_type()
        with self._lock:
            self.sent.append((rtype, request.state.id, request.state.state))
        if self.delay:
            time.sleep(self.delay)
        body = self.body(request) if callable(self.body) else self.body
        if isinstance(body, Exception):
            raise body
        return body

    def types_for(self, sensor_id: str) -> List[RequestType]:
        with self._lock:
            return [t for t, sid, _ in self.sent if sid == sensor_id]

    def values_for(self, sensor_id: str) -> list:
        with self._lock:
            return [v for _, sid, v in self.sent if sid == sensor_id]


@pytest.fixture
def registry():
    return SensorRegistry()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def tracker(registry, client):
    t = SensorTracker(registry, client, poll_timeout=0.05)
    yield t
    t.stop()


@pytest.fixture
def failing_client():
    return FakeClient(body=TransportError("connection refused"))
