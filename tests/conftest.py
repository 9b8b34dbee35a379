"""Shared fakes for the device links, the panel and the MQTT client."""
import os
import socket
from types import SimpleNamespace
from typing import List, Optional, Tuple

import pytest

# air_remote.core.config builds its settings at import time and the broker password is required
os.environ.setdefault("MQTT_PASS", "test-password")

from air_remote.exceptions.link import ChannelClosed, ConnectionLost
from air_remote.models.state import TvState


class FakeSerial:
    """Serial port that answers each written frame with the next scripted reply"""

    def __init__(self, replies: Optional[List[bytes]] = None, **kwargs):
        self.kwargs = kwargs
        self.replies = list(replies or [])
        self.written: List[bytes] = []
        self.buffer = b""
        self.is_open = True

    def reset_input_buffer(self):
        self.buffer = b""

    def write(self, data: bytes):
        self.written.append(bytes(data))
        if self.replies:
            self.buffer += self.replies.pop(0)
        return len(data)

    def flush(self):
        pass

    def read(self, n: int) -> bytes:
        data, self.buffer = self.buffer[:n], self.buffer[n:]
        return data

    def close(self):
        self.is_open = False


class FakeSocket:
    """TCP socket that answers each sendall with the next scripted reply"""

    def __init__(self, replies: Optional[List[bytes]] = None):
        self.replies = list(replies or [])
        self.sent: List[bytes] = []
        self.buffer = b""
        self.closed = False

    def sendall(self, data: bytes):
        self.sent.append(bytes(data))
        if self.replies:
            self.buffer += self.replies.pop(0)

    def recv(self, n: int) -> bytes:
        if not self.buffer:
            raise socket.timeout("timed out")
        data, self.buffer = self.buffer[:n], self.buffer[n:]
        return data

    def close(self):
        self.closed = True


class FakeTvLink:
    """Stands in for a BraviaLink in poller tests"""

    def __init__(self, states: Optional[List[TvState]] = None, open_failures: int = 0):
        self.states = list(states or [])
        self.open_failures = open_failures
        self.calls: List[Tuple] = []
        self.opened = 0
        self.closed = 0
        self.state = TvState.OFF

    def open(self):
        if self.open_failures:
            self.open_failures -= 1
            raise ConnectionLost("no such device")
        self.opened += 1

    def close(self):
        self.closed += 1

    def get_state(self) -> TvState:
        if self.states:
            self.state = self.states.pop(0)
        return self.state

    def __getattr__(self, name):
        def record(*args):
            self.calls.append((name, *args))
        return record


class FakePanelLink:
    """Button panel returning scripted frames, then empty ones"""

    def __init__(self, frames: Optional[List[Tuple[int, int]]] = None):
        self.frames = list(frames or [])
        self.written: List[int] = []
        self.opened = 0
        self.closed = 0

    def open(self):
        self.opened += 1

    def close(self):
        self.closed += 1

    def read_frame(self) -> Tuple[int, int]:
        if self.frames:
            frame = self.frames.pop(0)
            if isinstance(frame, Exception):
                raise frame
            return frame
        return (0, 0)

    def write_byte(self, value: int):
        self.written.append(value)


class RecordingEvents:
    """Event sink for thread-side collaborators; closes itself after `limit` events"""

    def __init__(self, limit: Optional[int] = None):
        self.events = []
        self.limit = limit

    def put_threadsafe(self, event):
        if self.limit is not None and len(self.events) >= self.limit:
            raise ChannelClosed("events")
        self.events.append(event)


class FakeMqttClient:
    def __init__(self, client_id: str):
        self.client_id = client_id
        self.published: List[Tuple[str, str, int, bool]] = []
        self.subscribed = []
        self.will = None
        self.credentials = None
        self.connected_to = None
        self.loop_started = False
        self.loop_stopped = False
        self.disconnected = False
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None

    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def will_set(self, topic, payload=None, qos=0, retain=False):
        self.will = (topic, payload, qos, retain)

    def reconnect_delay_set(self, min_delay=1, max_delay=120):
        self.reconnect_delay = (min_delay, max_delay)

    def connect_async(self, host, port=1883, keepalive=60):
        self.connected_to = (host, port, keepalive)

    def loop_start(self):
        self.loop_started = True

    def loop_stop(self):
        self.loop_stopped = True

    def disconnect(self):
        self.disconnected = True

    def subscribe(self, topics):
        self.subscribed.extend(topics)

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        return SimpleNamespace(rc=0)


@pytest.fixture
def mqtt_clients():
    created: List[FakeMqttClient] = []

    def factory(client_id: str) -> FakeMqttClient:
        client = FakeMqttClient(client_id)
        created.append(client)
        return client

    factory.created = created
    return factory
