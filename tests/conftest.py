"""
Shared pytest fixtures for the chat relay test suite.

Provides a temporary SQLite store with the relay schema, fake client connections,
a broadcaster that delivers to those fakes, a controllable clock, and a ChatRelay
wired to all of them.
"""

import itertools
import json

import pytest
import pytest_asyncio
import websockets
import websockets.exceptions

from chatrelay.broadcast import Broadcaster
from chatrelay.events import encode_event
from chatrelay.moderation import ModerationState
from chatrelay.server import ChatRelay, RelayContext
from chatrelay.store import Store

_ports = itertools.count(50000)


class FakeConnection:
    """Stands in for a websockets server connection; records every frame it is sent."""

    def __init__(self):
        self.remote_address = ('127.0.0.1', next(_ports))
        self.received = []
        self.open = True

    async def send(self, message):
        if not self.open:
            raise websockets.exceptions.ConnectionClosedOK(None, None)
        self.received.append(json.loads(message))


class RecordingBroadcaster(Broadcaster):
    """Broadcaster that delivers to FakeConnections instead of real sockets."""

    def __init__(self):
        super().__init__()
        self.broadcasts = []

    def broadcast_all(self, event):
        message = encode_event(event)
        self.broadcasts.append(json.loads(message))
        for connection in self.connections:
            if connection.open:
                connection.received.append(json.loads(message))


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest_asyncio.fixture
async def store(tmp_path):
    store = Store(str(tmp_path / "chat.db"), reconnect_attempts=2, reconnect_delay=0)
    await store.open()
    await store.create_schema()
    yield store
    await store.close()


@pytest.fixture
def add_account(store):
    """Inserts an account row; `profile` overrides the generated profile blob."""

    async def _add(session, name=None, admin=False, profile=None):
        if profile is None:
            profile = json.dumps({"name": name, "admin": "true" if admin else "false"})
        await store.execute(
            "INSERT INTO accounts (session, additional_values) VALUES (?, ?)",
            (session, profile),
        )

    return _add


@pytest.fixture
def stored_messages(store):
    """Returns all message rows as (usr_from, message, visible) tuples, oldest first."""

    async def _fetch():
        db = store._db
        async with db.execute("SELECT usr_from, message, visible FROM messages ORDER BY id") as cursor:
            rows = await cursor.fetchall()
        return [tuple(row) for row in rows]

    return _fetch


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def state():
    return ModerationState()


@pytest.fixture
def relay(state, store, broadcaster, clock):
    context = RelayContext(state=state, store=store, broadcaster=broadcaster)
    return ChatRelay(context, message_limit=10, reset_interval_ms=2000, clock=clock)


@pytest.fixture
def connect(broadcaster):
    """Opens a FakeConnection registered with the broadcaster."""

    def _connect():
        connection = FakeConnection()
        broadcaster.register(connection)
        return connection

    return _connect


@pytest.fixture
def send(relay):
    """Feeds one {session, text} frame from `connection` through the relay."""

    async def _send(connection, session, text):
        await relay.handle_payload(connection, json.dumps({"session": session, "text": text}))

    return _send
