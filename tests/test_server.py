"""Integration tests running the relay behind a real websockets server."""

import asyncio
import json

import pytest
import pytest_asyncio
import websockets

from chatrelay.broadcast import Broadcaster
from chatrelay.events import chat_event
from chatrelay.moderation import ModerationState
from chatrelay.server import ChatRelay, RelayContext, create_ssl_context


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def _recv(ws):
    return json.loads(await asyncio.wait_for(ws.recv(), timeout=2.0))


@pytest_asyncio.fixture
async def live_relay(store, add_account):
    await add_account("s-root", "root", admin=True)
    await add_account("s-alice", "alice")
    await add_account("s-bob", "bob")

    relay = ChatRelay(RelayContext(state=ModerationState(), store=store, broadcaster=Broadcaster()))
    async with websockets.serve(relay.connection_handler, "127.0.0.1", 0) as server:
        port = list(server.sockets)[0].getsockname()[1]
        yield relay, f"ws://127.0.0.1:{port}"


@pytest.mark.asyncio
async def test_message_reaches_every_client(live_relay, stored_messages):
    relay, url = live_relay
    async with websockets.connect(url) as alice, websockets.connect(url) as bob:
        await _wait_for(lambda: len(relay.broadcaster.connections) == 2)

        await alice.send(json.dumps({"session": "s-alice", "text": "hello"}))

        assert await _recv(alice) == {"usr_from": "alice", "message": "hello"}
        assert await _recv(bob) == {"usr_from": "alice", "message": "hello"}

    await _wait_for(lambda: not relay.broadcaster.connections)
    assert await stored_messages() == [("alice", "hello", 1)]


@pytest.mark.asyncio
async def test_rejection_goes_to_sender_only(live_relay):
    relay, url = live_relay
    async with websockets.connect(url) as root, websockets.connect(url) as bob, websockets.connect(url) as alice:
        await _wait_for(lambda: len(relay.broadcaster.connections) == 3)

        await root.send(json.dumps({"session": "s-root", "text": "/mute bob"}))
        notice = {"usr_from": "Auto Admin", "message": "bob has been muted by root."}
        for ws in (root, bob, alice):
            assert await _recv(ws) == notice

        await bob.send(json.dumps({"session": "s-bob", "text": "let me talk"}))
        assert await _recv(bob) == {"usr_from": "Auto Response", "message": "You are muted and cannot send messages."}
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(alice.recv(), timeout=0.2)


@pytest.mark.asyncio
async def test_garbage_frames_do_not_close_connection(live_relay):
    relay, url = live_relay
    async with websockets.connect(url) as alice:
        await alice.send("this is not json")
        await alice.send(json.dumps({"session": "unknown", "text": "hi"}))
        await alice.send(json.dumps({"session": "s-alice", "text": "still connected"}))
        assert await _recv(alice) == {"usr_from": "alice", "message": "still connected"}


@pytest.mark.asyncio
async def test_broadcast_skips_closed_connections(live_relay):
    relay, url = live_relay
    async with websockets.connect(url) as alice:
        async with websockets.connect(url):
            await _wait_for(lambda: len(relay.broadcaster.connections) == 2)
            server_side = set(relay.broadcaster.connections)
        await _wait_for(lambda: len(relay.broadcaster.connections) == 1)

        # Put the closed server-side connection back, as if its handler had not cleaned up yet.
        for connection in server_side:
            relay.broadcaster.register(connection)
        assert len(relay.broadcaster.connections) == 2

        relay.broadcaster.broadcast_all(chat_event("Auto Admin", "ping"))

        assert await _recv(alice) == {"usr_from": "Auto Admin", "message": "ping"}


def test_ssl_context_falls_back_when_files_missing(tmp_path):
    assert create_ssl_context(str(tmp_path / "cert.pem"), str(tmp_path / "key.pem")) is None
