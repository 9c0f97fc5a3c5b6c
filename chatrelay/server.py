# chatrelay/server.py
# This file contains the core logic of the chat relay WebSocket server.
# Responsibilities include:
# - Accepting client connections and tracking them for broadcasts.
# - Decoding each inbound {session, text} frame and resolving the sender's account.
# - Routing admin slash commands to the CommandDispatcher.
# - Running every other message through the AdmissionGate (rate limit, lock, mute).
# - Broadcasting admitted messages and then writing them to the message history.
# - Setting up an SSL context for Secure WebSockets (WSS) if configured.

import asyncio  # For the event loop and keeping the server alive.
import logging  # For logging server events, warnings, and errors.
import ssl  # For creating SSL contexts for WSS.
import time  # Monotonic clock for rate limiting.
from dataclasses import dataclass

import websockets  # The WebSocket library used for the server implementation.
import websockets.exceptions  # ConnectionClosedOK / ConnectionClosedError for handler shutdown.

from chatrelay import config
from chatrelay.broadcast import Broadcaster
from chatrelay.commands import CommandDispatcher
from chatrelay.events import AUTO_RESPONSE, chat_event, parse_envelope
from chatrelay.moderation import REJECTION_NOTICES, AdmissionGate, ModerationState, RateLimiter, Verdict
from chatrelay.persistence import PersistenceGateway
from chatrelay.sessions import SessionResolver
from chatrelay.store import Store


@dataclass
class RelayContext:
    """Everything the connection handlers share, created once at startup."""

    state: ModerationState
    store: Store
    broadcaster: Broadcaster


class ChatRelay:
    """
    Per-message admission pipeline shared by all connections.

    Args:
        context (RelayContext): Shared moderation state, store and broadcaster.
        message_limit (int, optional): Messages per window; defaults to config.MESSAGE_LIMIT.
        reset_interval_ms (int, optional): Window length; defaults to config.RESET_INTERVAL_MS.
        clock (callable, optional): Monotonic time source in seconds.
    """

    def __init__(self, context, message_limit=None, reset_interval_ms=None, clock=time.monotonic):
        self.context = context
        self.resolver = SessionResolver(context.store)
        self.persistence = PersistenceGateway(context.store)
        self.limiter = RateLimiter(context.state, message_limit, reset_interval_ms)
        self.gate = AdmissionGate(context.state, self.limiter, clock)
        self.dispatcher = CommandDispatcher(context.state, context.broadcaster, self.persistence)

    @property
    def broadcaster(self):
        return self.context.broadcaster

    async def handle_payload(self, websocket, raw):
        """
        Processes one inbound frame from `websocket`.

        Malformed frames and unknown sessions are dropped with no reply. Store failures
        while resolving the session count as an unknown session.
        """
        envelope = parse_envelope(raw)
        if envelope is None:
            return
        session, text = envelope

        # The only suspension point before the admission decision.
        user = await self.resolver.resolve(session)
        if user is None:
            return

        if config.DEBUG:
            logging.info(f"Received message from {user.name} => {text}")

        if user.admin and text.startswith('/'):
            await self.dispatcher.dispatch(text, user.name, websocket)
            return

        # Decision and broadcast run back to back with no await in between.
        verdict = self.gate.decide(user)
        if verdict is not Verdict.ADMITTED:
            await self.broadcaster.send_to_one(websocket, chat_event(AUTO_RESPONSE, REJECTION_NOTICES[verdict]))
            return

        self.broadcaster.broadcast_all(chat_event(user.name, text))
        # Already delivered; a failed write is logged by the gateway and not rolled back.
        await self.persistence.append_message(user.name, text)

    async def connection_handler(self, websocket):
        """
        Handles one client's connection lifecycle: register, process frames in arrival
        order, and unregister on close however the connection ends.
        """
        client_address = websocket.remote_address
        logging.info(f"New client connected from {client_address}")
        self.broadcaster.register(websocket)

        try:
            async for message in websocket:
                await self.handle_payload(websocket, message)
        except websockets.exceptions.ConnectionClosedOK:
            logging.info(f"Client {client_address} disconnected gracefully.")
        except websockets.exceptions.ConnectionClosedError as e:
            logging.info(f"Client {client_address} disconnected with error: {e}")
        except Exception:
            # Never let one client's failure reach the server loop.
            logging.exception(f"An unexpected error occurred handling client {client_address}")
        finally:
            self.broadcaster.unregister(websocket)
            logging.info(f"Client disconnected: {client_address}")


def create_ssl_context(cert_file, key_file):
    """
    Builds a TLS server context from a certificate chain and private key.

    Returns:
        ssl.SSLContext | None: None if the files are missing or invalid, in which case the
        server falls back to plain WS.
    """
    try:
        logging.info(f"Attempting to load SSL cert: {cert_file}")
        logging.info(f"Attempting to load SSL key: {key_file}")
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(cert_file, key_file)
        logging.info("SSL context created successfully. Server will use WSS.")
        return ssl_context
    except FileNotFoundError:
        logging.error(f"SSL Error: Certificate or Key file not found (Cert: '{cert_file}', Key: '{key_file}'). Falling back to WS.")
    except ssl.SSLError:
        logging.exception("SSL Error: Failed to create SSL context. Falling back to WS.")
    return None


async def start_server(relay, host, port):
    """
    Starts the WebSocket server and runs it until the task is cancelled.

    Args:
        relay (ChatRelay): The pipeline whose connection_handler serves each client.
        host (str): Address to bind.
        port (int): Port to bind.
    """
    ssl_context = create_ssl_context(config.CERT_FILE, config.KEY_FILE) if config.ENABLE_SSL else None
    effective_protocol = "wss" if ssl_context else "ws"

    logging.info(f"Starting server on {effective_protocol}://{host}:{port}")
    logging.info(f"Message Rate Limit: {relay.limiter.message_limit} per {relay.limiter.reset_interval_ms}ms per user")
    logging.info(f"Maximum WebSocket message size set to: {config.MAX_MESSAGE_SIZE} bytes")
    logging.info(f"Server Debug Logging: {'ENABLED' if config.DEBUG else 'DISABLED'}")

    try:
        async with websockets.serve(
            relay.connection_handler,
            host,
            port,
            ssl=ssl_context,
            max_size=config.MAX_MESSAGE_SIZE,
        ):
            await asyncio.Future()  # Runs until cancelled.
    except OSError:
        logging.exception(f"OSError starting server on {host}:{port} - Is the port already in use?")
        raise
