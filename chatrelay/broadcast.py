# chatrelay/broadcast.py
# Delivery of outbound events to connected clients.
# Broadcasts are fire-and-forget: each open connection gets the frame at most once,
# connections that are closing or closed are skipped, and nothing is queued or retried.

import logging  # For logging sends and failed deliveries.

import websockets  # The WebSocket library; provides the non-blocking broadcast helper.
import websockets.exceptions  # ConnectionClosed, raised when a peer has gone away.

from chatrelay import config
from chatrelay.events import encode_event


# --- Fan-out ---

class Broadcaster:
    """Tracks live connections and sends events to all of them or to a single one."""

    def __init__(self):
        # Every connection between its handshake and its close.
        self.connections = set()

    def register(self, connection):
        """Starts including `connection` in broadcasts (called once its handshake completes)."""
        self.connections.add(connection)

    def unregister(self, connection):
        """Stops broadcasting to `connection`; unknown connections are ignored."""
        self.connections.discard(connection)

    def broadcast_all(self, event):
        """
        Sends `event` to every open connection.

        Serializes once and hands the frame to websockets.broadcast(), which writes to each
        open connection without waiting for it to drain. This never suspends, so it is safe to
        call in the middle of a moderation decision.

        Args:
            event (dict): An outbound {'usr_from', 'message'} event.
        """
        message = encode_event(event)
        if config.DEBUG:
            logging.info(f"Broadcasting to {len(self.connections)} connection(s): {message}")
        websockets.broadcast(self.connections, message)

    async def send_to_one(self, connection, event):
        """
        Sends `event` to a single connection (rejection notices, /help).

        A connection that closed in the meantime is logged and otherwise ignored.
        """
        try:
            message = encode_event(event)
            if config.DEBUG:
                logging.info(f"Sending to {connection.remote_address}: {message}")
            await connection.send(message)
        except websockets.exceptions.ConnectionClosed:
            logging.warning(f"Failed to send to {connection.remote_address} because connection is closed.")
