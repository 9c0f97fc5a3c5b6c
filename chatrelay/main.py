# chatrelay/main.py
# Main entry point for the chat relay server.
# Sets up logging, opens the database, builds the shared relay context and
# runs the WebSocket server until interrupted.

import asyncio  # Runs the server's event loop.
import logging  # Standard logging for server events and errors.

from chatrelay import config
from chatrelay.broadcast import Broadcaster
from chatrelay.moderation import ModerationState
from chatrelay.server import ChatRelay, RelayContext, start_server
from chatrelay.store import Store


async def run(host, port, db_path):
    """Opens the store, serves clients, and closes the store on the way out."""
    store = Store(db_path)
    await store.open()
    try:
        await store.create_schema()
        context = RelayContext(state=ModerationState(), store=store, broadcaster=Broadcaster())
        await start_server(ChatRelay(context), host, port)
    finally:
        await store.close()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    logging.info("Attempting to start chat relay...")
    try:
        logging.info(f"Using HOST={config.HOST}, PORT={config.PORT}, DB_PATH={config.DB_PATH}")
        asyncio.run(run(config.HOST, config.PORT, config.DB_PATH))
    except KeyboardInterrupt:
        logging.info("Server stopped manually via KeyboardInterrupt.")
    except Exception:
        logging.exception("Server failed to start or crashed")


if __name__ == "__main__":
    main()
