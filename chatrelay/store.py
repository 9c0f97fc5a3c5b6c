# chatrelay/store.py
# This file manages the relay's single database connection.
# Responsibilities include:
# - Opening the SQLite database with a bounded number of fixed-delay retries.
# - Running queries and translating driver failures into typed StoreErrors.
# - Replacing the connection in the background when it is lost, at most one cycle at a time.
# - Creating the `accounts` and `messages` tables for local development and tests.

import asyncio  # For the reconnect task and the delay between attempts.
import logging  # For logging connection events and failures.

import aiosqlite  # Async wrapper around sqlite3; runs queries on a dedicated thread.

from chatrelay import config
from chatrelay.errors import StoreConnectionLost, StoreError

# Tables used by the relay. Production deployments may provision these externally;
# the statements are idempotent so running them against an existing database is harmless.
SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    session TEXT PRIMARY KEY,
    additional_values TEXT
);
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    usr_from TEXT NOT NULL,
    message TEXT NOT NULL,
    visible INTEGER NOT NULL DEFAULT 1
);
"""

# --- Connection Loss Detection ---
# Error texts raised once the underlying connection is gone:
# aiosqlite's wrapper ("Connection closed", "no active connection") and
# sqlite3 itself ("Cannot operate on a closed database.").
CLOSED_CONNECTION_MESSAGES = (
    'Connection closed',
    'no active connection',
    'Cannot operate on a closed database',
)


def classify_error(error):
    """
    Translates a driver exception into a StoreError.

    Only a closed connection becomes StoreConnectionLost. Bad parameters
    (e.g. a UnicodeEncodeError for a string sqlite cannot encode) and bad SQL stay
    plain StoreErrors, so they never trigger a reconnect.

    Args:
        error (Exception): A ValueError or aiosqlite.Error raised by a query.

    Returns:
        StoreError: The typed error to raise in its place.
    """
    if isinstance(error, UnicodeError):
        return StoreError(str(error))
    if isinstance(error, (ValueError, aiosqlite.ProgrammingError)) and str(error).startswith(CLOSED_CONNECTION_MESSAGES):
        return StoreConnectionLost(str(error))
    return StoreError(str(error))


class Store:
    """
    Holds the one open database connection shared by every client handler.

    Queries are serialized by aiosqlite's worker thread. When a query finds the
    connection unusable, callers receive StoreConnectionLost and may call
    `schedule_reconnect()`; the connection reference is swapped once a new one opens,
    so callers must never hold on to it.
    """

    def __init__(self, path, reconnect_attempts=None, reconnect_delay=None):
        self.path = path
        self.reconnect_attempts = config.DB_RECONNECT_ATTEMPTS if reconnect_attempts is None else reconnect_attempts
        self.reconnect_delay = config.DB_RECONNECT_DELAY if reconnect_delay is None else reconnect_delay
        self._db = None
        self._reconnect_task = None

    @property
    def connected(self):
        return self._db is not None

    async def open(self):
        """
        Opens the database, retrying with a fixed delay.

        Raises:
            StoreError: If every attempt fails.
        """
        db = await self._connect_with_retry()
        if db is None:
            raise StoreError(f"Could not open database at {self.path}")
        self._db = db
        logging.info(f"Database connection established ({self.path}).")

    async def close(self):
        """Stops any running reconnect cycle and closes the connection."""
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        db, self._db = self._db, None
        if db is not None:
            await self._close_quietly(db)
            logging.info("Database connection closed.")

    async def create_schema(self):
        """Creates the relay's tables if they do not exist yet."""
        db = self._require()
        try:
            await db.executescript(SCHEMA)
            await db.commit()
        except (ValueError, aiosqlite.Error) as e:
            raise classify_error(e) from e

    async def execute(self, sql, params=()):
        """
        Runs a write statement and commits it.

        Args:
            sql (str): The statement, using `?` placeholders.
            params (tuple): Values bound to the placeholders.

        Returns:
            int: The number of rows affected.

        Raises:
            StoreConnectionLost: The connection is closed or unusable.
            StoreError: Any other database failure.
        """
        db = self._require()
        try:
            async with db.execute(sql, params) as cursor:
                rowcount = cursor.rowcount
            await db.commit()
            return rowcount
        except (ValueError, aiosqlite.Error) as e:
            raise classify_error(e) from e

    async def fetchone(self, sql, params=()):
        """
        Runs a query and returns its first row (an aiosqlite.Row) or None.

        Raises:
            StoreConnectionLost: The connection is closed or unusable.
            StoreError: Any other database failure.
        """
        db = self._require()
        try:
            async with db.execute(sql, params) as cursor:
                return await cursor.fetchone()
        except (ValueError, aiosqlite.Error) as e:
            raise classify_error(e) from e

    def schedule_reconnect(self):
        """
        Starts a background reconnect cycle unless one is already running.

        Returns:
            asyncio.Task: The running (or newly started) reconnect task.
        """
        if self._reconnect_task is None or self._reconnect_task.done():
            logging.error("Database connection lost. Attempting to reconnect...")
            self._reconnect_task = asyncio.create_task(self.reconnect())
        return self._reconnect_task

    async def reconnect(self):
        """
        Drops the current connection and opens a new one.

        Returns:
            bool: True if a new connection is in place, False if every attempt failed.
        """
        old, self._db = self._db, None
        if old is not None:
            await self._close_quietly(old)

        db = await self._connect_with_retry()
        if db is None:
            # Terminal for this cycle only; the next failed query starts another one.
            logging.error("Could not reconnect to the database after multiple attempts.")
            return False
        self._db = db
        logging.info("Reconnected to the database.")
        return True

    def _require(self):
        if self._db is None:
            raise StoreConnectionLost("No open database connection.")
        return self._db

    async def _connect_with_retry(self):
        attempts = max(1, self.reconnect_attempts)
        for attempt in range(1, attempts + 1):
            try:
                db = await aiosqlite.connect(self.path)
                db.row_factory = aiosqlite.Row
                return db
            except aiosqlite.Error as e:
                logging.error(f"Error establishing database connection (attempt {attempt}/{attempts}): {e}")
                remaining = attempts - attempt
                if remaining > 0:
                    logging.info(f"Retrying in {self.reconnect_delay} seconds... ({remaining} retries left)")
                    await asyncio.sleep(self.reconnect_delay)
        return None

    @staticmethod
    async def _close_quietly(db):
        try:
            await db.close()
        except (ValueError, aiosqlite.Error) as e:
            logging.warning(f"Error while closing database connection: {e}")
