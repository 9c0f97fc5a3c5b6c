# chatrelay/persistence.py
# Durable history for the chat: every admitted message and moderation notice is appended
# to the `messages` table, and /clear hides the existing rows without deleting them.
# Writes are fire-and-forget from the caller's point of view: failures are logged here
# and reported only through the boolean result.

import logging  # For logging failed writes.

from chatrelay import config
from chatrelay.errors import StoreConnectionLost, StoreError

# --- Queries ---
# New rows default to visible = 1; /clear flips every row to 0.
INSERT_MESSAGE = "INSERT INTO messages (usr_from, message) VALUES (?, ?)"
HIDE_ALL_MESSAGES = "UPDATE messages SET visible = 0"


# --- History Writes ---

class PersistenceGateway:
    """Writes chat history through the shared Store."""

    def __init__(self, store):
        self.store = store

    async def append_message(self, user_name, text):
        """
        Stores one message.

        Args:
            user_name (str): The sender shown in history (a user name or 'Auto Admin').
            text (str): The message body.

        Returns:
            bool: True if the row was written.
        """
        try:
            await self.store.execute(INSERT_MESSAGE, (user_name, text))
        except StoreError as e:
            self._handle_failure("Error uploading message to DB", e)
            return False
        if config.DEBUG:
            logging.info(f"Message uploaded to DB: {{'usr_from': {user_name!r}, 'message': {text!r}}}")
        return True

    async def hide_all_messages(self):
        """
        Marks every stored message as not visible (soft delete).

        Returns:
            bool: True if the update ran.
        """
        try:
            hidden = await self.store.execute(HIDE_ALL_MESSAGES)
        except StoreError as e:
            self._handle_failure("Error updating messages", e)
            return False
        logging.info(f"All messages set to hidden ({hidden} rows).")
        return True

    def _handle_failure(self, what, error):
        logging.error(f"{what}: {error}")
        if isinstance(error, StoreConnectionLost):
            self.store.schedule_reconnect()
