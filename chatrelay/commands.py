# chatrelay/commands.py
# Admin slash commands.
# Only admin-issued text starting with '/' reaches the dispatcher; everyone else's
# slash text is handled as an ordinary chat message upstream. State changes are
# applied before the first await, and every notice is broadcast before it is stored.

import logging  # For logging issued and ignored commands.

from chatrelay import config
from chatrelay.events import AUTO_ADMIN, AUTO_RESPONSE, CLEAR, HELP_TEXT, PANIC, chat_event, sentinel_event


# --- Command Parsing ---

def split_command(command_line):
    """
    Splits a command line on its first run of whitespace.

    Returns:
        tuple[str, str]: The command word and the stripped argument ('' when absent).
    """
    parts = command_line.strip().split(None, 1)
    if not parts:
        return '', ''
    command = parts[0]
    argument = parts[1].strip() if len(parts) > 1 else ''
    return command, argument


# --- Command Dispatch ---

class CommandDispatcher:
    """Applies admin commands to the moderation state and announces the result."""

    def __init__(self, state, broadcaster, persistence):
        self.state = state
        self.broadcaster = broadcaster
        self.persistence = persistence
        self._handlers = {
            '/lock': self._toggle_lock,
            '/unlock': self._toggle_lock,
            '/mute': self._mute,
            '/unmute': self._unmute,
            '/panic': self._panic,
            '/clear': self._clear,
            '/help': self._help,
        }

    async def dispatch(self, command_line, issuer_name, connection):
        """
        Runs one admin command.

        Unknown commands are ignored without any reply.

        Args:
            command_line (str): The full text sent by the admin, e.g. '/mute eve'.
            issuer_name (str): Name of the admin who sent it.
            connection: The admin's connection, used for sender-only replies.
        """
        command, argument = split_command(command_line)
        handler = self._handlers.get(command)
        if handler is None:
            if config.DEBUG:
                logging.info(f"Ignoring unknown command '{command}' from {issuer_name}")
            return
        logging.info(f"Admin {issuer_name} issued {command}{' ' + argument if argument else ''}")
        await handler(argument, issuer_name, connection)

    async def _announce(self, text):
        # Moderation notices go to everyone and into history under the same sender.
        self.broadcaster.broadcast_all(chat_event(AUTO_ADMIN, text))
        await self.persistence.append_message(AUTO_ADMIN, text)

    async def _toggle_lock(self, argument, issuer_name, connection):
        locked = self.state.toggle_lock()
        await self._announce('Chat locked by an admin' if locked else 'Chat unlocked by an admin')

    async def _mute(self, argument, issuer_name, connection):
        if not argument:
            return
        self.state.mute(argument)
        await self._announce(f"{argument} has been muted by {issuer_name}.")

    async def _unmute(self, argument, issuer_name, connection):
        if not argument:
            return
        self.state.unmute(argument)
        await self._announce(f"{argument} has been unmuted by {issuer_name}.")

    async def _panic(self, argument, issuer_name, connection):
        self.broadcaster.broadcast_all(sentinel_event(PANIC))
        await self.persistence.append_message(AUTO_ADMIN, f"{issuer_name} has triggered a global panic.")

    async def _clear(self, argument, issuer_name, connection):
        text = f"{issuer_name} has triggered a clear."
        # Hide first so clients reloading history after CLEAR no longer see the old rows.
        await self.persistence.hide_all_messages()
        self.broadcaster.broadcast_all(sentinel_event(CLEAR))
        await self._announce(text)

    async def _help(self, argument, issuer_name, connection):
        await self.broadcaster.send_to_one(connection, chat_event(AUTO_RESPONSE, HELP_TEXT))
