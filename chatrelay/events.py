# chatrelay/events.py
# Wire format helpers: decoding inbound envelopes and building outbound chat events.
# Every outbound frame has the same shape, {"usr_from": ..., "message": ...};
# system notices and client directives are told apart only by their `usr_from` value.

import json  # For parsing inbound frames and serializing outbound events.
import logging

# --- Sender Names ---
# AUTO_RESPONSE: Sender of notices that go back to a single user (rejections, /help).
AUTO_RESPONSE = 'Auto Response'
# AUTO_ADMIN: Sender of moderation notices broadcast to everyone and stored in history.
AUTO_ADMIN = 'Auto Admin'

# --- Sentinels ---
# Clients treat these as directives rather than chat text.
CLEAR = 'CLEAR'  # Wipe the visible history.
PANIC = 'PANIC'  # Trigger the client's panic handling.

# --- Auto Response Texts ---
RATE_LIMITED_TEXT = 'You are sending messages too quickly. Please wait.'
LOCKED_TEXT = 'The chat is currently locked by an admin'
MUTED_TEXT = 'You are muted and cannot send messages.'
HELP_TEXT = '/lock, /mute USERNAME (caps do matter), /unmute USERNAME (caps do matter), /panic, /clear'


def chat_event(usr_from, message):
    """Builds an outbound event dictionary."""
    return {'usr_from': usr_from, 'message': message}


def sentinel_event(name):
    """Builds a directive event such as CLEAR or PANIC, where both fields carry the sentinel."""
    return chat_event(name, name)


def encode_event(event):
    """Serializes an outbound event to the JSON text sent over the wire."""
    return json.dumps(event)


def _is_encodable(value):
    # JSON escapes can produce lone surrogates, which neither sqlite nor the wire can carry.
    try:
        value.encode('utf-8')
    except UnicodeEncodeError:
        return False
    return True


def parse_envelope(raw):
    """
    Decodes an inbound frame into its (session, text) pair.

    Anything that is not a JSON object with non-empty string `session` and `text`
    fields, or whose strings hold lone surrogates (e.g. "\\ud800"), is rejected by
    returning None; the caller drops it without replying.

    Args:
        raw (str | bytes): The frame exactly as received from the transport.

    Returns:
        tuple[str, str] | None: The session token and message text, or None.
    """
    try:
        data = json.loads(raw)
    except (ValueError, TypeError):
        # json.JSONDecodeError and UnicodeDecodeError are both ValueErrors.
        logging.debug("Dropping frame that is not valid JSON.")
        return None

    if not isinstance(data, dict):
        logging.debug("Dropping frame that is not a JSON object.")
        return None

    session = data.get('session')
    text = data.get('text')
    if not isinstance(session, str) or not isinstance(text, str) or not session or not text:
        logging.debug("Dropping frame with missing or invalid 'session'/'text'.")
        return None

    if not _is_encodable(session) or not _is_encodable(text):
        logging.debug("Dropping frame with text that cannot be encoded as UTF-8.")
        return None

    return session, text
