# chatrelay/sessions.py
# Maps an opaque session token to the user it belongs to.
# Identities are looked up fresh for every message; nothing is cached locally,
# so account changes (e.g. revoking admin) take effect on the next message.

import json  # Profiles are stored as JSON blobs.
import logging  # For logging lookup failures.
from dataclasses import dataclass  # For the immutable UserIdentity record.

from chatrelay.errors import StoreConnectionLost, StoreError

# --- Queries ---
# Profile blob for a session token; see store.SCHEMA for the table layout.
ACCOUNT_QUERY = "SELECT additional_values FROM accounts WHERE session = ?"


# --- Identity Parsing ---

@dataclass(frozen=True)
class UserIdentity:
    name: str
    admin: bool = False


def _is_admin(value):
    # Profiles store the flag as the string "true"; a JSON boolean is accepted as well.
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().lower() == 'true'


def parse_profile(blob):
    """
    Builds a UserIdentity from a stored profile blob.

    Args:
        blob (str | None): JSON text holding at least a `name` and an optional `admin` flag.

    Returns:
        UserIdentity | None: None if the blob is missing, not a JSON object, or has no usable name.
    """
    if not blob:
        return None
    try:
        profile = json.loads(blob)
    except (ValueError, TypeError):
        return None
    if not isinstance(profile, dict):
        return None

    name = profile.get('name')
    if not isinstance(name, str) or not name:
        return None
    return UserIdentity(name=name, admin=_is_admin(profile.get('admin')))


# --- Resolution ---

class SessionResolver:
    """Resolves session tokens against the `accounts` table."""

    def __init__(self, store):
        self.store = store

    async def resolve(self, session):
        """
        Looks up the user owning `session`.

        Store failures are logged and treated as an unknown session, so the message is
        dropped rather than retried. A lost connection also starts the store's reconnect cycle.

        Returns:
            UserIdentity | None: The user, or None if the session cannot be resolved.
        """
        try:
            row = await self.store.fetchone(ACCOUNT_QUERY, (session,))
        except StoreConnectionLost as e:
            logging.error(f"Error querying the database: {e}")
            self.store.schedule_reconnect()
            return None
        except StoreError as e:
            logging.error(f"Error querying the database: {e}")
            return None

        if row is None:
            return None

        user = parse_profile(row['additional_values'])
        if user is None:
            logging.warning("Account profile for a session could not be parsed. Ignoring message.")
        return user
