# chatrelay/config.py
# This file centralizes configuration settings for the chat relay server.
# Every value can be overridden through an environment variable (or a local .env file,
# loaded with python-dotenv) so deployments never need to edit this file.

import os  # Used to read environment variables and build file paths.

from dotenv import load_dotenv  # Loads KEY=value pairs from a .env file into os.environ.

# Load a .env file from the current working directory if one exists.
# Variables already present in the environment take precedence over the file.
load_dotenv()


def _env_bool(name, default):
    """Reads a boolean flag from the environment ('1', 'true', 'yes', 'on' are truthy)."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# --- Network Configuration ---

# HOST: The IP address the WebSocket server should listen on.
# - '0.0.0.0': Listen on all available network interfaces.
# - '127.0.0.1': Listen only on the local machine (e.g. when running behind a reverse proxy).
HOST = os.getenv('CHAT_HOST', '0.0.0.0')

# PORT: The TCP port number the WebSocket server should listen on.
PORT = int(os.getenv('CHAT_PORT', '1026'))

# MAX_MESSAGE_SIZE: Largest inbound WebSocket frame accepted, in bytes.
# Chat payloads are short JSON objects, so this stays small.
MAX_MESSAGE_SIZE = int(os.getenv('CHAT_MAX_MESSAGE_SIZE', str(64 * 1024)))

# --- SSL Configuration ---

# CERT_DIR: Default directory for certificate files, relative to the project root.
CERT_DIR = os.path.join(os.path.dirname(__file__), '..', 'certs')

# CERT_FILE / KEY_FILE: Certificate chain and private key used when ENABLE_SSL is True.
CERT_FILE = os.getenv('CHAT_CERT_FILE', os.path.join(CERT_DIR, 'cert.pem'))
KEY_FILE = os.getenv('CHAT_KEY_FILE', os.path.join(CERT_DIR, 'key.pem'))

# ENABLE_SSL: Serve Secure WebSockets (WSS). Off by default because the relay
# normally runs behind a TLS-terminating proxy.
ENABLE_SSL = _env_bool('CHAT_ENABLE_SSL', False)

# --- Store Configuration ---

# DB_PATH: SQLite database file holding the `accounts` and `messages` tables.
DB_PATH = os.getenv('CHAT_DB_PATH', 'chat.db')

# DB_RECONNECT_ATTEMPTS: How many times to try (re)opening the database before giving up on a cycle.
DB_RECONNECT_ATTEMPTS = int(os.getenv('CHAT_DB_RECONNECT_ATTEMPTS', '5'))

# DB_RECONNECT_DELAY: Fixed pause between connection attempts, in seconds.
DB_RECONNECT_DELAY = float(os.getenv('CHAT_DB_RECONNECT_DELAY', '2.0'))

# --- Rate Limiting Configuration ---

# MESSAGE_LIMIT: Messages a user may send within one window.
MESSAGE_LIMIT = int(os.getenv('CHAT_MESSAGE_LIMIT', '10'))

# RESET_INTERVAL_MS: Length of a rate-limit window in milliseconds.
RESET_INTERVAL_MS = int(os.getenv('CHAT_RESET_INTERVAL_MS', '2000'))

# --- Debugging Configuration ---

# DEBUG: When True, every received message and every send is logged.
# Connections, store failures and warnings are logged regardless of this flag.
DEBUG = _env_bool('CHAT_DEBUG', False)
