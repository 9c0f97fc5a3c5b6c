# chatrelay/errors.py
# Typed errors raised by the store layer.


class StoreError(Exception):
    """A query against the chat database failed."""


class StoreConnectionLost(StoreError):
    """The database connection is closed or unusable and must be re-established."""
