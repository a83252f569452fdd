"""
Error types raised by the upload proxy.

- ConfigurationError: bad credentials or settings at startup (fatal)
- StorageError: the object-storage backend failed or rejected a write
- CanceledError: the client went away before the upload finished
"""
from typing import Optional


class ConfigurationError(Exception):
    """Invalid or missing configuration. The server must not start."""


class StorageError(Exception):
    """
    Wraps a backend failure (network, auth rejection, missing bucket, limits).

    The message is the backend's own error text so it can be surfaced
    to the developer calling the proxy.
    """

    def __init__(self, cause: Exception, key: Optional[str] = None):
        super().__init__(str(cause))
        self.cause = cause
        self.key = key


class CanceledError(Exception):
    """The client disconnected mid-upload; no response can be delivered."""
