from __future__ import annotations
"""Error types raised by the storage adapter."""


class StorageError(RuntimeError):
    """Base class for every failure surfaced by :mod:`s3_filesystem`."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(message)
        self.path = path


class RemoteListError(StorageError):
    """Raised when a single listing page cannot be fetched."""


class ListingFailed(StorageError):
    """Raised when a listing aborts; the original error is the ``__cause__``."""


class ListingCancelledError(StorageError):
    """Raised when a listing is cancelled by the caller."""


class ObjectNotFound(StorageError):
    """Raised when the requested object does not exist."""


class ObjectOperationFailed(StorageError):
    """Raised when a write, delete, copy or ACL operation fails."""


class ConfigurationError(StorageError):
    """Raised when connection settings are missing or invalid."""
