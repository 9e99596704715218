"""Exception hierarchy for FinanzaPro."""

from __future__ import annotations

from typing import Optional


class FinanzaProError(Exception):
    """Base class for all FinanzaPro errors."""


class ValidationError(FinanzaProError):
    """Malformed input to a facade call or import row."""


class NotFoundError(FinanzaProError):
    """Update/delete target does not exist locally."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record not found: {record_id}")
        self.collection = collection
        self.record_id = record_id


class StorageError(FinanzaProError):
    """Local persistence failure."""


class ConfigError(FinanzaProError):
    """Invalid configuration value."""


class RemoteError(FinanzaProError):
    """Failure talking to the remote backend."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RemoteNotFoundError(RemoteError):
    """Remote reports the target record does not exist."""
