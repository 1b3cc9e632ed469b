"""Custom exception classes for the inventory pipeline."""

from typing import Optional


class InventoryIntelError(Exception):
    """Base exception for all inventory-intel errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class NetworkError(InventoryIntelError):
    """Raised when a request still fails after all retries are exhausted.

    Covers transport failures, per-attempt timeouts and non-2xx responses.
    """

    def __init__(self, url: str, reason: str, attempts: int = 1):
        self.url = url
        self.reason = reason
        self.attempts = attempts
        super().__init__(f"Request to {url} failed after {attempts} attempt(s): {reason}")


class StructuralMismatchError(InventoryIntelError):
    """Raised when an adapter's expected page markers are missing.

    The source most likely changed shape. Never retried.
    """

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(f"{platform}: {message}")


class ParseWarning(InventoryIntelError):
    """Raised when a single raw record cannot be normalized.

    Always recovered by the normalizer: the record is skipped and counted.
    """


class StorageError(InventoryIntelError):
    """Raised when a batch write fails; remaining batches are abandoned."""

    def __init__(self, message: str, committed_batches: int = 0):
        self.committed_batches = committed_batches
        super().__init__(message)


class ConfigError(InventoryIntelError):
    """Raised when a target is missing required configuration."""

    def __init__(self, message: str, source_name: Optional[str] = None):
        self.source_name = source_name
        if source_name:
            message = f"[{source_name}] {message}"
        super().__init__(message)


class InvalidTransitionError(InventoryIntelError):
    """Raised when a run record is moved out of a terminal state."""

    def __init__(self, run_id: str, status: str):
        super().__init__(f"Run {run_id} is already '{status}' and cannot transition")
