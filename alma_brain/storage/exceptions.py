"""
Custom exceptions for storage layer.

Provides explicit error types instead of silent failures.
"""


class StorageError(Exception):
    """Base exception for all storage errors."""

    pass


class PersistenceError(StorageError):
    """Raised when writing or reading a transcript artifact fails."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage operation '{operation}' failed: {cause}")


class TranscriptNotFoundError(StorageError):
    """Raised when a transcript artifact is not found."""

    def __init__(self, transcript_id: str):
        self.transcript_id = transcript_id
        super().__init__(f"Transcript not found: {transcript_id}")
