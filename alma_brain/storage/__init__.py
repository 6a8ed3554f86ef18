"""
Storage module for ALMA.

Provides persistent storage for session transcripts.
"""

from .exceptions import PersistenceError, StorageError, TranscriptNotFoundError
from .transcripts import TranscriptRecord, TranscriptRepository, get_transcript_repo

__all__ = [
    "StorageError",
    "PersistenceError",
    "TranscriptNotFoundError",
    "TranscriptRecord",
    "TranscriptRepository",
    "get_transcript_repo",
]
