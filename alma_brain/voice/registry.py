"""
Session registry.

Single table of live voice sessions keyed by connection id. Connection
handlers are the only callers that add or remove entries; HTTP handlers
read snapshots. Also owns the process-wide counters reported by /stats.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..config import settings

if TYPE_CHECKING:
    from .session import VoiceSession

logger = logging.getLogger("alma.voice.registry")


@dataclass
class ServerStats:
    """Global counters shared by all sessions."""
    total_connections: int = 0
    active_connections: int = 0
    total_audio_chunks: int = 0
    total_transcriptions: int = 0
    started_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, int]:
        return {
            "totalConnections": self.total_connections,
            "activeConnections": self.active_connections,
            "totalAudioChunks": self.total_audio_chunks,
            "totalTranscriptions": self.total_transcriptions,
        }

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at


class RegistryFullError(Exception):
    """Raised when a new session would exceed the configured limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Too many concurrent sessions (limit {limit})")


class SessionRegistry:
    """Concurrency-safe map of connection id to VoiceSession."""

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        self.max_sessions = max_sessions
        self.stats = ServerStats()
        self._sessions: dict[str, "VoiceSession"] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: "VoiceSession") -> None:
        """Register a new session.

        Raises:
            RegistryFullError: if max_sessions is reached
            ValueError: if the connection id is already registered
        """
        async with self._lock:
            if self.max_sessions is not None and len(self._sessions) >= self.max_sessions:
                raise RegistryFullError(self.max_sessions)
            if session.connection_id in self._sessions:
                raise ValueError(f"Session already registered: {session.connection_id}")
            self._sessions[session.connection_id] = session
            self.stats.total_connections += 1
            self.stats.active_connections = len(self._sessions)
        logger.info(
            "Session registered: %s (active: %d)",
            session.connection_id[:8], self.stats.active_connections,
        )

    async def remove(self, connection_id: str) -> Optional["VoiceSession"]:
        async with self._lock:
            session = self._sessions.pop(connection_id, None)
            self.stats.active_connections = len(self._sessions)
        if session is not None:
            logger.info(
                "Session removed: %s (active: %d)",
                connection_id[:8], self.stats.active_connections,
            )
        return session

    def get(self, connection_id: str) -> Optional["VoiceSession"]:
        return self._sessions.get(connection_id)

    def sessions(self) -> list["VoiceSession"]:
        """Snapshot of the live sessions."""
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._sessions


_registry: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    """Return the process-wide session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry(max_sessions=settings.session.max_concurrent_sessions)
    return _registry
