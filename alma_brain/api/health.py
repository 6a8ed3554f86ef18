"""
Health check and stats endpoints.
"""

from datetime import datetime, timezone

import psutil
from fastapi import APIRouter

from ..config import settings
from ..voice.recognizer import get_recognizer_engine
from ..voice.registry import get_session_registry

router = APIRouter(tags=["Health"])

_process = psutil.Process()


@router.get("/test")
async def test():
    """Simple endpoint to verify server is running."""
    return {
        "status": "Server running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "features": {
            "conversationManagement": True,
            "voiceCommands": True,
            "unlimitedMessages": True,
            "activationPhrase": settings.conversation.wake_phrase,
        },
    }


@router.get("/stats")
async def stats():
    """
    Global counters plus process metrics.

    Returns:
        totalConnections, activeConnections, totalAudioChunks,
        totalTranscriptions, voskReady, uptime (s), memory (rss/vms bytes),
        activeConversations, totalSessions
    """
    registry = get_session_registry()
    sessions = registry.sessions()
    mem = _process.memory_info()
    return {
        **registry.stats.to_dict(),
        "voskReady": get_recognizer_engine().is_ready,
        "uptime": round(registry.stats.uptime, 1),
        "memory": {"rss": mem.rss, "vms": mem.vms},
        "activeConversations": sum(1 for s in sessions if s.conversation.active),
        "totalSessions": len(sessions),
    }
