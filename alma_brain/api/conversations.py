"""
Conversation administration endpoints.
"""

import logging

from fastapi import APIRouter

from ..voice.registry import get_session_registry

logger = logging.getLogger("alma.api.conversations")

router = APIRouter(prefix="/conversations", tags=["Conversations"])


@router.get("/active")
async def active_conversations():
    """Sessions whose conversation is currently active."""
    registry = get_session_registry()
    conversations = [s.summary() for s in registry.sessions() if s.conversation.active]
    return {"activeCount": len(conversations), "conversations": conversations}


@router.post("/reset-all")
async def reset_all_conversations():
    """Reset every active conversation back to idle."""
    registry = get_session_registry()
    count = 0
    for session in registry.sessions():
        if session.closed or not session.conversation.active:
            continue
        await session.reset_conversation()
        count += 1
    logger.info("Reset %d active conversations", count)
    return {"message": f"Se reiniciaron {count} conversaciones activas", "resetCount": count}
