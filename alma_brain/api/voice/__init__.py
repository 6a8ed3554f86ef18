"""
Voice session WebSocket API.

Live audio in -> recognition -> voice commands -> streaming assistant out.
"""

from .websocket import router

__all__ = ["router"]
