"""
Voice session layer for ALMA.

Provides:
- Voice command classification and the conversation state machine
- Audio ingest (WAV recording + streaming recognition)
- The per-connection VoiceSession orchestrator and its registry
"""

from .commands import CommandKind, Phase, VoiceCommand, classify
from .conversation import Conversation, Transition, Turn
from .exceptions import (
    AssistantTransportError,
    AudioWriteError,
    MalformedClientMessage,
    RecognitionError,
    StaleCompletionDiscard,
    VoiceSessionError,
)
from .recognizer import RecognitionResult, Recognizer, RecognizerEngine, get_recognizer_engine
from .registry import RegistryFullError, ServerStats, SessionRegistry, get_session_registry
from .session import VoiceSession

__all__ = [
    "CommandKind",
    "Phase",
    "VoiceCommand",
    "classify",
    "Conversation",
    "Transition",
    "Turn",
    "AssistantTransportError",
    "AudioWriteError",
    "MalformedClientMessage",
    "RecognitionError",
    "StaleCompletionDiscard",
    "VoiceSessionError",
    "RecognitionResult",
    "Recognizer",
    "RecognizerEngine",
    "get_recognizer_engine",
    "RegistryFullError",
    "ServerStats",
    "SessionRegistry",
    "get_session_registry",
    "VoiceSession",
]
