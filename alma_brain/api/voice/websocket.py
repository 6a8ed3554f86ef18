"""
Voice session WebSocket endpoint.

One VoiceSession per connection, registered in the session registry for
the lifetime of the socket. The receive loop only parses frames and
queues them; the session's own task does the work, so a slow assistant
response never holds up the socket.

Commands:
  audio_chunk              - PCM samples (JSON) or a binary PCM frame
  start_recording          - open a WAV recording for this connection
  stop_recording           - close the recording, save the transcript,
                             flush buffered idle text to the assistant
  get_final_transcription  - force the recognizer to finish the utterance
  reset_conversation       - drop the dialog and return to idle
  get_conversation_state   - report active/messageCount/duration
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...config import settings
from ...services.llm import get_llm
from ...storage.transcripts import get_transcript_repo
from ...voice.exceptions import MalformedClientMessage
from ...voice.recognizer import get_recognizer_engine
from ...voice.registry import RegistryFullError, get_session_registry
from ...voice.session import VoiceSession
from .protocol import parse_client_message

logger = logging.getLogger("alma.api.voice")

router = APIRouter(prefix="/ws/voice", tags=["voice"])


class VoiceConnection:
    """Outbound side of one voice socket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: str, data: dict[str, Any]) -> None:
        """Send one event envelope, protected by lock for Starlette safety."""
        if self._closed:
            return
        async with self._send_lock:
            try:
                await self.websocket.send_json({"event": event, "data": data})
            except Exception as e:
                logger.debug("Send failed, marking connection closed: %s", e)
                self._closed = True


@router.websocket("")
async def voice_websocket(websocket: WebSocket):
    """
    Voice session WebSocket endpoint.

    Protocol:
      Client -> Server:
        Binary:  Raw PCM (16kHz, 16-bit int, mono)
        JSON:    {"event": "audio_chunk", "data": {"samples": [...]}}
        JSON:    {"event": "<command>", "data": {}}

      Server -> Client:
        {"event": "connected", "data": {...}}
        {"event": "transcription", "data": {"text", "isFinal", "confidence"}}
        {"event": "assistant_text", "data": {"delta": "..."}}
        ...
    """
    registry = get_session_registry()
    max_sessions = settings.session.max_concurrent_sessions
    if len(registry) >= max_sessions:
        await websocket.close(code=1013, reason="Too many concurrent sessions")
        return

    conn = VoiceConnection(websocket)
    engine = get_recognizer_engine()
    session = VoiceSession(
        conn.send,
        recognizer=engine.open(),
        chat=get_llm(),
        repo=get_transcript_repo(),
        stats=registry.stats,
        recognizer_ready=engine.is_ready,
    )

    try:
        await registry.add(session)
    except RegistryFullError:
        session.ingest.close_recognizer()
        await websocket.close(code=1013, reason="Too many concurrent sessions")
        return

    try:
        await websocket.accept()
        await conn.send("connected", session.handshake())
        session.start()

        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                break

            try:
                event, data = parse_client_message(message)
                session.submit(event, data)
            except MalformedClientMessage as e:
                logger.warning(
                    "Malformed frame from %s: %s", session.connection_id[:8], e,
                )
                await conn.send("audio_error", {"error": str(e)})

    except WebSocketDisconnect:
        logger.info("Voice session disconnected: %s", session.connection_id[:8])
    except Exception as e:
        logger.exception("Voice session error: %s", e)
    finally:
        await session.close()
        await registry.remove(session.connection_id)
