"""
Voice session orchestrator.

One VoiceSession per connection. It owns the session's recognizer, its
open recording, the conversation state and the assistant turns, and it
is the only code that touches them.

Inbound events (audio frames and client commands) go through a queue
consumed by a single actor task, so frames reach the recorder and the
recognizer in arrival order and command handling never interleaves.
Assistant turns run as separate tasks so a slow chat backend never
stalls audio; they run one at a time and check the dialog generation
before streaming and again before appending.

Server -> client events are sent through the emit callable supplied by
the transport:
    transcription, audio_ack, audio_error, voice_command_detected,
    assistant_status, assistant_text, assistant_text_done, assistant_error,
    conversation_state, conversation_reset, server_stats
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional
from uuid import uuid4

from ..config import settings
from ..services.protocols import ChatService
from ..storage.exceptions import PersistenceError
from ..storage.transcripts import TranscriptRecord, TranscriptRepository
from .commands import classify
from .conversation import Conversation
from .exceptions import (
    AssistantTransportError,
    AudioWriteError,
    MalformedClientMessage,
    StaleCompletionDiscard,
)
from .ingest import AudioIngest, RecognitionEvent
from .recognizer import Recognizer
from .recorder import AudioRecorder, recording_path

if TYPE_CHECKING:
    from .registry import ServerStats

logger = logging.getLogger("alma.voice.session")

Emit = Callable[[str, dict[str, Any]], Awaitable[None]]

COMMANDS = (
    "start_recording",
    "stop_recording",
    "get_final_transcription",
    "reset_conversation",
    "get_conversation_state",
)

_STOP = object()


class VoiceSession:
    """Per-connection orchestrator."""

    def __init__(
        self,
        emit: Emit,
        *,
        connection_id: Optional[str] = None,
        recognizer: Optional[Recognizer] = None,
        chat: Optional[ChatService] = None,
        repo: Optional[TranscriptRepository] = None,
        stats: Optional["ServerStats"] = None,
        recognizer_ready: bool = False,
        audio_dir: Optional[Path] = None,
        debounce: Optional[float] = None,
        stats_interval: Optional[float] = None,
    ) -> None:
        conv_cfg = settings.conversation
        audio_cfg = settings.audio

        self.connection_id = connection_id or str(uuid4())
        self.created_at = time.time()
        self._emit = emit
        self._chat = chat
        self._repo = repo or TranscriptRepository(audio_dir or audio_cfg.audio_dir)
        self._stats = stats
        self.recognizer_ready = recognizer_ready
        self.audio_dir = Path(audio_dir or audio_cfg.audio_dir)

        self.conversation = Conversation(conv_cfg.system_prompt)
        self.ingest = AudioIngest(
            self.connection_id,
            recognizer=recognizer,
            ack_every=audio_cfg.ack_every,
            log_every=audio_cfg.log_every,
        )
        self.audio_file_path: Optional[Path] = None

        self.debounce = conv_cfg.assistant_debounce_seconds if debounce is None else debounce
        self.stats_interval = (
            settings.session.stats_interval if stats_interval is None else stats_interval
        )

        self._queue: asyncio.Queue = asyncio.Queue()
        self._actor: Optional[asyncio.Task] = None
        self._stats_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()  # conversation transitions and appends
        self._turn_lock = asyncio.Lock()  # one assistant stream at a time
        self._assistant_tasks: set[asyncio.Task] = set()
        self._pending_turn: Optional[asyncio.Task] = None
        self._unsaved = False
        self._closing = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def handshake(self) -> dict[str, Any]:
        """Payload of the `connected` event."""
        llm = settings.llm
        return {
            "message": "Conectado al servidor de audio",
            "sampleRate": settings.audio.sample_rate,
            "channels": settings.audio.channels,
            "bitDepth": settings.audio.bit_depth,
            "expectedChunkSize": settings.audio.chunk_size,
            "supportsTranscription": self.ingest.recognizing,
            "transcriptionEngine": "Vosk (Offline)",
            "llm": {"base": llm.base_url, "model": llm.model},
            "conversationFeatures": {
                "enabled": True,
                "unlimitedMessages": True,
                "activationPhrase": settings.conversation.wake_phrase,
            },
        }

    def start(self) -> None:
        """Start the actor and the periodic stats timer."""
        if self._actor is not None:
            return
        self._actor = asyncio.create_task(
            self._run(), name=f"session-{self.connection_id[:8]}",
        )
        if self.stats_interval and self.stats_interval > 0:
            self._stats_task = asyncio.create_task(
                self._stats_loop(), name=f"stats-{self.connection_id[:8]}",
            )

    async def close(self) -> None:
        """Tear the session down. Safe to call more than once."""
        if self._closing:
            return
        self._closing = True
        self._queue.put_nowait(_STOP)

        if self._actor is not None:
            # The actor may be inside a recognizer call; let it finish rather
            # than cancelling under the thread.
            await self._actor

        await self._cancel_assistant(wait=True)
        if self._stats_task is not None:
            self._stats_task.cancel()
            await asyncio.gather(self._stats_task, return_exceptions=True)

        final = await self.ingest.finalize()
        if final is not None:
            await self._send_transcription(final)
            async with self._lock:
                self.conversation.buffer_text(final.text)
            self._unsaved = True
        self.ingest.close_recognizer()

        recorder = self.ingest.stop_recording()
        if recorder is not None:
            self.audio_file_path = recorder.path
            self._unsaved = True

        if self._unsaved:
            await self._persist()

        self._closed = True
        logger.info(
            "Session closed: %s (%d chunks)",
            self.connection_id[:8], self.ingest.chunks_received,
        )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def submit_audio(self, frame: bytes) -> None:
        """Queue one PCM frame."""
        if not self._closing:
            self._queue.put_nowait(("audio_chunk", frame))

    def submit(self, event: str, data: Any = None) -> None:
        """Queue a client command.

        Raises:
            MalformedClientMessage: for an unknown event name
        """
        if event == "audio_chunk":
            if not isinstance(data, (bytes, bytearray)):
                raise MalformedClientMessage("audio_chunk must carry PCM bytes")
            self.submit_audio(bytes(data))
            return
        if event not in COMMANDS:
            raise MalformedClientMessage(f"Unknown event: {event}")
        if not self._closing:
            self._queue.put_nowait((event, data))

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    break
                event, data = item
                if self._closing and event == "audio_chunk":
                    continue
                try:
                    await self._handle(event, data)
                except Exception as e:
                    logger.exception(
                        "Error handling %s for %s: %s", event, self.connection_id[:8], e,
                    )
                    await self.emit("audio_error", {"error": str(e)})
            finally:
                self._queue.task_done()

    async def _handle(self, event: str, data: Any) -> None:
        if event == "audio_chunk":
            await self._on_audio(data)
        elif event == "start_recording":
            await self._on_start_recording()
        elif event == "stop_recording":
            await self._on_stop_recording()
        elif event == "get_final_transcription":
            await self._on_get_final_transcription()
        elif event == "reset_conversation":
            await self._on_reset_conversation()
        elif event == "get_conversation_state":
            await self.emit("conversation_state", self.conversation.state())

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        await self._emit(event, data)

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    async def _on_audio(self, frame: bytes) -> None:
        if self._stats is not None:
            self._stats.total_audio_chunks += 1

        result = await self.ingest.process(frame)

        if result.write_error is not None:
            await self.emit("audio_error", {"error": str(result.write_error)})
        if result.recognition is not None:
            await self._on_recognition(result.recognition)
        if result.ack_due:
            await self.emit("audio_ack", {
                "chunksReceived": self.ingest.chunks_received,
                "totalBytes": self.ingest.total_bytes,
                "recordedBytes": self.ingest.recorded_bytes,
                "timestamp": int(time.time() * 1000),
                "conversationState": self.conversation.state(),
                "isRecording": self.ingest.recording,
            })

    async def _send_transcription(self, event: RecognitionEvent) -> None:
        if event.is_final:
            logger.info("%s [FINAL]: %s", self.connection_id[:8], event.text)
        else:
            logger.debug("%s [PARTIAL]: %s", self.connection_id[:8], event.text)
        await self.emit("transcription", {
            "text": event.text,
            "isFinal": event.is_final,
            "confidence": event.confidence,
        })

    async def _on_recognition(self, event: RecognitionEvent) -> None:
        await self._send_transcription(event)
        if event.is_final:
            await self._on_final(event.text)

    async def _on_final(self, text: str) -> None:
        """Classify a final transcript and apply the transition."""
        cfg = settings.conversation
        async with self._lock:
            command = classify(
                text,
                self.conversation.phase,
                cfg.wake_phrase,
                cfg.stop_phrases,
                cfg.reset_phrases,
            )
            transition = self.conversation.apply(text, command)
            generation = self.conversation.generation
            self._unsaved = True

        if transition.generation_changed:
            await self._cancel_assistant()

        if command.is_command:
            logger.info(
                "Voice command %s on %s: %r",
                command.kind.value, self.connection_id[:8], command.phrase,
            )
            await self.emit("voice_command_detected", {
                "action": command.kind.value,
                "command": command.phrase,
                "text": text,
                "conversationState": self.conversation.state(),
            })

        if transition.dispatch:
            self._schedule_assistant(generation)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _on_start_recording(self) -> None:
        if self.ingest.recording:
            logger.info("start_recording ignored, already recording: %s", self.connection_id[:8])
            return
        path = recording_path(self.audio_dir, self.connection_id)
        try:
            recorder = AudioRecorder(
                path,
                sample_rate=settings.audio.sample_rate,
                channels=settings.audio.channels,
                bit_depth=settings.audio.bit_depth,
            )
        except AudioWriteError as e:
            logger.error("Could not start recording for %s: %s", self.connection_id[:8], e)
            await self.emit("audio_error", {"error": str(e)})
            return
        self.ingest.start_recording(recorder)
        self.audio_file_path = path
        await self.emit("assistant_status", {"status": "idle"})

    async def _on_stop_recording(self) -> None:
        recorder = self.ingest.stop_recording()
        if recorder is None:
            logger.info("stop_recording with no active recording: %s", self.connection_id[:8])
        else:
            self.audio_file_path = recorder.path
            await self._persist()

        async with self._lock:
            flushed = self.conversation.flush()
            generation = self.conversation.generation
        if flushed:
            self._unsaved = True
            self._schedule_assistant(generation, flush=True)

    async def _on_get_final_transcription(self) -> None:
        final = await self.ingest.finalize()
        if final is None:
            return
        await self._on_recognition(final)

    async def _on_reset_conversation(self) -> None:
        async with self._lock:
            self.conversation.reset()
            self._unsaved = True
        await self._cancel_assistant()
        logger.info("Conversation reset by client: %s", self.connection_id[:8])
        await self.emit("conversation_reset", {"message": "Conversación reiniciada"})

    async def reset_conversation(self) -> None:
        """Administrative reset (from the HTTP surface)."""
        await self._on_reset_conversation()

    # ------------------------------------------------------------------
    # Assistant
    # ------------------------------------------------------------------

    def _schedule_assistant(self, generation: int, flush: bool = False) -> None:
        """Schedule a turn for the dialog epoch the transition produced."""
        if self._chat is None:
            logger.warning("No chat service; skipping assistant turn for %s", self.connection_id[:8])
            return
        if generation != self.conversation.generation:
            logger.info(
                "Not scheduling assistant turn for %s: conversation changed since generation %d",
                self.connection_id[:8], generation,
            )
            return
        if not flush and self._pending_turn is not None and not self._pending_turn.done():
            # The waiting turn snapshots the dialog when it starts, so it
            # already covers this text.
            return
        task = asyncio.create_task(
            self._assistant_turn(generation, delay=0.0 if flush else self.debounce, flush=flush),
            name=f"assistant-{self.connection_id[:8]}",
        )
        self._assistant_tasks.add(task)
        task.add_done_callback(self._assistant_tasks.discard)
        if not flush:
            self._pending_turn = task

    async def _cancel_assistant(self, wait: bool = False) -> None:
        self._pending_turn = None
        tasks = list(self._assistant_tasks)
        for task in tasks:
            task.cancel()
        if wait and tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _assistant_turn(self, generation: int, delay: float, flush: bool) -> None:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            async with self._turn_lock:
                if self._pending_turn is asyncio.current_task():
                    self._pending_turn = None
                if generation != self.conversation.generation:
                    logger.info(
                        "Dropping assistant turn for %s: generation %d is stale (current %d)",
                        self.connection_id[:8], generation, self.conversation.generation,
                    )
                    return
                await self._stream_turn(generation, flush)
        except asyncio.CancelledError:
            logger.debug("Assistant turn cancelled for %s", self.connection_id[:8])
            raise

    async def _stream_turn(self, generation: int, flush: bool) -> None:
        messages = self.conversation.messages()
        await self.emit("assistant_status", {"status": "thinking"})

        parts: list[str] = []
        try:
            async for delta in self._chat.chat_stream_async(messages):
                parts.append(delta)
                await self.emit("assistant_text", {"delta": delta})
        except AssistantTransportError as e:
            logger.error("Assistant turn failed for %s: %s", self.connection_id[:8], e)
            await self.emit("assistant_error", {"error": str(e)})
            await self.emit("assistant_status", {"status": "idle"})
            return
        except Exception as e:
            logger.exception("Unexpected assistant failure for %s", self.connection_id[:8])
            await self.emit("assistant_error", {"error": str(e) or type(e).__name__})
            await self.emit("assistant_status", {"status": "idle"})
            return

        text = "".join(parts)
        async with self._lock:
            try:
                appended = self.conversation.append_assistant(text, generation)
            except StaleCompletionDiscard as e:
                logger.warning("%s: %s", self.connection_id[:8], e)
                appended = None
            if appended:
                self._unsaved = True

        if appended is None:
            await self.emit("assistant_status", {"status": "idle"})
            return

        await self.emit("assistant_text_done", {"text": text})
        await self.emit("assistant_status", {"status": "idle"})
        if flush and self._stats is not None:
            self._stats.total_transcriptions += 1

    # ------------------------------------------------------------------
    # Stats and persistence
    # ------------------------------------------------------------------

    def stats_payload(self) -> dict[str, Any]:
        return {
            "activeConnections": self._stats.active_connections if self._stats else 0,
            "chunksReceived": self.ingest.chunks_received,
            "duration": self.ingest.duration_ms(),
            "totalTranscriptions": self._stats.total_transcriptions if self._stats else 0,
            "voskReady": self.recognizer_ready,
            "conversationState": self.conversation.state(),
            "isRecording": self.ingest.recording,
        }

    async def _stats_loop(self) -> None:
        while True:
            await asyncio.sleep(self.stats_interval)
            await self.emit("server_stats", self.stats_payload())

    def snapshot(self) -> TranscriptRecord:
        conv = self.conversation
        return TranscriptRecord(
            connection_id=self.connection_id,
            started_at=int(self.created_at * 1000),
            ended_at=int(time.time() * 1000),
            dialog=conv.messages(),
            chunks_received=self.ingest.chunks_received,
            conversation_active=conv.active,
            audio_file_path=str(self.audio_file_path) if self.audio_file_path else None,
            message_count=conv.message_count,
        )

    async def _persist(self) -> Optional[Path]:
        """Write a transcript artifact. Failures are logged only."""
        record = self.snapshot()
        try:
            path = await self._repo.save_async(record)
        except PersistenceError as e:
            logger.error("Transcript not saved for %s: %s", self.connection_id[:8], e)
            return None
        self._unsaved = False
        return path

    def summary(self) -> dict[str, Any]:
        """Row for /conversations/active."""
        dialog = self.conversation.dialog
        last = dialog[-1].content if dialog else "N/A"
        return {
            "connectionId": self.connection_id,
            "messageCount": self.conversation.message_count,
            "duration": self.conversation.state()["duration"],
            "lastMessage": last,
        }
