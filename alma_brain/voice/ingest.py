"""
Audio ingest pipeline.

Per-connection fan-in for audio frames: each frame is appended to the
recording (when one is open and has not failed) and then forwarded to
the recognizer. Callers must feed frames from a single task; order of
calls is the order frames reach both consumers.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .exceptions import AudioWriteError, MalformedClientMessage, RecognitionError
from .recognizer import Recognizer
from .recorder import AudioRecorder

logger = logging.getLogger("alma.voice.ingest")


@dataclass(frozen=True)
class RecognitionEvent:
    """A transcription to relay to the client."""
    text: str
    is_final: bool
    confidence: float = 0.0


@dataclass
class IngestResult:
    """What happened to one frame."""
    recognition: Optional[RecognitionEvent] = None
    write_error: Optional[AudioWriteError] = None
    recognition_error: Optional[RecognitionError] = None
    ack_due: bool = False


def samples_to_bytes(samples) -> bytes:
    """Pack a list of int16 sample values as little-endian PCM bytes."""
    if not isinstance(samples, (list, tuple)):
        raise MalformedClientMessage("audio_chunk.samples must be a list of int16 values")
    try:
        arr = np.asarray(samples, dtype=np.int64)
    except (TypeError, ValueError) as e:
        raise MalformedClientMessage(f"audio_chunk.samples is not numeric: {e}") from e
    if arr.ndim != 1:
        raise MalformedClientMessage("audio_chunk.samples must be a flat list")
    if arr.size and (arr.min() < -32768 or arr.max() > 32767):
        raise MalformedClientMessage("audio_chunk.samples out of int16 range")
    return arr.astype("<i2").tobytes()


class AudioIngest:
    """Frame pipeline for one session."""

    def __init__(
        self,
        connection_id: str,
        recognizer: Optional[Recognizer] = None,
        ack_every: int = 10,
        log_every: int = 20,
    ) -> None:
        self.connection_id = connection_id
        self._recognizer = recognizer
        self.ack_every = ack_every
        self.log_every = log_every
        self.chunks_received = 0
        self.total_bytes = 0
        self.first_chunk_at: Optional[float] = None
        self._recorder: Optional[AudioRecorder] = None
        self.recording_errored = False
        self._last_partial = ""

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    @property
    def recording(self) -> bool:
        return self._recorder is not None

    @property
    def recorder(self) -> Optional[AudioRecorder]:
        return self._recorder

    @property
    def recorded_bytes(self) -> int:
        return self._recorder.bytes_written if self._recorder else 0

    def start_recording(self, recorder: AudioRecorder) -> None:
        if self._recorder is not None:
            raise RuntimeError("recording already active")
        self._recorder = recorder
        self.recording_errored = False

    def stop_recording(self) -> Optional[AudioRecorder]:
        """Close and detach the current recording, if any."""
        recorder, self._recorder = self._recorder, None
        if recorder is not None:
            recorder.close()
        return recorder

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------

    @property
    def recognizing(self) -> bool:
        return self._recognizer is not None

    def _recognize(self, frame: bytes) -> Optional[RecognitionEvent]:
        rec = self._recognizer
        if rec.accept(frame):
            result = rec.result()
            if result.text:
                return RecognitionEvent(result.text, True, result.confidence)
            return None
        partial = rec.partial_result()
        return RecognitionEvent(partial, False) if partial else None

    def _disable_recognition(self, error: RecognitionError) -> None:
        logger.error(
            "Recognition disabled for %s: %s", self.connection_id[:8], error,
        )
        self.close_recognizer()

    async def finalize(self) -> Optional[RecognitionEvent]:
        """Force the recognizer to emit what it has so far."""
        if self._recognizer is None:
            return None
        try:
            result = await asyncio.to_thread(self._recognizer.final_result)
        except RecognitionError as e:
            self._disable_recognition(e)
            return None
        self._last_partial = ""
        if not result.text:
            return None
        return RecognitionEvent(result.text, True, result.confidence)

    def close_recognizer(self) -> None:
        """Free the recognizer. Later calls are no-ops."""
        rec, self._recognizer = self._recognizer, None
        if rec is not None:
            rec.close()

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    async def process(self, frame: bytes) -> IngestResult:
        """Record and recognize one frame."""
        out = IngestResult()
        if self.first_chunk_at is None:
            self.first_chunk_at = time.time()
        self.chunks_received += 1
        self.total_bytes += len(frame)

        if self._recorder is not None and not self.recording_errored:
            try:
                self._recorder.write(frame)
            except AudioWriteError as e:
                self.recording_errored = True
                out.write_error = e
                logger.error("Recording disabled for %s: %s", self.connection_id[:8], e)

        if self._recognizer is not None:
            try:
                event = await asyncio.to_thread(self._recognize, frame)
            except RecognitionError as e:
                self._disable_recognition(e)
                out.recognition_error = e
                event = None
            if event is not None:
                if event.is_final:
                    self._last_partial = ""
                    out.recognition = event
                elif event.text != self._last_partial:
                    self._last_partial = event.text
                    out.recognition = event

        if self.chunks_received % self.log_every == 0:
            logger.info(
                "%s: %d chunks, %ds, recording=%s",
                self.connection_id[:8], self.chunks_received,
                int(self.duration_ms() / 1000), self.recording,
            )
        out.ack_due = self.chunks_received % self.ack_every == 0
        return out

    def duration_ms(self) -> int:
        if self.first_chunk_at is None:
            return 0
        return int((time.time() - self.first_chunk_at) * 1000)
