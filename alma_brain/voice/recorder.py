"""
WAV recorder for a session's raw PCM frames.

Appends little-endian 16-bit mono frames to a WAV container. Opened on
start_recording, closed exactly once on stop or teardown.
"""

import logging
import time
import wave
from pathlib import Path

from .exceptions import AudioWriteError

logger = logging.getLogger("alma.voice.recorder")


def recording_path(audio_dir: Path, connection_id: str) -> Path:
    """Unique file name for a new recording of this connection."""
    return Path(audio_dir) / f"audio_{connection_id}_{int(time.time() * 1000)}.wav"


class AudioRecorder:
    """Writes PCM frames into a WAV file."""

    def __init__(
        self,
        path: Path,
        sample_rate: int = 16000,
        channels: int = 1,
        bit_depth: int = 16,
    ) -> None:
        self.path = Path(path)
        self.bytes_written = 0
        self._closed = False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._wav = wave.open(str(self.path), "wb")
            self._wav.setnchannels(channels)
            self._wav.setsampwidth(bit_depth // 8)
            self._wav.setframerate(sample_rate)
        except (OSError, wave.Error) as e:
            raise AudioWriteError(self.path, e) from e
        logger.info("Recording to %s", self.path)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, frame: bytes) -> None:
        if self._closed:
            raise AudioWriteError(self.path, ValueError("recorder closed"))
        try:
            self._wav.writeframes(frame)
        except (OSError, wave.Error) as e:
            raise AudioWriteError(self.path, e) from e
        self.bytes_written += len(frame)

    def close(self) -> None:
        """Finalize the WAV header and close the file. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            self._wav.close()
            logger.info("Recording closed: %s (%d bytes)", self.path, self.bytes_written)
        except (OSError, wave.Error) as e:
            logger.error("Error closing recording %s: %s", self.path, e)
