"""
Speech recognizer adapter.

Wraps a Vosk model and per-session KaldiRecognizer instances behind a
small interface: accept a frame, read the partial or final hypothesis,
force a final result, close. The engine (model) is shared read-only;
each session opens its own recognizer and never shares it.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from ..config import settings
from .exceptions import RecognitionError

logger = logging.getLogger("alma.voice.recognizer")


@dataclass(frozen=True)
class RecognitionResult:
    """A final hypothesis. Confidence is whatever the engine reported."""
    text: str
    confidence: float = 0.0


@runtime_checkable
class Recognizer(Protocol):
    """Per-session streaming recognizer."""

    def accept(self, frame: bytes) -> bool:
        """Feed one frame. True when an utterance boundary was reached."""
        ...

    def result(self) -> RecognitionResult:
        """Final hypothesis for the utterance that just ended."""
        ...

    def partial_result(self) -> str:
        """In-progress hypothesis for the current utterance."""
        ...

    def final_result(self) -> RecognitionResult:
        """Force out whatever has been recognized so far."""
        ...

    def close(self) -> None:
        """Release engine resources."""
        ...


def _parse(raw: str, key: str) -> dict[str, Any]:
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError:
        logger.debug("Unparseable recognizer output for %s: %r", key, raw)
        return {}
    return data if isinstance(data, dict) else {}


def _to_result(data: dict[str, Any]) -> RecognitionResult:
    confidence = data.get("confidence", 0) or 0
    return RecognitionResult(text=(data.get("text") or "").strip(), confidence=float(confidence))


class VoskRecognizer:
    """Recognizer backed by a vosk.KaldiRecognizer."""

    def __init__(self, recognizer: Any) -> None:
        self._rec = recognizer

    @property
    def closed(self) -> bool:
        return self._rec is None

    def _require(self, operation: str) -> Any:
        if self._rec is None:
            raise RecognitionError(operation, RuntimeError("recognizer closed"))
        return self._rec

    def accept(self, frame: bytes) -> bool:
        rec = self._require("accept")
        try:
            return bool(rec.AcceptWaveform(frame))
        except Exception as e:
            raise RecognitionError("accept", e) from e

    def result(self) -> RecognitionResult:
        rec = self._require("result")
        try:
            return _to_result(_parse(rec.Result(), "result"))
        except Exception as e:
            raise RecognitionError("result", e) from e

    def partial_result(self) -> str:
        rec = self._require("partial_result")
        try:
            data = _parse(rec.PartialResult(), "partial")
        except Exception as e:
            raise RecognitionError("partial_result", e) from e
        return (data.get("partial") or "").strip()

    def final_result(self) -> RecognitionResult:
        rec = self._require("final_result")
        try:
            return _to_result(_parse(rec.FinalResult(), "final"))
        except Exception as e:
            raise RecognitionError("final_result", e) from e

    def close(self) -> None:
        # Dropping the last reference frees the native recognizer
        self._rec = None


class RecognizerEngine:
    """Loads the Vosk model once and opens recognizers against it.

    Usage:
        engine = RecognizerEngine(model_path)
        engine.load()
        rec = engine.open()
    """

    def __init__(
        self,
        model_path: Path | str | None = None,
        sample_rate: int | None = None,
        words: bool | None = None,
    ) -> None:
        self.model_path = Path(model_path or settings.asr.model_path)
        self.sample_rate = sample_rate or settings.audio.sample_rate
        self.words = settings.asr.words if words is None else words
        self._vosk: Any = None
        self._model: Any = None

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    def load(self) -> bool:
        """Load the model. Returns False (transcription disabled) on failure."""
        if self._model is not None:
            return True
        if not self.model_path.exists():
            logger.warning(
                "Vosk model not found at %s; run scripts/download_model.py", self.model_path,
            )
            return False
        try:
            import vosk

            vosk.SetLogLevel(-1)
            logger.info("Loading Vosk model from %s", self.model_path)
            self._model = vosk.Model(str(self.model_path))
            self._vosk = vosk
            logger.info("Vosk model loaded")
            return True
        except Exception as e:
            logger.error("Failed to load Vosk model: %s", e)
            self._model = None
            return False

    def open(self) -> Optional[Recognizer]:
        """Open a recognizer for one session, or None if unavailable."""
        if self._model is None:
            return None
        try:
            rec = self._vosk.KaldiRecognizer(self._model, self.sample_rate)
            if self.words:
                rec.SetWords(True)
            return VoskRecognizer(rec)
        except Exception as e:
            logger.error("Failed to create recognizer: %s", e)
            return None

    def unload(self) -> None:
        self._model = None
        self._vosk = None


_engine: Optional[RecognizerEngine] = None


def get_recognizer_engine() -> RecognizerEngine:
    """Return the process-wide recognizer engine."""
    global _engine
    if _engine is None:
        _engine = RecognizerEngine()
    return _engine
