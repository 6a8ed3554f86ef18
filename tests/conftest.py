"""
Shared fakes and fixtures for the ALMA test suite.

No test loads a Vosk model or reaches an Ollama server: the recognizer
and the chat service are replaced by the scripted fakes below.
"""

import asyncio
from typing import Any, Optional

import pytest
from fastapi import FastAPI

from alma_brain.voice.exceptions import RecognitionError
from alma_brain.voice.recognizer import RecognitionResult


def pcm(n_samples: int = 4096, value: int = 0) -> bytes:
    """A frame of n_samples little-endian int16 samples."""
    return int(value).to_bytes(2, "little", signed=True) * n_samples


class FakeRecognizer:
    """Scripted recognizer.

    Each accept() consumes one script step:
        None                      -> no boundary, empty partial
        ("partial", text)         -> no boundary, partial text
        ("final", text[, conf])   -> boundary, final result
        ("error",)                -> raises RecognitionError
    """

    def __init__(self, script=None, final: str = ""):
        self.script = list(script or [])
        self.final = final
        self.frames: list[bytes] = []
        self.close_calls = 0
        self.final_calls = 0
        self._step = None

    def accept(self, frame: bytes) -> bool:
        self.frames.append(bytes(frame))
        self._step = self.script.pop(0) if self.script else None
        if self._step and self._step[0] == "error":
            raise RecognitionError("accept", RuntimeError("engine fault"))
        return bool(self._step and self._step[0] == "final")

    def result(self) -> RecognitionResult:
        text = self._step[1]
        confidence = self._step[2] if len(self._step) > 2 else 0.0
        return RecognitionResult(text, confidence)

    def partial_result(self) -> str:
        if self._step and self._step[0] == "partial":
            return self._step[1]
        return ""

    def final_result(self) -> RecognitionResult:
        self.final_calls += 1
        text, self.final = self.final, ""
        return RecognitionResult(text, 0.0)

    def close(self) -> None:
        self.close_calls += 1


class FakeChat:
    """Chat service yielding canned fragments.

    If `gate` is set, each stream waits on it before yielding.
    """

    def __init__(self, replies=None, gate: Optional[asyncio.Event] = None, error: Exception = None):
        self.replies = list(replies or ["Hola", ", ", "¿cómo está?"])
        self.gate = gate
        self.error = error
        self.requests: list[list[dict[str, str]]] = []

    @property
    def is_loaded(self) -> bool:
        return True

    async def chat_stream_async(self, messages):
        self.requests.append([dict(m) for m in messages])
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        for part in self.replies:
            yield part


class EventLog:
    """Emit callable that records (event, data) pairs."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, event: str, data: dict[str, Any]) -> None:
        self.events.append((event, data))

    def named(self, name: str) -> list[dict[str, Any]]:
        return [data for event, data in self.events if event == name]

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


class FakeEngine:
    """Stand-in for RecognizerEngine."""

    def __init__(self, recognizer_factory=None, ready: bool = True):
        self._factory = recognizer_factory or FakeRecognizer
        self.is_ready = ready
        self.opened: list[FakeRecognizer] = []

    def open(self):
        if not self.is_ready:
            return None
        rec = self._factory()
        self.opened.append(rec)
        return rec


async def wait_assistant(session) -> None:
    """Wait for every scheduled assistant turn of a session to finish."""
    while session._assistant_tasks:
        await asyncio.gather(*list(session._assistant_tasks), return_exceptions=True)


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def api_app():
    """App with the ALMA routers but no model-loading lifespan."""
    from alma_brain.api import router

    app = FastAPI()
    app.include_router(router)
    return app
