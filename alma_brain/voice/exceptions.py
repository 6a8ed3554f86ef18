"""
Custom exceptions for the voice session layer.

Every one of these is caught at the session boundary and turned into a
session-scoped event or a log line; none of them may reach the event loop.
"""


class VoiceSessionError(Exception):
    """Base exception for all voice session errors."""

    pass


class AudioWriteError(VoiceSessionError):
    """Raised when appending frames to the recording file fails."""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Audio write to {path} failed: {cause}")


class RecognitionError(VoiceSessionError):
    """Raised when the recognizer adapter faults."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Recognizer '{operation}' failed: {cause}")


class AssistantTransportError(VoiceSessionError):
    """Raised on a non-success response or network fault from the chat service."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class StaleCompletionDiscard(VoiceSessionError):
    """Raised when an assistant completion belongs to an earlier dialog generation."""

    def __init__(self, captured: int, current: int):
        self.captured = captured
        self.current = current
        super().__init__(
            f"Discarding assistant completion from generation {captured} (current {current})"
        )


class MalformedClientMessage(VoiceSessionError):
    """Raised when a client frame cannot be parsed into a known event."""

    pass
