"""
Voice command classifier.

Maps a finalized transcript and the current conversation phase to a
command variant. Pure: no session access, no side effects. The session
applies the resulting transition.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class Phase(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class CommandKind(str, Enum):
    ACTIVATE = "start_conversation"
    DEACTIVATE = "stop_conversation"
    RESET = "reset_conversation"
    NONE = "none"


@dataclass(frozen=True)
class VoiceCommand:
    """Result of classifying one final transcript."""
    kind: CommandKind
    question: str = ""  # ACTIVATE only: text after the wake phrase
    phrase: str = ""  # the phrase that matched, if any

    @property
    def is_command(self) -> bool:
        return self.kind is not CommandKind.NONE


NO_COMMAND = VoiceCommand(CommandKind.NONE)


def _first_match(text: str, phrases: Iterable[str]) -> str | None:
    for phrase in phrases:
        if phrase and phrase.lower() in text:
            return phrase
    return None


def classify(
    text: str,
    phase: Phase,
    wake_phrase: str,
    stop_phrases: Iterable[str],
    reset_phrases: Iterable[str],
) -> VoiceCommand:
    """
    Classify a final transcript.

    Matching is a case-insensitive substring test. Deactivation phrases
    are checked before reset phrases. Text that is not a command, in
    either phase, yields NO_COMMAND; what happens to it depends on the
    phase and is decided by the conversation.

    Args:
        text: Final transcript text
        phase: Current conversation phase
        wake_phrase: Phrase that activates an idle conversation
        stop_phrases: Phrases that deactivate an active conversation
        reset_phrases: Phrases that reset an active conversation

    Returns:
        The classified command
    """
    normalized = text.lower().strip()
    if not normalized:
        return NO_COMMAND

    if phase is Phase.IDLE:
        wake = wake_phrase.lower()
        if wake and wake in normalized:
            question = normalized.split(wake, 1)[1].strip()
            return VoiceCommand(CommandKind.ACTIVATE, question=question, phrase=wake_phrase)
        return NO_COMMAND

    stop = _first_match(normalized, stop_phrases)
    if stop is not None:
        return VoiceCommand(CommandKind.DEACTIVATE, phrase=stop)

    reset = _first_match(normalized, reset_phrases)
    if reset is not None:
        return VoiceCommand(CommandKind.RESET, phrase=reset)

    return NO_COMMAND
