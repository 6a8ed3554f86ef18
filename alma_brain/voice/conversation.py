"""
Conversation state machine.

Owns the dialog history, the Idle/Active phase and the rule for when
free text is buffered locally versus handed to the assistant. Holds no
I/O: the session decides when to dispatch an assistant turn based on the
Transition returned here.

States:
  Idle   --Activate(q)--> Active   dialog=[System(, User:q)], dispatch if q
  Active --Deactivate-->  Idle     dialog=[System], buffer cleared, generation+1
  Active --Reset------->  Idle     same as Deactivate
  Active --text-------->  Active   User turn appended, dispatch
  Idle   --text-------->  Idle     text appended to the user buffer
  Idle   --flush------->  Idle     buffer becomes one User turn, dispatch
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .commands import CommandKind, Phase, VoiceCommand
from .exceptions import StaleCompletionDiscard

logger = logging.getLogger("alma.voice.conversation")


@dataclass
class Turn:
    """One role-tagged dialog entry."""
    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Transition:
    """Outcome of applying a final transcript to the conversation."""
    command: VoiceCommand
    dispatch: bool = False
    generation_changed: bool = False


class Conversation:
    """Per-session dialog state."""

    def __init__(
        self,
        system_prompt: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.system_prompt = system_prompt
        self._clock = clock
        self.phase = Phase.IDLE
        self.dialog: list[Turn] = [Turn("system", system_prompt)]
        self.user_buffer = ""
        self.generation = 0
        self.started_at: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.phase is Phase.ACTIVE

    @property
    def message_count(self) -> int:
        return len(self.dialog) - 1

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply(self, text: str, command: VoiceCommand) -> Transition:
        """Apply a classified final transcript."""
        if command.kind is CommandKind.ACTIVATE:
            self.start(command.question)
            return Transition(command, dispatch=bool(command.question), generation_changed=True)

        if command.kind in (CommandKind.DEACTIVATE, CommandKind.RESET):
            self.reset()
            return Transition(command, generation_changed=True)

        text = text.strip()
        if not text:
            return Transition(command)

        if self.active:
            self.add_user_turn(text)
            return Transition(command, dispatch=True)

        self.buffer_text(text)
        return Transition(command)

    def start(self, question: str = "") -> None:
        """Enter Active with a fresh dialog, optionally seeded with a question."""
        self.phase = Phase.ACTIVE
        self.started_at = self._clock()
        self.dialog = [Turn("system", self.system_prompt)]
        self.user_buffer = ""
        # A new dialog epoch: results scheduled against the old one must not land here
        self.generation += 1
        if question:
            self.dialog.append(Turn("user", question))
        logger.info("Conversation started: %r", question or "(no initial question)")

    def reset(self) -> None:
        """Return to Idle with only the system prompt."""
        self.phase = Phase.IDLE
        self.started_at = None
        self.dialog = [Turn("system", self.system_prompt)]
        self.user_buffer = ""
        self.generation += 1
        logger.info("Conversation reset (generation=%d)", self.generation)

    def add_user_turn(self, text: str) -> None:
        self.dialog.append(Turn("user", text))
        logger.debug("User turn added: %s", text[:50])

    def buffer_text(self, text: str) -> None:
        """Space-join text onto the idle buffer."""
        text = text.strip()
        if text:
            self.user_buffer = f"{self.user_buffer} {text}" if self.user_buffer else text

    def flush(self) -> bool:
        """Move the buffered idle text into the dialog as one User turn.

        Returns True when a turn was appended and an assistant turn
        should be dispatched.
        """
        text = self.user_buffer.strip()
        self.user_buffer = ""
        if not text:
            return False
        self.add_user_turn(text)
        return True

    def append_assistant(self, text: str, generation: int) -> bool:
        """Append a finished assistant answer.

        Raises:
            StaleCompletionDiscard: if the answer belongs to an older generation

        Returns:
            True if appended, False if the conversation is not active or
            the answer is empty.
        """
        if generation != self.generation:
            raise StaleCompletionDiscard(generation, self.generation)
        if not self.active or not text.strip():
            return False
        self.dialog.append(Turn("assistant", text))
        return True

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def messages(self) -> list[dict[str, str]]:
        """Snapshot of the dialog in chat-request form."""
        return [turn.to_dict() for turn in self.dialog]

    def state(self) -> dict[str, Any]:
        duration = int((self._clock() - self.started_at) * 1000) if self.started_at else 0
        return {
            "active": self.active,
            "messageCount": self.message_count,
            "duration": duration,
            "hasHistory": self.message_count > 0,
        }
