"""
Tests for the conversation state machine.

Covers:
1. Activate/Deactivate/Reset transitions and the generation counter
2. Idle buffering and explicit flush
3. Assistant appends: stale generation, inactive phase, empty text
4. state() view
"""

import pytest

from alma_brain.voice.commands import NO_COMMAND, CommandKind, VoiceCommand
from alma_brain.voice.conversation import Conversation
from alma_brain.voice.exceptions import StaleCompletionDiscard

SYSTEM = "eres alma"


def _roles(conv):
    return [t.role for t in conv.dialog]


class TestTransitions:
    """Idle/Active transitions."""

    def test_initial_state(self):
        conv = Conversation(SYSTEM)
        assert not conv.active
        assert conv.messages() == [{"role": "system", "content": SYSTEM}]
        assert conv.message_count == 0
        assert conv.generation == 0

    def test_activate_with_question_dispatches(self):
        conv = Conversation(SYSTEM)
        t = conv.apply("hola alma qué hora es",
                       VoiceCommand(CommandKind.ACTIVATE, question="qué hora es"))
        assert conv.active
        assert t.dispatch and t.generation_changed
        assert conv.messages() == [
            {"role": "system", "content": SYSTEM},
            {"role": "user", "content": "qué hora es"},
        ]
        assert conv.message_count == 1

    def test_activate_without_question_does_not_dispatch(self):
        conv = Conversation(SYSTEM)
        t = conv.apply("hola alma", VoiceCommand(CommandKind.ACTIVATE))
        assert conv.active
        assert not t.dispatch
        assert _roles(conv) == ["system"]

    def test_activate_discards_idle_buffer(self):
        conv = Conversation(SYSTEM)
        conv.apply("algo previo", NO_COMMAND)
        conv.apply("hola alma", VoiceCommand(CommandKind.ACTIVATE))
        assert conv.user_buffer == ""

    @pytest.mark.parametrize("kind", [CommandKind.DEACTIVATE, CommandKind.RESET])
    def test_deactivate_and_reset(self, kind):
        conv = Conversation(SYSTEM)
        conv.apply("hola alma hola", VoiceCommand(CommandKind.ACTIVATE, question="hola"))
        conv.append_assistant("buenas", conv.generation)
        before = conv.generation

        t = conv.apply("gracias alma", VoiceCommand(kind))

        assert not conv.active
        assert t.generation_changed and not t.dispatch
        assert _roles(conv) == ["system"]
        assert conv.message_count == 0
        assert conv.generation == before + 1
        assert conv.started_at is None

    def test_active_text_appends_and_dispatches(self):
        conv = Conversation(SYSTEM)
        conv.start()
        t = conv.apply("dos mil veinticinco", NO_COMMAND)
        assert t.dispatch
        assert conv.dialog[-1].content == "dos mil veinticinco"

    def test_generation_is_monotonic(self):
        conv = Conversation(SYSTEM)
        seen = [conv.generation]
        for _ in range(3):
            conv.start()
            seen.append(conv.generation)
            conv.reset()
            seen.append(conv.generation)
        assert seen == sorted(set(seen))


class TestIdleBuffer:
    """Free text while Idle is buffered until flushed."""

    def test_idle_text_is_space_joined(self):
        conv = Conversation(SYSTEM)
        assert not conv.apply("uno", NO_COMMAND).dispatch
        conv.apply(" dos ", NO_COMMAND)
        assert conv.user_buffer == "uno dos"
        assert _roles(conv) == ["system"]

    def test_flush_appends_one_user_turn(self):
        conv = Conversation(SYSTEM)
        conv.apply("uno", NO_COMMAND)
        conv.apply("dos", NO_COMMAND)
        assert conv.flush() is True
        assert conv.messages()[-1] == {"role": "user", "content": "uno dos"}
        assert conv.user_buffer == ""
        assert not conv.active

    def test_flush_empty_buffer(self):
        conv = Conversation(SYSTEM)
        assert conv.flush() is False
        assert _roles(conv) == ["system"]


class TestAssistantAppend:
    """append_assistant guards."""

    def test_appends_when_active_and_current(self):
        conv = Conversation(SYSTEM)
        conv.start("hola")
        assert conv.append_assistant("buenas", conv.generation) is True
        assert conv.dialog[-1].role == "assistant"
        assert conv.message_count == 2

    def test_stale_generation_raises(self):
        conv = Conversation(SYSTEM)
        conv.start("hola")
        gen = conv.generation
        conv.reset()
        with pytest.raises(StaleCompletionDiscard) as exc:
            conv.append_assistant("tarde", gen)
        assert exc.value.captured == gen
        assert _roles(conv) == ["system"]

    def test_not_appended_when_idle(self):
        conv = Conversation(SYSTEM)
        assert conv.append_assistant("respuesta", conv.generation) is False
        assert _roles(conv) == ["system"]

    def test_empty_answer_not_appended(self):
        conv = Conversation(SYSTEM)
        conv.start("hola")
        assert conv.append_assistant("   ", conv.generation) is False


class TestState:
    """state() payload."""

    def test_duration_uses_clock(self):
        now = [100.0]
        conv = Conversation(SYSTEM, clock=lambda: now[0])
        conv.start("hola")
        now[0] = 102.5
        state = conv.state()
        assert state == {
            "active": True,
            "messageCount": 1,
            "duration": 2500,
            "hasHistory": True,
        }

    def test_idle_state(self):
        conv = Conversation(SYSTEM)
        assert conv.state() == {
            "active": False,
            "messageCount": 0,
            "duration": 0,
            "hasHistory": False,
        }
