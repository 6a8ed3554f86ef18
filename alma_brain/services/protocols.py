"""
Protocol definitions for external model services.

The voice session talks to the chat backend only through ChatService,
so the backend can be swapped (or faked in tests) without touching the
session code.
"""

from typing import AsyncIterator, Protocol, runtime_checkable


@runtime_checkable
class ChatService(Protocol):
    """Protocol for streaming chat (generative text) services."""

    @property
    def is_loaded(self) -> bool:
        ...

    def chat_stream_async(
        self,
        messages: list[dict[str, str]],
    ) -> AsyncIterator[str]:
        """
        Stream one assistant answer for the given dialog.

        Yields text fragments in order; concatenated they form the full
        answer. The iterator finishes when the service sends its
        completion marker.

        Raises:
            AssistantTransportError: on a non-success response or network fault
        """
        ...
