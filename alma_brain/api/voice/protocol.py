"""
Client frame parsing for the voice WebSocket.

Text frames are JSON envelopes {"event": name, "data": {...}}. Binary
frames are raw little-endian PCM16 audio and stand for an audio_chunk.
"""

import json
from typing import Any

from ...voice.exceptions import MalformedClientMessage
from ...voice.ingest import samples_to_bytes
from ...voice.session import COMMANDS


def parse_client_message(message: dict[str, Any]) -> tuple[str, Any]:
    """
    Turn one ASGI websocket.receive message into (event, data).

    audio_chunk data is returned as PCM bytes; command data as a dict.

    Raises:
        MalformedClientMessage: if the frame is not a known event
    """
    raw = message.get("bytes")
    if raw:
        if len(raw) % 2:
            raise MalformedClientMessage("Binary audio frame has an odd byte count")
        return "audio_chunk", raw

    text = message.get("text")
    if not text:
        raise MalformedClientMessage("Empty frame")

    try:
        envelope = json.loads(text)
    except json.JSONDecodeError:
        raise MalformedClientMessage("Invalid JSON")

    if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
        raise MalformedClientMessage("Frame must be an object with an 'event' string")

    event = envelope["event"]
    data = envelope.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedClientMessage(f"'{event}' data must be an object")

    if event == "audio_chunk":
        # "chunk" is what older clients send
        samples = data.get("samples", data.get("chunk"))
        return event, samples_to_bytes(samples)

    if event not in COMMANDS:
        raise MalformedClientMessage(f"Unknown event: {event}")
    return event, data
