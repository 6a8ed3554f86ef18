"""
Ollama LLM Backend.

Uses Ollama's HTTP chat API with streaming enabled. The response is
newline-delimited JSON, one object per fragment, the last one carrying
"done": true.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from ...config import settings
from ...voice.exceptions import AssistantTransportError

logger = logging.getLogger("alma.llm.ollama")


class OllamaLLM:
    """Streaming chat client for Ollama's /api/chat."""

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        timeout: float | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize Ollama LLM.

        Args:
            model: Ollama model name (e.g., "qwen2.5:7b-instruct")
            base_url: Ollama API base URL
            max_tokens: Max tokens per answer (Ollama num_predict)
            temperature: Sampling temperature
            top_p: Nucleus sampling
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        cfg = settings.llm
        self.model = model or cfg.model
        self.base_url = (base_url or cfg.base_url).rstrip("/")
        self.max_tokens = max_tokens or cfg.max_tokens
        self.temperature = cfg.temperature if temperature is None else temperature
        self.top_p = cfg.top_p if top_p is None else top_p
        self._timeout = float(timeout or cfg.timeout)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def load(self) -> None:
        """Initialize the HTTP client."""
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        logger.info("Ollama LLM initialized: model=%s, url=%s", self.model, self.base_url)

    async def unload(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Ollama LLM unloaded")

    @property
    def is_loaded(self) -> bool:
        return self._client is not None

    def build_payload(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "stream": True,
            "options": {
                "num_predict": self.max_tokens,
                "temperature": self.temperature,
                "top_p": self.top_p,
            },
        }

    async def chat_stream_async(
        self,
        messages: list[dict[str, str]],
    ) -> AsyncIterator[str]:
        """
        Async streaming chat completion - yields fragments as generated.

        Args:
            messages: Full ordered dialog as role/content dicts

        Yields:
            Text fragments as they arrive

        Raises:
            AssistantTransportError: non-200 status, network or stream fault,
                or the stream ending without a completion marker
        """
        if not self._client:
            raise AssistantTransportError("Ollama LLM not loaded")

        payload = self.build_payload(messages)
        done = False
        try:
            async with self._client.stream(
                "POST",
                f"{self.base_url}/api/chat",
                json=payload,
            ) as response:
                if response.status_code != httpx.codes.OK:
                    await response.aread()
                    raise AssistantTransportError(
                        f"LLM error: {response.status_code} {response.reason_phrase}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping unparseable stream line: %r", line[:80])
                        continue
                    if not isinstance(data, dict):
                        logger.debug("Skipping non-object stream line: %r", line[:80])
                        continue
                    message = data.get("message")
                    content = message.get("content", "") if isinstance(message, dict) else ""
                    if content and isinstance(content, str):
                        yield content
                    if data.get("done", False):
                        done = True
                        break
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.error("Ollama streaming chat error: %s", e)
            raise AssistantTransportError(f"LLM request failed: {e}") from e

        if not done:
            raise AssistantTransportError("LLM stream ended before completion")
