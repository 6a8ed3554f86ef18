"""
LLM service implementations.
"""

from typing import Optional

from .ollama import OllamaLLM

_llm: Optional[OllamaLLM] = None


def get_llm() -> OllamaLLM:
    """Return the process-wide chat client (not loaded until load() is called)."""
    global _llm
    if _llm is None:
        _llm = OllamaLLM()
    return _llm


__all__ = ["OllamaLLM", "get_llm"]
