"""
External model services for ALMA.

This module provides:
- Protocol definitions for chat services
- The Ollama streaming chat client
"""

from .protocols import ChatService
from .llm import OllamaLLM, get_llm

__all__ = [
    "ChatService",
    "OllamaLLM",
    "get_llm",
]
