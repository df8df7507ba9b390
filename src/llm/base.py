"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class BaseLLMClient(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
    ) -> str:
        """Return the first chat-style completion candidate."""
