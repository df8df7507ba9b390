"""OpenAI/Azure OpenAI client wrapper."""

from __future__ import annotations

from collections.abc import Iterable

from openai import AsyncOpenAI

from config.settings import get_settings
from llm.base import BaseLLMClient


class OpenAIClient(BaseLLMClient):
    """Wrapper for OpenAI or Azure OpenAI Chat Completion API."""

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.llm_api_key:
            raise ValueError("LLM API key must be configured for OpenAI client.")

        self._client = AsyncOpenAI(
            api_key=settings.llm_api_key,
            base_url=settings.llm_endpoint or None,
        )
        self._model = settings.llm_model

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
    ) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=list(messages),
            temperature=temperature,
            max_tokens=512,
        )
        if not response.choices:
            raise RuntimeError("LLM response contains no choices.")
        return response.choices[0].message.content or ""
