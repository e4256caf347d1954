"""
OpenAI Provider Implementation

Cloud inference via the OpenAI Chat Completions API. Groq exposes the same
wire protocol, so GroqProvider reuses this adapter with a different base URL.

Usage:
    provider = OpenAIProvider(model="gpt-4o-mini", api_key="sk-...")
    async for chunk in provider.stream_complete([Message("user", "Hello")]):
        print(chunk.delta, end="")
"""

import logging
import os
from typing import Any, AsyncIterator, Dict, Optional, Sequence

from openai import AsyncOpenAI

from .base import (
    BaseProvider,
    CompletionResult,
    GenerationConfig,
    Message,
    ProviderFactory,
    ProviderType,
    StreamChunk,
    StreamTimer,
)

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class OpenAIProvider(BaseProvider):
    """
    OpenAI provider for chat completions.

    Requires OPENAI_API_KEY environment variable or explicit api_key.
    """

    api_key_env = "OPENAI_API_KEY"
    base_url: Optional[str] = None

    def __init__(
        self,
        model: str,
        config: Optional[GenerationConfig] = None,
        timeout: float = 120.0,
        api_key: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            model: Model name (e.g., "gpt-4o-mini").
            config: Generation configuration.
            timeout: Request timeout in seconds.
            api_key: API key (defaults to the provider's env var).
            client: Pre-built client, mainly for tests.
        """
        super().__init__(model, config, timeout)
        self._api_key = api_key or os.getenv(self.api_key_env)
        self._client = client

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OPENAI

    def _ensure_client(self) -> AsyncOpenAI:
        """Lazily initialize the async client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    def _request_kwargs(
        self, messages: Sequence[Message], cfg: GenerationConfig
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.api_model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
            "top_p": cfg.top_p,
        }
        if cfg.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> CompletionResult:
        """Generate a full chat completion."""
        client = self._ensure_client()
        cfg = config or self.config

        timer = StreamTimer()
        response = await client.chat.completions.create(
            **self._request_kwargs(messages, cfg)
        )
        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        timer.on_delta(text)
        usage = getattr(response, "usage", None)
        timer.set_token_count(getattr(usage, "completion_tokens", None))
        self._request_count += 1

        return CompletionResult(
            text=text,
            model=self.model,
            timing=timer.finish(),
            completion_tokens=timer.total_tokens,
        )

    async def stream_complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion, one content delta per chunk."""
        client = self._ensure_client()
        cfg = config or self.config

        timer = StreamTimer()
        stream = await client.chat.completions.create(
            **self._request_kwargs(messages, cfg),
            stream=True,
            stream_options={"include_usage": True},
        )
        self._request_count += 1

        async for chunk in stream:
            usage = getattr(chunk, "usage", None)
            if usage is not None:
                timer.set_token_count(getattr(usage, "completion_tokens", None))
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content or ""
            if delta:
                timer.on_delta(delta)
                yield StreamChunk(delta=delta)

        timing = timer.finish()
        logger.debug(
            f"{self.model} streamed {timing.streaming.total_tokens} tokens "
            f"in {timing.duration:.0f}ms"
        )
        yield StreamChunk(timing=timing)


class GroqProvider(OpenAIProvider):
    """Groq-hosted Llama models through the OpenAI-compatible endpoint."""

    api_key_env = "GROQ_API_KEY"
    base_url = GROQ_BASE_URL

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GROQ


# Register with factory
ProviderFactory.register("openai", OpenAIProvider)
ProviderFactory.register("groq", GroqProvider)
