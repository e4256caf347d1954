"""
Google Gemini Provider Implementation

Cloud inference via the google-genai SDK (async surface).

Usage:
    provider = GoogleProvider(model="gemini-1.5-flash")
    result = await provider.complete([Message("user", "Explain quantum computing")])
"""

import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from google import genai
from google.genai import types

from utils.exceptions import ConfigError

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


class GoogleProvider(BaseProvider):
    """
    Google Gemini provider.

    Requires GOOGLE_API_KEY environment variable or explicit api_key.
    """

    def __init__(
        self,
        model: str,
        config: Optional[GenerationConfig] = None,
        timeout: float = 120.0,
        api_key: Optional[str] = None,
        client: Any = None,
    ):
        """
        Args:
            model: Gemini model name (e.g., "gemini-2.0-flash-exp").
            config: Generation configuration.
            timeout: Request timeout in seconds.
            api_key: Google API key (defaults to GOOGLE_API_KEY env var).
            client: Pre-built genai.Client, mainly for tests.
        """
        super().__init__(model, config, timeout)
        self._api_key = api_key or os.getenv("GOOGLE_API_KEY")
        self._client = client

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GOOGLE

    def _ensure_client(self) -> Any:
        """Lazily initialize the Google GenAI client."""
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ConfigError(
                "Google API key required. Set GOOGLE_API_KEY env var or pass api_key."
            )
        self._client = genai.Client(
            api_key=self._api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
        )
        return self._client

    def _build_request(
        self, messages: Sequence[Message], cfg: GenerationConfig
    ) -> Tuple[List[Dict[str, Any]], types.GenerateContentConfig]:
        # Gemini uses "user" and "model" roles; system goes in the config
        contents: List[Dict[str, Any]] = []
        system_instruction = None
        for msg in messages:
            if msg.role == "system":
                system_instruction = msg.content
            elif msg.role == "assistant":
                contents.append({"role": "model", "parts": [{"text": msg.content}]})
            else:
                contents.append({"role": "user", "parts": [{"text": msg.content}]})

        generation_config = types.GenerateContentConfig(
            temperature=cfg.temperature,
            max_output_tokens=cfg.max_tokens,
            top_p=cfg.top_p,
            system_instruction=system_instruction,
            response_mime_type="application/json" if cfg.json_mode else None,
        )
        return contents, generation_config

    async def complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> CompletionResult:
        """Generate a full response."""
        client = self._ensure_client()
        contents, generation_config = self._build_request(messages, config or self.config)

        timer = StreamTimer()
        response = await client.aio.models.generate_content(
            model=self.api_model,
            contents=contents,
            config=generation_config,
        )
        text = response.text or ""
        timer.on_delta(text)
        usage = getattr(response, "usage_metadata", None)
        timer.set_token_count(getattr(usage, "candidates_token_count", None))
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
        """Stream a response chunk by chunk."""
        client = self._ensure_client()
        contents, generation_config = self._build_request(messages, config or self.config)

        timer = StreamTimer()
        stream = await client.aio.models.generate_content_stream(
            model=self.api_model,
            contents=contents,
            config=generation_config,
        )
        self._request_count += 1

        async for chunk in stream:
            usage = getattr(chunk, "usage_metadata", None)
            if usage is not None:
                timer.set_token_count(getattr(usage, "candidates_token_count", None))
            delta = chunk.text or ""
            if delta:
                timer.on_delta(delta)
                yield StreamChunk(delta=delta)

        yield StreamChunk(timing=timer.finish())


# Register with factory
ProviderFactory.register("google", GoogleProvider)
