"""
Ollama Provider Implementation

Local inference via the Ollama API. Model identifiers carry an "ollama/"
prefix for routing, which is stripped before the request is sent.

Usage:
    provider = OllamaProvider(model="ollama/qwen2.5:7b")
    async for chunk in provider.stream_complete([Message("user", "Hi")]):
        print(chunk.delta, end="")
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional, Sequence

from ollama import AsyncClient

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

MODEL_PREFIX = "ollama/"


class OllamaProvider(BaseProvider):
    """
    Ollama provider for local inference.

    Connects to Ollama server (default: http://localhost:11434).
    """

    def __init__(
        self,
        model: str,
        config: Optional[GenerationConfig] = None,
        timeout: float = 120.0,
        host: str = "http://localhost:11434",
        client: Optional[AsyncClient] = None,
    ):
        """
        Args:
            model: Identifier, e.g. "ollama/llama3.2:3b".
            config: Generation configuration.
            timeout: Request timeout in seconds.
            host: Ollama server URL.
            client: Pre-built client, mainly for tests.
        """
        super().__init__(model, config, timeout)
        self.host = host
        self._client = client or AsyncClient(host=host, timeout=timeout)

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OLLAMA

    @property
    def api_model(self) -> str:
        if self.model.startswith(MODEL_PREFIX):
            return self.model[len(MODEL_PREFIX):]
        return self.model

    def _options(self, cfg: GenerationConfig) -> Dict[str, Any]:
        return {
            "temperature": cfg.temperature,
            "num_predict": cfg.max_tokens,
            "top_p": cfg.top_p,
        }

    async def complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> CompletionResult:
        """Generate a full chat response."""
        cfg = config or self.config
        timer = StreamTimer()
        response = await self._client.chat(
            model=self.api_model,
            messages=[{"role": m.role, "content": m.content} for m in messages],
            options=self._options(cfg),
            format="json" if cfg.json_mode else None,
            stream=False,
        )
        text = response["message"]["content"] or ""
        timer.on_delta(text)
        timer.set_token_count(response.get("eval_count"))
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
        """Stream a chat response."""
        cfg = config or self.config
        timer = StreamTimer()
        stream = await self._client.chat(
            model=self.api_model,
            messages=[{"role": m.role, "content": m.content} for m in messages],
            options=self._options(cfg),
            format="json" if cfg.json_mode else None,
            stream=True,
        )
        self._request_count += 1

        async for part in stream:
            delta = part["message"]["content"] or ""
            if delta:
                timer.on_delta(delta)
                yield StreamChunk(delta=delta)
            if part.get("done"):
                # Final part carries eval_count (completion tokens)
                timer.set_token_count(part.get("eval_count"))

        yield StreamChunk(timing=timer.finish())


# Register with factory
ProviderFactory.register("ollama", OllamaProvider)
