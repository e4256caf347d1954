"""
Embedding backends for semantic similarity.

Usage:
    embedder = OpenAIEmbeddingBackend(api_key="sk-...")
    vector = await embedder.embed("The capital of France is Paris.")
"""

import logging
from typing import List, Optional, Protocol, Tuple, Type

import openai
from ollama import AsyncClient
from openai import AsyncOpenAI

from utils.exceptions import ConfigError
from utils.retry import TRANSIENT_EXCEPTIONS, RetryConfig, async_retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_OLLAMA_EMBEDDING_MODEL = "nomic-embed-text"

# Rate limits and dropped connections are worth another attempt
RETRYABLE_API_ERRORS: Tuple[Type[Exception], ...] = TRANSIENT_EXCEPTIONS + (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class EmbeddingBackend(Protocol):
    """Anything that turns text into a fixed-dimension vector."""

    async def embed(self, text: str) -> List[float]:
        ...


class OpenAIEmbeddingBackend:
    """OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_OPENAI_EMBEDDING_MODEL,
        retry: Optional[RetryConfig] = None,
        client: Optional[AsyncOpenAI] = None,
        timeout: float = 120.0,
    ):
        self.model = model
        self.retry = retry or RetryConfig()
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def _embed_once(self, text: str) -> List[float]:
        response = await self._client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)

    async def embed(self, text: str) -> List[float]:
        return await async_retry_with_backoff(
            self._embed_once,
            args=(text,),
            config=self.retry,
            retryable_exceptions=RETRYABLE_API_ERRORS,
        )


class OllamaEmbeddingBackend:
    """Local embeddings through an Ollama server."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = DEFAULT_OLLAMA_EMBEDDING_MODEL,
        retry: Optional[RetryConfig] = None,
        client: Optional[AsyncClient] = None,
        timeout: float = 120.0,
    ):
        self.model = model
        self.retry = retry or RetryConfig()
        self._client = client or AsyncClient(host=host, timeout=timeout)

    async def _embed_once(self, text: str) -> List[float]:
        response = await self._client.embed(model=self.model, input=text)
        return list(response["embeddings"][0])

    async def embed(self, text: str) -> List[float]:
        return await async_retry_with_backoff(
            self._embed_once,
            args=(text,),
            config=self.retry,
        )


def create_embedding_backend(
    kind: str,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    host: str = "http://localhost:11434",
    retry: Optional[RetryConfig] = None,
    timeout: float = 120.0,
) -> EmbeddingBackend:
    """
    Build an embedding backend by name ("openai" or "ollama").

    Raises:
        ConfigError: Unknown backend, or OpenAI selected without an API key.
    """
    kind = kind.lower()
    if kind == "openai":
        if not api_key:
            raise ConfigError("OPENAI_API_KEY is required for OpenAI embeddings")
        return OpenAIEmbeddingBackend(
            api_key=api_key,
            model=model or DEFAULT_OPENAI_EMBEDDING_MODEL,
            retry=retry,
            timeout=timeout,
        )
    if kind == "ollama":
        return OllamaEmbeddingBackend(
            host=host,
            model=model or DEFAULT_OLLAMA_EMBEDDING_MODEL,
            retry=retry,
            timeout=timeout,
        )
    raise ConfigError(f"Unknown embedding provider '{kind}'. Available: openai, ollama")
