"""
Model Backend Adapters

Unified streaming interface for multiple model backends (OpenAI, Groq,
Google Gemini, Ollama).

Usage:
    from evalarena.providers import ProviderRegistry, ProviderCredentials, Message

    registry = ProviderRegistry(ProviderCredentials(openai_api_key="sk-..."))
    provider = registry.get("gpt-4o-mini")
    result = await provider.complete([Message("user", "What is 2+2?")])
"""

from .base import (
    BaseProvider,
    CompletionResult,
    GenerationConfig,
    Message,
    ProviderCredentials,
    ProviderFactory,
    ProviderRegistry,
    ProviderType,
    StreamChunk,
    StreamingMetrics,
    StreamTimer,
    TimingInfo,
    calculate_tokens_per_second,
    resolve_provider_family,
)
from .openai_provider import GroqProvider, OpenAIProvider
from .google_provider import GoogleProvider
from .ollama_provider import OllamaProvider

__all__ = [
    # Base classes and types
    "BaseProvider",
    "CompletionResult",
    "GenerationConfig",
    "Message",
    "ProviderCredentials",
    "ProviderFactory",
    "ProviderRegistry",
    "ProviderType",
    "StreamChunk",
    "StreamingMetrics",
    "StreamTimer",
    "TimingInfo",
    "calculate_tokens_per_second",
    "resolve_provider_family",
    # Providers
    "OpenAIProvider",
    "GroqProvider",
    "GoogleProvider",
    "OllamaProvider",
]
