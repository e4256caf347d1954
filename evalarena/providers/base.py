"""
Base Provider Abstraction Layer

Defines the interface that all model backends must implement, the timing
instrumentation shared by every streaming call, and the registry used to
map a model identifier to a provider.

Usage:
    from evalarena.providers import ProviderRegistry, Message

    registry = ProviderRegistry(credentials)
    provider = registry.get("gpt-4o-mini")
    async for chunk in provider.stream_complete([Message("user", "2+2?")]):
        print(chunk.delta, end="")
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from utils.exceptions import ConfigError, UnsupportedModelError

logger = logging.getLogger(__name__)


class ProviderType(Enum):
    """Supported provider families. The value is the registry tag."""

    OPENAI = "openai"
    GOOGLE = "google"
    GROQ = "groq"
    OLLAMA = "ollama"


# Identifier prefix -> provider family. Checked in order.
MODEL_PREFIXES: Tuple[Tuple[str, ProviderType], ...] = (
    ("ollama/", ProviderType.OLLAMA),
    ("gpt-", ProviderType.OPENAI),
    ("o1", ProviderType.OPENAI),
    ("o3", ProviderType.OPENAI),
    ("o4", ProviderType.OPENAI),
    ("gemini-", ProviderType.GOOGLE),
    ("llama-", ProviderType.GROQ),
)


@dataclass
class GenerationConfig:
    """Configuration for text generation."""

    temperature: float = 0.7
    max_tokens: int = 2048
    top_p: float = 1.0
    json_mode: bool = False  # Ask the backend for a single JSON object


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass(frozen=True)
class StreamingMetrics:
    """Throughput metrics for a streamed response. Times in milliseconds."""

    time_to_first_token: float
    tokens_per_second: float
    total_response_time: float
    total_tokens: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeToFirstToken": self.time_to_first_token,
            "tokensPerSecond": self.tokens_per_second,
            "totalResponseTime": self.total_response_time,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class TimingInfo:
    """Wall-clock timing of one model call (epoch ms, duration in ms)."""

    start_time: float
    end_time: float
    duration: float
    streaming: Optional[StreamingMetrics] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
        }
        if self.streaming is not None:
            data["streaming"] = self.streaming.to_dict()
        return data


@dataclass(frozen=True)
class StreamChunk:
    """One item of a streaming call: a text delta and/or a timing snapshot."""

    delta: str = ""
    timing: Optional[TimingInfo] = None


@dataclass
class CompletionResult:
    """Result of an atomic (non-streaming) call."""

    text: str
    model: str
    timing: TimingInfo
    completion_tokens: int = 0
    raw_response: Optional[Dict[str, Any]] = None


def calculate_tokens_per_second(tokens: int, duration_ms: float) -> float:
    """Calculate tokens per second from token count and duration."""
    if duration_ms <= 0:
        return 0.0
    return (tokens / duration_ms) * 1000


class StreamTimer:
    """
    Timing instrumentation shared by every provider.

    Start it immediately before dispatching the request, call on_delta()
    for each received fragment, and finish() once the stream has ended.
    """

    def __init__(self) -> None:
        self._start_wall = time.time() * 1000
        self._start = time.perf_counter()
        self._first_token_ms: Optional[float] = None
        self._delta_count = 0
        self._reported_tokens: Optional[int] = None

    def _elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    def on_delta(self, delta: str) -> None:
        if not delta:
            return
        if self._first_token_ms is None:
            self._first_token_ms = self._elapsed_ms()
        self._delta_count += 1

    def set_token_count(self, tokens: Optional[int]) -> None:
        """Record provider-reported completion tokens (preferred over delta count)."""
        if tokens:
            self._reported_tokens = tokens

    @property
    def total_tokens(self) -> int:
        if self._reported_tokens is not None:
            return self._reported_tokens
        return self._delta_count

    def snapshot(self) -> TimingInfo:
        """Timing as of now; used for intermediate and final metrics."""
        elapsed = self._elapsed_ms()
        tokens = self.total_tokens
        streaming = StreamingMetrics(
            time_to_first_token=self._first_token_ms if self._first_token_ms is not None else elapsed,
            tokens_per_second=calculate_tokens_per_second(tokens, elapsed),
            total_response_time=elapsed,
            total_tokens=tokens,
        )
        return TimingInfo(
            start_time=self._start_wall,
            end_time=self._start_wall + elapsed,
            duration=elapsed,
            streaming=streaming,
        )

    def finish(self) -> TimingInfo:
        return self.snapshot()


class BaseProvider(ABC):
    """
    Abstract base class for model backends.

    All providers must implement:
    - complete(): atomic call returning the whole text
    - stream_complete(): async generator of StreamChunk, final chunk carries timing
    """

    def __init__(
        self,
        model: str,
        config: Optional[GenerationConfig] = None,
        timeout: float = 120.0,
    ):
        """
        Args:
            model: Model name/identifier as selected by the user.
            config: Generation configuration (temperature, max_tokens, etc.).
            timeout: Request timeout in seconds.
        """
        self.model = model
        self.config = config or GenerationConfig()
        self.timeout = timeout
        self._request_count = 0

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Return the provider family."""
        ...

    @property
    def api_model(self) -> str:
        """Model name as sent to the backend."""
        return self.model

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> CompletionResult:
        """
        Generate a full response in one call.

        Args:
            messages: Conversation (system, user, assistant).
            config: Override default generation config.

        Returns:
            CompletionResult with text and timing.
        """
        ...

    @abstractmethod
    def stream_complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a response as it is generated.

        Yields StreamChunk objects in arrival order. The final chunk always
        carries the final TimingInfo. Exceptions from the backend propagate
        to the consumer.
        """
        ...

    def get_stats(self) -> Dict[str, Any]:
        """Get usage statistics for this provider instance."""
        return {
            "model": self.model,
            "provider": self.provider_type.value,
            "request_count": self._request_count,
        }


def resolve_provider_family(
    model_id: str,
    catalog: Optional[Dict[str, str]] = None,
) -> ProviderType:
    """
    Map a model identifier to its provider family.

    Args:
        model_id: Identifier such as "gpt-4o-mini" or "ollama/qwen2.5:7b".
        catalog: Optional identifier -> family tag mapping (takes precedence).

    Raises:
        UnsupportedModelError: If no catalog entry or prefix matches.
    """
    if catalog and model_id in catalog:
        try:
            return ProviderType(catalog[model_id])
        except ValueError:
            raise UnsupportedModelError(model_id)

    for prefix, family in MODEL_PREFIXES:
        if model_id.startswith(prefix):
            return family
    raise UnsupportedModelError(model_id)


class ProviderFactory:
    """
    Factory for creating provider instances.

    Usage:
        provider = ProviderFactory.create("openai", model="gpt-4o", api_key="...")
    """

    _registry: Dict[str, type] = {}

    @classmethod
    def register(cls, name: str, provider_class: type) -> None:
        """Register a provider class."""
        cls._registry[name.lower()] = provider_class

    @classmethod
    def create(
        cls,
        provider_name: str,
        model: str,
        config: Optional[GenerationConfig] = None,
        **kwargs: Any,
    ) -> BaseProvider:
        """
        Create a provider instance.

        Raises:
            ValueError: If provider is not registered.
        """
        provider_class = cls._registry.get(provider_name.lower())
        if provider_class is None:
            available = ", ".join(cls._registry.keys())
            raise ValueError(
                f"Unknown provider '{provider_name}'. Available: {available}"
            )
        return provider_class(model=model, config=config, **kwargs)

    @classmethod
    def available_providers(cls) -> List[str]:
        """List registered provider names."""
        return list(cls._registry.keys())


@dataclass
class ProviderCredentials:
    """Per-family connection settings, read once at process start."""

    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    ollama_host: str = "http://localhost:11434"
    timeout: float = 120.0

    def kwargs_for(self, family: ProviderType) -> Dict[str, Any]:
        """Constructor keyword arguments for a provider family."""
        if family == ProviderType.OPENAI:
            return {"api_key": self.openai_api_key, "timeout": self.timeout}
        if family == ProviderType.GOOGLE:
            return {"api_key": self.google_api_key, "timeout": self.timeout}
        if family == ProviderType.GROQ:
            return {"api_key": self.groq_api_key, "timeout": self.timeout}
        if family == ProviderType.OLLAMA:
            return {"host": self.ollama_host, "timeout": self.timeout}
        raise ConfigError(f"No credentials defined for provider family {family.value}")


class ProviderRegistry:
    """
    Process-wide adapter registry.

    Built once at startup and passed into the orchestrator. Adapters are
    created lazily on first use and cached per model identifier.
    """

    def __init__(
        self,
        credentials: Optional[ProviderCredentials] = None,
        catalog: Optional[Dict[str, str]] = None,
        config: Optional[GenerationConfig] = None,
    ):
        self.credentials = credentials or ProviderCredentials()
        self.catalog = catalog or {}
        self.config = config
        self._providers: Dict[str, BaseProvider] = {}

    def register(self, provider: BaseProvider) -> None:
        """Install a ready-made adapter for its model identifier."""
        self._providers[provider.model] = provider

    def resolve(self, model_id: str) -> ProviderType:
        return resolve_provider_family(model_id, self.catalog)

    def get(self, model_id: str) -> BaseProvider:
        """
        Return the adapter for a model identifier.

        Raises:
            UnsupportedModelError: Unknown identifier or unregistered family.
        """
        cached = self._providers.get(model_id)
        if cached is not None:
            return cached

        family = self.resolve(model_id)
        try:
            provider = ProviderFactory.create(
                family.value,
                model=model_id,
                config=self.config,
                **self.credentials.kwargs_for(family),
            )
        except ValueError as e:
            logger.warning(f"Could not create provider for {model_id}: {e}")
            raise UnsupportedModelError(model_id) from e
        self._providers[model_id] = provider
        logger.debug(f"Created {family.value} provider for {model_id}")
        return provider
