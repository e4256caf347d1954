"""Tests for provider resolution, the registry, timing and SDK adapters."""

import time
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from evalarena.providers.base import (
    GenerationConfig,
    Message,
    ProviderCredentials,
    ProviderFactory,
    ProviderRegistry,
    ProviderType,
    StreamTimer,
    calculate_tokens_per_second,
    resolve_provider_family,
)
from evalarena.providers.google_provider import GoogleProvider
from evalarena.providers.ollama_provider import OllamaProvider
from evalarena.providers.openai_provider import GROQ_BASE_URL, GroqProvider, OpenAIProvider
from utils.exceptions import UnsupportedModelError


class _AsyncIter:
    def __init__(self, items: List[Any]):
        self._items = list(items)

    def __aiter__(self) -> "_AsyncIter":
        return self

    async def __anext__(self) -> Any:
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)


def _openai_chunk(content: Any = None, usage: Any = None) -> SimpleNamespace:
    choices = [] if content is None else [SimpleNamespace(delta=SimpleNamespace(content=content))]
    return SimpleNamespace(choices=choices, usage=usage)


class _FakeCompletions:
    def __init__(self, result: Any):
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        return self.result


def _fake_openai_client(result: Any) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions(result)))


class TestResolveProviderFamily:
    @pytest.mark.parametrize(
        "model_id,expected",
        [
            ("gpt-4o", ProviderType.OPENAI),
            ("gpt-3.5-turbo", ProviderType.OPENAI),
            ("o3-mini", ProviderType.OPENAI),
            ("gemini-1.5-flash", ProviderType.GOOGLE),
            ("llama-3.1-8b-instant", ProviderType.GROQ),
            ("ollama/qwen2.5:7b", ProviderType.OLLAMA),
        ],
    )
    def test_prefixes(self, model_id: str, expected: ProviderType) -> None:
        assert resolve_provider_family(model_id) == expected

    def test_catalog_takes_precedence(self) -> None:
        assert resolve_provider_family("llama3.2", {"llama3.2": "ollama"}) == ProviderType.OLLAMA
        assert resolve_provider_family("gpt-4o", {"gpt-4o": "groq"}) == ProviderType.GROQ

    def test_unknown_model_raises(self) -> None:
        with pytest.raises(UnsupportedModelError, match="Unsupported model: mystery"):
            resolve_provider_family("mystery")

    def test_unknown_catalog_family_raises(self) -> None:
        with pytest.raises(UnsupportedModelError):
            resolve_provider_family("custom", {"custom": "anthropic"})


class TestProviderRegistry:
    def test_creates_and_caches_adapters(self) -> None:
        registry = ProviderRegistry(ProviderCredentials(openai_api_key="sk-test"))

        provider = registry.get("gpt-4o-mini")

        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"
        assert registry.get("gpt-4o-mini") is provider

    def test_groq_family(self) -> None:
        registry = ProviderRegistry(ProviderCredentials(groq_api_key="gsk-test"))
        provider = registry.get("llama-3.3-70b-versatile")
        assert isinstance(provider, GroqProvider)
        assert provider.base_url == GROQ_BASE_URL

    def test_ollama_family_uses_host(self) -> None:
        registry = ProviderRegistry(ProviderCredentials(ollama_host="http://gpu-box:11434"))
        provider = registry.get("ollama/llama3.2:3b")
        assert isinstance(provider, OllamaProvider)
        assert provider.host == "http://gpu-box:11434"
        assert provider.api_model == "llama3.2:3b"

    def test_catalog_routes_identifier(self) -> None:
        registry = ProviderRegistry(catalog={"gemini-exp": "google"})
        assert isinstance(registry.get("gemini-exp"), GoogleProvider)

    def test_unknown_model(self) -> None:
        with pytest.raises(UnsupportedModelError):
            ProviderRegistry().get("unknown-model")

    def test_registered_provider_wins(self) -> None:
        registry = ProviderRegistry()
        provider = OpenAIProvider(model="anything", api_key="sk-test")
        registry.register(provider)
        assert registry.get("anything") is provider

    def test_shared_generation_config(self) -> None:
        config = GenerationConfig(temperature=0.2)
        registry = ProviderRegistry(config=config)
        assert registry.get("gpt-4o").config is config


class TestProviderFactory:
    def test_available_providers(self) -> None:
        assert {"openai", "groq", "google", "ollama"} <= set(ProviderFactory.available_providers())

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider"):
            ProviderFactory.create("nope", model="x")

    @pytest.mark.parametrize("provider_cls", [OpenAIProvider, GroqProvider, OllamaProvider, GoogleProvider])
    def test_adapters_only_add_completion_calls(self, provider_cls: type) -> None:
        public = {name for name in vars(provider_cls) if not name.startswith("_")}
        assert not public & {"list_models", "embed"}


class TestStreamTimer:
    def test_ttft_recorded_on_first_nonempty_delta(self) -> None:
        timer = StreamTimer()
        timer.on_delta("")
        time.sleep(0.01)
        timer.on_delta("a")
        timer.on_delta("b")

        timing = timer.finish()

        assert timing.streaming.time_to_first_token >= 10
        assert timing.streaming.total_tokens == 2
        assert timing.duration >= timing.streaming.time_to_first_token
        assert timing.end_time == pytest.approx(timing.start_time + timing.duration)

    def test_reported_tokens_preferred(self) -> None:
        timer = StreamTimer()
        timer.on_delta("hello world")
        timer.set_token_count(5)
        assert timer.total_tokens == 5
        timer.set_token_count(None)
        assert timer.total_tokens == 5

    def test_no_deltas_uses_elapsed_for_ttft(self) -> None:
        timing = StreamTimer().finish()
        assert timing.streaming.total_tokens == 0
        assert timing.streaming.time_to_first_token == timing.streaming.total_response_time
        assert timing.streaming.tokens_per_second == 0.0

    def test_to_dict_is_camel_case(self) -> None:
        data = StreamTimer().finish().to_dict()
        assert set(data) == {"startTime", "endTime", "duration", "streaming"}
        assert set(data["streaming"]) == {
            "timeToFirstToken",
            "tokensPerSecond",
            "totalResponseTime",
            "totalTokens",
        }

    def test_tokens_per_second(self) -> None:
        assert calculate_tokens_per_second(50, 2000) == 25.0
        assert calculate_tokens_per_second(50, 0) == 0.0


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_stream_complete(self) -> None:
        stream = _AsyncIter([
            _openai_chunk(""),
            _openai_chunk("4"),
            _openai_chunk(None),
            _openai_chunk("!"),
            _openai_chunk(None, usage=SimpleNamespace(completion_tokens=3)),
        ])
        client = _fake_openai_client(stream)
        provider = OpenAIProvider(model="gpt-4o-mini", client=client)

        chunks = [c async for c in provider.stream_complete([Message("user", "2+2?")])]

        assert [c.delta for c in chunks[:-1]] == ["4", "!"]
        assert chunks[-1].timing.streaming.total_tokens == 3
        call = client.chat.completions.calls[0]
        assert call["stream"] is True
        assert call["stream_options"] == {"include_usage": True}
        assert call["messages"] == [{"role": "user", "content": "2+2?"}]
        assert "response_format" not in call

    @pytest.mark.asyncio
    async def test_complete_json_mode(self) -> None:
        result = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"score": 90}'))],
            usage=SimpleNamespace(completion_tokens=6),
        )
        client = _fake_openai_client(result)
        provider = OpenAIProvider(model="gpt-4o", client=client)

        completion = await provider.complete(
            [Message("user", "rate")], GenerationConfig(temperature=0.0, json_mode=True)
        )

        assert completion.text == '{"score": 90}'
        assert completion.completion_tokens == 6
        call = client.chat.completions.calls[0]
        assert call["response_format"] == {"type": "json_object"}
        assert call["temperature"] == 0.0
        assert provider.get_stats()["request_count"] == 1

    @pytest.mark.asyncio
    async def test_errors_propagate(self) -> None:
        class _Failing:
            async def create(self, **kwargs: Any) -> Any:
                raise ConnectionError("network down")

        client = SimpleNamespace(chat=SimpleNamespace(completions=_Failing()))
        provider = OpenAIProvider(model="gpt-4o", client=client)

        with pytest.raises(ConnectionError):
            async for _ in provider.stream_complete([Message("user", "hi")]):
                pass


class _FakeOllamaClient:
    def __init__(self, parts: List[Dict[str, Any]]):
        self.parts = parts
        self.calls: List[Dict[str, Any]] = []

    async def chat(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if kwargs["stream"]:
            return _AsyncIter(self.parts)
        return self.parts[-1]


class TestOllamaProvider:
    @pytest.mark.asyncio
    async def test_stream_strips_prefix_and_counts_tokens(self) -> None:
        client = _FakeOllamaClient([
            {"message": {"content": "Hel"}, "done": False},
            {"message": {"content": "lo"}, "done": False},
            {"message": {"content": ""}, "done": True, "eval_count": 2},
        ])
        provider = OllamaProvider(model="ollama/llama3.2:3b", client=client)

        chunks = [c async for c in provider.stream_complete([Message("user", "hi")])]

        assert "".join(c.delta for c in chunks) == "Hello"
        assert chunks[-1].timing.streaming.total_tokens == 2
        assert client.calls[0]["model"] == "llama3.2:3b"
        assert client.calls[0]["format"] is None

    @pytest.mark.asyncio
    async def test_complete_json_mode(self) -> None:
        client = _FakeOllamaClient([{"message": {"content": '{"score": 70}'}, "eval_count": 5}])
        provider = OllamaProvider(model="ollama/qwen2.5:7b", client=client)

        result = await provider.complete([Message("user", "rate")], GenerationConfig(json_mode=True))

        assert result.text == '{"score": 70}'
        assert result.completion_tokens == 5
        assert client.calls[0]["format"] == "json"


class _FakeGoogleModels:
    def __init__(self, chunks: List[Any]):
        self.chunks = chunks
        self.calls: List[Dict[str, Any]] = []

    async def generate_content_stream(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        return _AsyncIter(self.chunks)


class TestGoogleProvider:
    @pytest.mark.asyncio
    async def test_stream_moves_system_prompt_to_config(self) -> None:
        models = _FakeGoogleModels([
            SimpleNamespace(text="Par", usage_metadata=None),
            SimpleNamespace(text="is", usage_metadata=SimpleNamespace(candidates_token_count=1)),
        ])
        client = SimpleNamespace(aio=SimpleNamespace(models=models))
        provider = GoogleProvider(model="gemini-1.5-flash", client=client)

        chunks = [
            c async for c in provider.stream_complete(
                [Message("system", "Be brief"), Message("user", "Capital of France?")]
            )
        ]

        assert "".join(c.delta for c in chunks) == "Paris"
        assert chunks[-1].timing.streaming.total_tokens == 1
        call = models.calls[0]
        assert call["contents"] == [{"role": "user", "parts": [{"text": "Capital of France?"}]}]
        assert call["config"].system_instruction == "Be brief"

    def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from utils.exceptions import ConfigError

        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        provider = GoogleProvider(model="gemini-1.5-flash")
        with pytest.raises(ConfigError):
            provider._ensure_client()
