"""
Shared test fixtures for EvalArena.

Provides scripted fake providers and embedders, a temporary result store,
and helpers for decoding SSE frames.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import pytest

from evalarena.evaluation.models import EvaluationRequest
from evalarena.providers.base import (
    BaseProvider,
    CompletionResult,
    GenerationConfig,
    Message,
    ProviderRegistry,
    ProviderType,
    StreamChunk,
    StreamTimer,
)
from evalarena.storage.store import ResultStore


class FakeProvider(BaseProvider):
    """
    Scripted provider.

    Streams ``deltas`` with an optional per-delta delay. When ``error`` is
    set it is raised just before delta number ``fail_at`` (0 = before the
    stream opens).
    """

    def __init__(
        self,
        model: str,
        deltas: Sequence[str] = (),
        delay: float = 0.0,
        error: Optional[Exception] = None,
        fail_at: int = 0,
        reply: str = "",
        token_count: Optional[int] = None,
    ):
        super().__init__(model=model)
        self.deltas = list(deltas)
        self.delay = delay
        self.error = error
        self.fail_at = fail_at
        self.reply = reply
        self.token_count = token_count
        self.calls: List[List[Message]] = []
        self.configs: List[Optional[GenerationConfig]] = []
        self.cancelled = False

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OPENAI

    async def complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> CompletionResult:
        self.calls.append(list(messages))
        self.configs.append(config)
        if self.error is not None:
            raise self.error
        timer = StreamTimer()
        timer.on_delta(self.reply)
        return CompletionResult(text=self.reply, model=self.model, timing=timer.finish())

    async def stream_complete(
        self,
        messages: Sequence[Message],
        config: Optional[GenerationConfig] = None,
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append(list(messages))
        self.configs.append(config)
        timer = StreamTimer()
        try:
            for i, delta in enumerate(self.deltas):
                if self.error is not None and i == self.fail_at:
                    raise self.error
                if self.delay:
                    await asyncio.sleep(self.delay)
                timer.on_delta(delta)
                yield StreamChunk(delta=delta)
            if self.error is not None and self.fail_at >= len(self.deltas):
                raise self.error
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        timer.set_token_count(self.token_count)
        yield StreamChunk(timing=timer.finish())


class FakeEmbedder:
    """Embedding backend backed by a lookup table."""

    def __init__(self, vectors: Dict[str, List[float]], error: Optional[Exception] = None):
        self.vectors = vectors
        self.error = error
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.vectors[text]


class CollectingSink:
    """FrameSink that keeps every frame in memory."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.frames: List[bytes] = []
        self.close_calls = 0
        self.fail_with = fail_with

    async def write(self, frame: bytes) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.frames.append(frame)

    async def aclose(self) -> None:
        self.close_calls += 1

    def events(self) -> List[Dict[str, Any]]:
        return decode_frames(self.frames)


def decode_frames(frames: Sequence[bytes]) -> List[Dict[str, Any]]:
    """Decode ``data: <json>\\n\\n`` frames into dicts."""
    events = []
    for frame in frames:
        text = frame.decode("utf-8")
        assert text.startswith("data: ") and text.endswith("\n\n"), text
        events.append(json.loads(text[len("data: "):-2]))
    return events


def decode_sse_body(body: str) -> List[Dict[str, Any]]:
    """Decode a full SSE response body into dicts."""
    return [
        json.loads(record[len("data: "):])
        for record in body.split("\n\n")
        if record.startswith("data: ")
    ]


def make_registry(*providers: BaseProvider) -> ProviderRegistry:
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    return registry


def make_request(
    models: Sequence[str] = ("model-x",),
    metrics: Sequence[str] = ("EXACT_MATCH",),
    expected: str = "4",
) -> EvaluationRequest:
    return EvaluationRequest.from_dict(
        {
            "systemPrompt": "You are helpful",
            "userMessage": "2+2?",
            "expectedOutput": expected,
            "selectedModels": list(models),
            "selectedMetrics": list(metrics),
        }
    )


@pytest.fixture
def tmp_store(tmp_path: Path) -> ResultStore:
    """Empty result store in a temporary directory."""
    return ResultStore(tmp_path / "store.json")


@pytest.fixture
def mock_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Set environment variables pointing to temporary directories."""
    monkeypatch.setenv("EVALARENA_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DEBUG", "true")
    return tmp_path
