"""
Evaluation Orchestrator

Runs one evaluation request against every selected model concurrently,
relays each model's token stream through a shared StreamMultiplexer, and
scores each finished response. A failing model never affects its siblings.

Event sequence per model:
    {model, response: "", delta: ""}            stream opened
    {model, response: <cumulative>, delta}      one per delta
    {model, response, metrics: {..., evaluation}}   terminal
or, on failure, a single {model, response: "", error}.

After every model has settled: {model: "system", response: "", done: true}.

Usage:
    orchestrator = EvaluationOrchestrator(registry, MetricScorer())
    async for frame in orchestrator.stream(request):
        transport.write(frame)
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Dict, Optional

from utils.exceptions import RequestError, ScoringError

from ..providers.base import GenerationConfig, ProviderRegistry
from ..scoring.metrics import MetricScorer
from ..streaming.events import StreamEvent
from ..streaming.multiplexer import QueueSink, StreamMultiplexer
from .models import EvaluationRequest, ModelRunState

logger = logging.getLogger(__name__)


class _PublishFailed(Exception):
    """The output transport failed; fatal for the whole run."""


def _error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


class EvaluationOrchestrator:
    """
    Fans one request out to N model adapters.

    Dependencies are injected: the provider registry resolves model
    identifiers to adapters and the scorer computes the requested metrics.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        scorer: Optional[MetricScorer] = None,
        generation_config: Optional[GenerationConfig] = None,
    ):
        self.registry = registry
        self.scorer = scorer or MetricScorer()
        self.generation_config = generation_config

    async def _emit(self, multiplexer: StreamMultiplexer, event: StreamEvent) -> None:
        try:
            await multiplexer.publish(event)
        except OSError as e:
            raise _PublishFailed(_error_message(e)) from e

    async def _run_model(
        self,
        request: EvaluationRequest,
        state: ModelRunState,
        multiplexer: StreamMultiplexer,
    ) -> ModelRunState:
        """Drive one model from dispatch to its terminal event."""
        model_id = state.model_id
        try:
            provider = self.registry.get(model_id)
            opened = False
            async for chunk in provider.stream_complete(
                request.messages(), self.generation_config
            ):
                if not opened:
                    opened = True
                    await self._emit(multiplexer, state.snapshot(delta=""))
                if chunk.timing is not None:
                    state.last_timing = chunk.timing
                if chunk.delta:
                    await self._emit(multiplexer, state.append(chunk.delta))
            if not opened:
                await self._emit(multiplexer, state.snapshot(delta=""))

        except (_PublishFailed, asyncio.CancelledError):
            raise
        except Exception as e:
            message = _error_message(e)
            logger.warning(f"{model_id} failed: {message}")
            await self._emit(multiplexer, state.fail(message))
            return state

        scores: Optional[Dict[str, float]] = None
        try:
            scores = await self.scorer.evaluate_response(
                state.accumulated_response,
                request.expected_output,
                request.selected_metrics,
            )
        except ScoringError as e:
            state.error = _error_message(e)
            logger.warning(f"Scoring failed for {model_id}: {state.error}")

        await self._emit(multiplexer, state.finish(scores))

        timing = state.last_timing
        logger.info(
            f"{model_id} finished",
            extra={
                "extra_data": {
                    "model": model_id,
                    "chars": len(state.accumulated_response),
                    "duration_ms": timing.duration if timing else None,
                    "scores": scores,
                }
            },
        )
        return state

    async def run_evaluation(
        self,
        request: EvaluationRequest,
        multiplexer: StreamMultiplexer,
    ) -> Dict[str, ModelRunState]:
        """
        Run a request to completion, writing every event to the multiplexer.

        Waits for all models to settle (never fails fast), then emits the
        system sentinel. A request or transport failure emits one system
        error frame instead. The multiplexer is closed on every path.

        Returns:
            Final per-model state keyed by model identifier.
        """
        states: Dict[str, ModelRunState] = {}
        start = time.perf_counter()
        try:
            if not isinstance(request, EvaluationRequest):
                raise RequestError(f"Expected EvaluationRequest, got {type(request).__name__}")

            states = {m: ModelRunState(model_id=m) for m in request.selected_models}
            logger.info(
                f"Evaluating {len(states)} model(s): {', '.join(states)} "
                f"metrics={[m.value for m in request.selected_metrics]}"
            )

            tasks = [
                asyncio.create_task(
                    self._run_model(request, state, multiplexer),
                    name=f"evaluate:{model_id}",
                )
                for model_id, state in states.items()
            ]
            try:
                outcomes = await asyncio.gather(*tasks, return_exceptions=True)
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                logger.info("Evaluation cancelled; in-flight model calls aborted")
                raise

            for model_id, outcome in zip(states, outcomes):
                if isinstance(outcome, _PublishFailed):
                    raise outcome
                if isinstance(outcome, BaseException):
                    # _run_model converts model errors to events; anything else is a bug
                    logger.error(f"Unexpected failure in task for {model_id}: {outcome!r}")

            await self._emit(multiplexer, StreamEvent.system_done())
            elapsed = (time.perf_counter() - start) * 1000
            logger.info(f"Evaluation finished in {elapsed:.0f}ms")

        except (RequestError, _PublishFailed) as e:
            logger.error(f"Evaluation aborted: {e}")
            await self._publish_system_error(multiplexer, _error_message(e))
        finally:
            await multiplexer.close()

        return states

    async def _publish_system_error(self, multiplexer: StreamMultiplexer, message: str) -> None:
        try:
            await multiplexer.publish(StreamEvent.system_error(message))
        except OSError as e:
            logger.error(f"Could not deliver system error frame: {e}")

    async def stream(self, request: EvaluationRequest) -> AsyncIterator[bytes]:
        """
        Run a request and yield its SSE frames as they are produced.

        Closing or cancelling the iterator before the end (client went
        away) cancels every in-flight model call.
        """
        sink = QueueSink()
        multiplexer = StreamMultiplexer(sink)
        task = asyncio.create_task(self.run_evaluation(request, multiplexer))
        try:
            async for frame in sink:
                yield frame
            await task
        finally:
            if not task.done():
                sink.abort()
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    logger.info("Client disconnected; evaluation cancelled")
