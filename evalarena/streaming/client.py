"""
Client-side stream assembly.

Consumes the evaluation SSE stream incrementally, keeps one accumulator per
model, and hands out immutable snapshots after every event. Once the stream
ends, the final per-model list can be persisted through the results API.

Usage:
    async with httpx.AsyncClient(timeout=None) as http:
        client = EvaluationClient("http://127.0.0.1:8000", http_client=http)
        async for snapshot in client.stream_evaluation(request):
            render(snapshot)
        responses = client.last_results
        await client.save_results(experiment_id, test_case_id, responses)
"""

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from utils.exceptions import EvaluationClientError

from ..evaluation.models import EvaluationRequest
from .events import SYSTEM_MODEL, StreamEvent

logger = logging.getLogger(__name__)


class SSEParser:
    """
    Incremental Server-Sent-Events parser.

    Network reads may split a frame anywhere; feed() buffers until a record
    is terminated by a blank line and returns the data payload of each
    complete record.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, text: str) -> List[str]:
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")
        payloads: List[str] = []
        while "\n\n" in self._buffer:
            record, self._buffer = self._buffer.split("\n\n", 1)
            payload = self._parse_record(record)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> List[str]:
        """Return the trailing record, if the stream ended without a blank line."""
        record, self._buffer = self._buffer, ""
        payload = self._parse_record(record)
        return [payload] if payload is not None else []

    @staticmethod
    def _parse_record(record: str) -> Optional[str]:
        data_lines = []
        for line in record.split("\n"):
            if not line or line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if name != "data":
                continue
            if value.startswith(" "):
                value = value[1:]
            data_lines.append(value)
        if not data_lines:
            return None
        return "\n".join(data_lines)


@dataclass(frozen=True)
class ModelResponse:
    """Latest assembled state for one model."""

    model: str
    response: str = ""
    error: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None

    @property
    def scores(self) -> Dict[str, float]:
        if not self.metrics:
            return {}
        return dict(self.metrics.get("evaluation") or {})

    @property
    def timing(self) -> Dict[str, Any]:
        if not self.metrics:
            return {}
        return {k: v for k, v in self.metrics.items() if k != "evaluation"}


@dataclass
class StreamAssembler:
    """
    Per-model accumulators keyed by the event's ``model`` field.

    Arrival order across models carries no meaning; only the model field is
    used for matching.
    """

    models: Sequence[str] = ()
    done: bool = False
    system_error: Optional[str] = None
    skipped_frames: int = 0
    _responses: Dict[str, ModelResponse] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        for model in self.models:
            self._responses.setdefault(model, ModelResponse(model=model))

    def apply(self, event: StreamEvent) -> None:
        if event.model == SYSTEM_MODEL:
            if event.error is not None:
                self.system_error = event.error
            if event.done:
                self.done = True
            return

        current = self._responses.get(event.model, ModelResponse(model=event.model))
        updated = replace(current, response=event.response)
        if event.error is not None:
            updated = replace(updated, error=event.error)
        if event.metrics is not None:
            updated = replace(updated, metrics=dict(event.metrics))
        self._responses[event.model] = updated

    def apply_payload(self, raw: str) -> List[ModelResponse]:
        """Apply one frame's JSON payload; malformed frames are skipped."""
        try:
            data = json.loads(raw)
            self.apply(StreamEvent.from_dict(data))
        except (ValueError, KeyError, TypeError) as e:
            self.skipped_frames += 1
            logger.warning(f"Skipping malformed stream frame ({e}): {raw[:200]!r}")
        return self.snapshot()

    def snapshot(self) -> List[ModelResponse]:
        return list(self._responses.values())

    def results(self) -> List[ModelResponse]:
        return self.snapshot()


class EvaluationClient:
    """
    HTTP client for the evaluation API.

    Pass a shared httpx.AsyncClient to reuse connections; otherwise a
    short-lived one is created per call.
    """

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = http_client
        self.timeout = timeout
        self.last_results: List[ModelResponse] = []

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _client(self) -> httpx.AsyncClient:
        if self._http is not None:
            return self._http
        return httpx.AsyncClient(timeout=self.timeout)

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        await response.aread()
        try:
            detail = response.json().get("detail") or response.json().get("error")
        except (json.JSONDecodeError, AttributeError):
            detail = response.text
        raise EvaluationClientError(
            f"{response.request.method} {response.request.url.path} failed "
            f"with {response.status_code}: {detail}",
            status=response.status_code,
        )

    async def stream_evaluation(
        self, request: EvaluationRequest
    ) -> AsyncIterator[List[ModelResponse]]:
        """Yield a snapshot of every model after each received event."""
        assembler = StreamAssembler(models=request.selected_models)
        parser = SSEParser()
        client = self._client()
        try:
            async with client.stream(
                "POST",
                self._url("/api/evaluate"),
                json=request.to_dict(),
                headers={"Accept": "text/event-stream"},
            ) as response:
                await self._raise_for_status(response)
                async for text in response.aiter_text():
                    for payload in parser.feed(text):
                        yield assembler.apply_payload(payload)
                for payload in parser.flush():
                    yield assembler.apply_payload(payload)
        finally:
            if client is not self._http:
                await client.aclose()

        if assembler.system_error:
            logger.error(f"Evaluation failed on the server: {assembler.system_error}")
        self.last_results = assembler.results()

    async def evaluate(self, request: EvaluationRequest) -> List[ModelResponse]:
        """Consume the whole stream and return the final per-model list."""
        async for _ in self.stream_evaluation(request):
            pass
        return self.last_results

    async def _post_json(self, path: str, body: Dict[str, Any]) -> Any:
        client = self._client()
        try:
            response = await client.post(self._url(path), json=body)
            await self._raise_for_status(response)
            return response.json()
        finally:
            if client is not self._http:
                await client.aclose()

    async def _get_json(self, path: str) -> Any:
        client = self._client()
        try:
            response = await client.get(self._url(path))
            await self._raise_for_status(response)
            return response.json()
        finally:
            if client is not self._http:
                await client.aclose()

    async def get_experiment(self, experiment_id: str) -> Dict[str, Any]:
        return await self._get_json(f"/api/experiments/{experiment_id}")

    async def create_test_cases(
        self, experiment_id: str, test_cases: Sequence[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Create test cases and link them to the experiment."""
        body = await self._post_json(
            f"/api/experiments/{experiment_id}/test-cases/bulk",
            {"testCases": list(test_cases)},
        )
        return body["testCases"]

    async def save_results(
        self,
        experiment_id: str,
        test_case_id: str,
        responses: Sequence[ModelResponse],
    ) -> List[Dict[str, Any]]:
        """Persist one result per model. Call after the stream has ended."""
        saved = []
        for item in responses:
            body = {
                "experimentId": experiment_id,
                "testCaseId": test_case_id,
                "modelId": item.model,
                "response": item.response,
                "metrics": item.scores,
                "timing": item.timing,
                "error": item.error,
            }
            saved.append(await self._post_json("/api/experiment-results", body))
        return saved

    async def run_test_cases(
        self,
        experiment_id: str,
        system_prompt: str,
        test_cases: Sequence[Dict[str, Any]],
        models: Sequence[str],
        metrics: Optional[Sequence[str]] = None,
    ) -> Dict[str, List[ModelResponse]]:
        """
        Evaluate each test case in turn and persist its results.

        Args:
            test_cases: Dicts with ``id``, ``userMessage``, ``expectedOutput``.

        Returns:
            Final responses keyed by test case id.
        """
        results: Dict[str, List[ModelResponse]] = {}
        for case in test_cases:
            request = EvaluationRequest.from_dict({
                "systemPrompt": system_prompt,
                "userMessage": case["userMessage"],
                "expectedOutput": case["expectedOutput"],
                "selectedModels": list(models),
                "selectedMetrics": list(metrics or case.get("metrics") or []),
            })
            responses = await self.evaluate(request)
            await self.save_results(experiment_id, case["id"], responses)
            results[case["id"]] = responses
            logger.info(f"Test case {case['id']}: {len(responses)} model result(s) saved")
        return results
