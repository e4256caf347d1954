"""
Evaluation request and per-model run state.

Usage:
    request = EvaluationRequest.from_dict({
        "systemPrompt": "You are helpful",
        "userMessage": "2+2?",
        "expectedOutput": "4",
        "selectedModels": ["gpt-4o-mini", "gemini-1.5-flash"],
        "selectedMetrics": ["EXACT_MATCH"],
    })
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from utils.exceptions import RequestError

from ..providers.base import Message, TimingInfo
from ..scoring.metrics import EvaluationMetric
from ..streaming.events import StreamEvent


def _dedupe(values: Iterable[Any]) -> Tuple[Any, ...]:
    seen: Dict[Any, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return tuple(seen)


@dataclass(frozen=True)
class EvaluationRequest:
    """One prompt, evaluated against several models. Immutable once built."""

    system_prompt: str
    user_message: str
    expected_output: str
    selected_models: Tuple[str, ...]
    selected_metrics: Tuple[EvaluationMetric, ...] = ()

    def __post_init__(self) -> None:
        models = _dedupe(m for m in self.selected_models if m)
        if not models:
            raise RequestError("selectedModels must contain at least one model")
        object.__setattr__(self, "selected_models", models)
        object.__setattr__(self, "selected_metrics", _dedupe(self.selected_metrics))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvaluationRequest":
        """Build from the camelCase wire body.

        Raises:
            RequestError: Missing field, wrong type or unknown metric.
        """
        if not isinstance(data, dict):
            raise RequestError("Request body must be a JSON object")

        missing = [
            key for key in ("systemPrompt", "userMessage", "expectedOutput", "selectedModels")
            if key not in data
        ]
        if missing:
            raise RequestError(f"Missing required field(s): {', '.join(missing)}")

        models = data["selectedModels"]
        if not isinstance(models, list) or not all(isinstance(m, str) for m in models):
            raise RequestError("selectedModels must be a list of strings")

        metrics_raw = data.get("selectedMetrics") or []
        if not isinstance(metrics_raw, list):
            raise RequestError("selectedMetrics must be a list of strings")
        try:
            metrics = tuple(EvaluationMetric.parse(m) for m in metrics_raw)
        except ValueError as e:
            raise RequestError(str(e)) from e

        return cls(
            system_prompt=str(data["systemPrompt"]),
            user_message=str(data["userMessage"]),
            expected_output=str(data["expectedOutput"]),
            selected_models=tuple(models),
            selected_metrics=metrics,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "systemPrompt": self.system_prompt,
            "userMessage": self.user_message,
            "expectedOutput": self.expected_output,
            "selectedModels": list(self.selected_models),
            "selectedMetrics": [m.value for m in self.selected_metrics],
        }

    def messages(self) -> List[Message]:
        return [
            Message(role="system", content=self.system_prompt),
            Message(role="user", content=self.user_message),
        ]


@dataclass
class ModelRunState:
    """
    Accumulator for one model during one run.

    Owned by that model's task; everything else only sees snapshots.
    """

    model_id: str
    accumulated_response: str = ""
    last_timing: Optional[TimingInfo] = None
    terminal: bool = False
    error: Optional[str] = None
    deltas: int = field(default=0, repr=False)

    def append(self, delta: str) -> StreamEvent:
        """Extend the response and return the event describing it."""
        if self.terminal:
            raise RuntimeError(f"{self.model_id} already reached a terminal state")
        self.accumulated_response += delta
        self.deltas += 1
        return self.snapshot(delta=delta)

    def snapshot(self, delta: Optional[str] = None) -> StreamEvent:
        return StreamEvent(
            model=self.model_id,
            response=self.accumulated_response,
            delta=delta,
        )

    def finish(self, scores: Optional[Dict[str, float]] = None) -> StreamEvent:
        """Terminal event carrying timing and, when scored, the evaluation."""
        self.terminal = True
        metrics: Dict[str, Any] = self.last_timing.to_dict() if self.last_timing else {}
        if scores is not None:
            metrics["evaluation"] = dict(scores)
        return StreamEvent(
            model=self.model_id,
            response=self.accumulated_response,
            metrics=metrics,
            error=self.error,
        )

    def fail(self, message: str) -> StreamEvent:
        """Terminal error event; the partial response is discarded."""
        self.terminal = True
        self.error = message
        return StreamEvent(model=self.model_id, response="", error=message)
