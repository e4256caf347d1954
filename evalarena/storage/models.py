"""
Persisted records: experiments, test cases and per-model results.

Records serialize to camelCase dicts, matching the HTTP API.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..scoring.metrics import EvaluationMetric

DEFAULT_TEST_CASE_METRICS = [EvaluationMetric.EXACT_MATCH.value]


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Experiment:
    """A named system prompt evaluated against a fixed set of models."""

    name: str
    system_prompt: str
    model_ids: List[str] = field(default_factory=list)
    test_case_ids: List[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "systemPrompt": self.system_prompt,
            "modelIds": list(self.model_ids),
            "testCaseIds": list(self.test_case_ids),
            "testCaseCount": len(self.test_case_ids),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Experiment":
        return cls(
            id=data["id"],
            name=data["name"],
            system_prompt=data["systemPrompt"],
            model_ids=list(data.get("modelIds", [])),
            test_case_ids=list(data.get("testCaseIds", [])),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class TestCase:
    """A user message with the output it is expected to produce."""

    __test__ = False  # not a pytest class

    user_message: str
    expected_output: str
    metrics: List[str] = field(default_factory=lambda: list(DEFAULT_TEST_CASE_METRICS))
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userMessage": self.user_message,
            "expectedOutput": self.expected_output,
            "metrics": list(self.metrics),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestCase":
        return cls(
            id=data["id"],
            user_message=data["userMessage"],
            expected_output=data["expectedOutput"],
            metrics=list(data.get("metrics") or DEFAULT_TEST_CASE_METRICS),
            created_at=data.get("createdAt", ""),
        )


@dataclass
class ExperimentResult:
    """Final outcome of one model on one test case within an experiment."""

    experiment_id: str
    test_case_id: str
    model_id: str
    response: str
    scores: Optional[Dict[str, float]] = None
    timing: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "experimentId": self.experiment_id,
            "testCaseId": self.test_case_id,
            "modelId": self.model_id,
            "response": self.response,
            "metrics": dict(self.scores) if self.scores is not None else None,
            "timing": self.timing,
            "error": self.error,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExperimentResult":
        return cls(
            id=data["id"],
            experiment_id=data["experimentId"],
            test_case_id=data["testCaseId"],
            model_id=data["modelId"],
            response=data.get("response", ""),
            scores=data.get("metrics"),
            timing=data.get("timing"),
            error=data.get("error"),
            created_at=data.get("createdAt", ""),
        )
