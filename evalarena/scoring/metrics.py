"""
Evaluation Metrics

Scores a model response against the expected output. All scores are on a
0-1 scale (cosine similarity can in principle go negative).

Usage:
    scorer = MetricScorer(embedder=OpenAIEmbeddingBackend(api_key="..."), judge=judge)
    scores = await scorer.evaluate_response(
        "4", "4", [EvaluationMetric.EXACT_MATCH, EvaluationMetric.COSINE_SIMILARITY]
    )
    # {"EXACT_MATCH": 1.0, "COSINE_SIMILARITY": 0.99...}
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Sequence

import numpy as np

from utils.exceptions import ScoringError
from utils.logging_config import log_performance

if TYPE_CHECKING:
    from .embeddings import EmbeddingBackend
    from .llm_judge import LLMJudge

logger = logging.getLogger(__name__)


class EvaluationMetric(Enum):
    """Metric kinds. The value is the wire string."""

    EXACT_MATCH = "EXACT_MATCH"
    COSINE_SIMILARITY = "COSINE_SIMILARITY"
    LLM_JUDGE = "LLM_JUDGE"

    @classmethod
    def parse(cls, value: str) -> "EvaluationMetric":
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown metric '{value}'. Valid: {valid}")


def exact_match(response: str, expected: str) -> float:
    """1.0 if the trimmed strings are identical, else 0.0."""
    return 1.0 if response.strip() == expected.strip() else 0.0


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    """
    Cosine similarity of two embedding vectors.

    Returns 0.0 instead of raising when the vectors differ in length or
    either has zero magnitude.
    """
    if len(v1) != len(v2) or len(v1) == 0:
        return 0.0

    a = np.asarray(v1, dtype=np.float64)
    b = np.asarray(v2, dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


class MetricScorer:
    """
    Runs the requested metrics for one (response, expected) pair.

    Metrics run sequentially since embedding and judge backends are
    rate-sensitive. The call is all-or-nothing: if any metric fails, no
    partial scores are returned.
    """

    def __init__(
        self,
        embedder: Optional["EmbeddingBackend"] = None,
        judge: Optional["LLMJudge"] = None,
    ):
        self.embedder = embedder
        self.judge = judge

    async def semantic_similarity(self, response: str, expected: str) -> float:
        if self.embedder is None:
            raise ScoringError("COSINE_SIMILARITY requested but no embedding backend is configured")
        response_vec = await self.embedder.embed(response)
        expected_vec = await self.embedder.embed(expected)
        return cosine_similarity(response_vec, expected_vec)

    async def judge_score(self, response: str, expected: str) -> float:
        if self.judge is None:
            raise ScoringError("LLM_JUDGE requested but no judge model is configured")
        return await self.judge.score(response, expected)

    @log_performance()
    async def evaluate_response(
        self,
        response: str,
        expected: str,
        metrics: Iterable[EvaluationMetric],
    ) -> Dict[str, float]:
        """
        Score a response with each requested metric.

        Returns:
            Mapping of metric wire name to score.

        Raises:
            ScoringError: If any metric fails.
        """
        results: Dict[str, float] = {}
        for metric in metrics:
            try:
                if metric == EvaluationMetric.EXACT_MATCH:
                    score = exact_match(response, expected)
                elif metric == EvaluationMetric.COSINE_SIMILARITY:
                    score = await self.semantic_similarity(response, expected)
                elif metric == EvaluationMetric.LLM_JUDGE:
                    score = await self.judge_score(response, expected)
                else:
                    raise ScoringError(f"Unsupported metric: {metric}")
            except ScoringError:
                raise
            except Exception as e:
                logger.warning(f"{metric.value} failed: {e}")
                raise ScoringError(f"{metric.value} failed: {e}") from e
            results[metric.value] = score

        return results
