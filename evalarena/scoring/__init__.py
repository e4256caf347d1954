"""
Metric Scorer

- metrics: EXACT_MATCH, COSINE_SIMILARITY and the MetricScorer front end
- embeddings: OpenAI / Ollama embedding backends
- llm_judge: LLM-as-judge on a normalized 0-1 scale
"""

from .embeddings import (
    EmbeddingBackend,
    OllamaEmbeddingBackend,
    OpenAIEmbeddingBackend,
    create_embedding_backend,
)
from .llm_judge import JudgingConfig, LLMJudge
from .metrics import EvaluationMetric, MetricScorer, cosine_similarity, exact_match

__all__ = [
    "EmbeddingBackend",
    "EvaluationMetric",
    "JudgingConfig",
    "LLMJudge",
    "MetricScorer",
    "OllamaEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "cosine_similarity",
    "create_embedding_backend",
    "exact_match",
]
