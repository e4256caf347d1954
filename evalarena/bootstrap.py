"""
Process-level wiring.

Reads settings from config once at startup and builds the provider
registry, the metric scorer and the orchestrator that the API and CLI
share. Nothing here holds global state; callers keep the returned objects.
"""

import logging
from typing import Optional

import config
from utils.exceptions import ConfigError, UnsupportedModelError
from utils.retry import RetryConfig

from .catalog import ModelCatalog
from .evaluation.orchestrator import EvaluationOrchestrator
from .providers.base import ProviderCredentials, ProviderRegistry
from .scoring.embeddings import DEFAULT_OPENAI_EMBEDDING_MODEL, EmbeddingBackend, create_embedding_backend
from .scoring.llm_judge import LLMJudge
from .scoring.metrics import MetricScorer
from .storage.store import ResultStore

logger = logging.getLogger(__name__)


def load_catalog() -> ModelCatalog:
    return ModelCatalog.load(config.MODEL_CATALOG_PATH)


def build_credentials() -> ProviderCredentials:
    return ProviderCredentials(
        openai_api_key=config.OPENAI_API_KEY,
        google_api_key=config.GOOGLE_API_KEY,
        groq_api_key=config.GROQ_API_KEY,
        ollama_host=config.OLLAMA_HOST,
        timeout=config.REQUEST_TIMEOUT_SECONDS,
    )


def build_registry(catalog: Optional[ModelCatalog] = None) -> ProviderRegistry:
    catalog = catalog or load_catalog()
    return ProviderRegistry(build_credentials(), catalog=catalog.family_map())


def build_embedder() -> Optional[EmbeddingBackend]:
    model: Optional[str] = config.EMBEDDING_MODEL
    if config.EMBEDDING_PROVIDER.lower() == "ollama" and model == DEFAULT_OPENAI_EMBEDDING_MODEL:
        model = None  # fall back to the backend's own default
    try:
        return create_embedding_backend(
            config.EMBEDDING_PROVIDER,
            model=model,
            api_key=config.OPENAI_API_KEY,
            host=config.OLLAMA_HOST,
            retry=RetryConfig(max_attempts=config.SCORING_MAX_RETRIES),
            timeout=config.REQUEST_TIMEOUT_SECONDS,
        )
    except ConfigError as e:
        logger.warning(f"COSINE_SIMILARITY disabled: {e}")
        return None


def build_scorer(registry: ProviderRegistry) -> MetricScorer:
    judge = None
    try:
        judge = LLMJudge(
            registry.get(config.JUDGE_MODEL),
            retry=RetryConfig(max_attempts=config.SCORING_MAX_RETRIES),
        )
    except UnsupportedModelError as e:
        logger.warning(f"LLM_JUDGE disabled: {e}")
    return MetricScorer(embedder=build_embedder(), judge=judge)


def build_orchestrator(catalog: Optional[ModelCatalog] = None) -> EvaluationOrchestrator:
    registry = build_registry(catalog)
    return EvaluationOrchestrator(registry, build_scorer(registry))


def build_store() -> ResultStore:
    return ResultStore(config.STORE_PATH)
