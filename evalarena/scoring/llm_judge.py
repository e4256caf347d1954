"""
LLM-as-Judge Evaluator

Asks an auxiliary model to rate how well a response matches the expected
output. The judge replies on a 0-100 scale; scores leave this module
normalized to 0-1 so they sit on the same scale as the other metrics.

Usage:
    from evalarena.scoring.llm_judge import LLMJudge

    judge = LLMJudge(provider=registry.get("gpt-4o"))
    score = await judge.score(response="Paris", expected="Paris is the capital.")
    print(score)  # e.g. 0.85
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from utils.exceptions import ScoringError
from utils.retry import RetryConfig, async_retry_with_backoff

from ..providers.base import BaseProvider, GenerationConfig, Message
from .embeddings import RETRYABLE_API_ERRORS

logger = logging.getLogger(__name__)


@dataclass
class JudgingConfig:
    """Configuration for LLM-as-Judge evaluation."""

    min_score: float = 0.0
    max_score: float = 100.0
    temperature: float = 0.0  # Low temp for consistency
    max_tokens: int = 256


JUDGE_SYSTEM_PROMPT = "You are an expert evaluator."

JUDGE_PROMPT = """You are an expert evaluator tasked with comparing a model's response against an expected output. Evaluate the semantic similarity, factual accuracy, and overall quality of the response.

Consider the following aspects in your evaluation:
- Semantic similarity: How well does the response match the meaning and intent of the expected output?
- Factual accuracy: Are all facts and details consistent with the expected output?
- Completeness: Does the response cover all key points from the expected output?
- Clarity and coherence: Is the response well-structured and clearly expressed?

Expected Output:
{expected}

Actual Response:
{response}

Rate the response on a scale of 0 to 100:
- 90-100: Near perfect match in meaning and content
- 70-89: Good match with minor differences
- 50-69: Partial match with some key differences
- 0-49: Poor match or significant differences

Return only a JSON object with a "score" field containing your rating from 0-100.
Example: {{"score": 85}}"""

_SCORE_PATTERN = re.compile(r'"?score"?\s*[:=]\s*(-?\d+(?:\.\d+)?)', re.IGNORECASE)


class LLMJudge:
    """
    Rates a response against an expected output with a judge model.

    The judge provider is any BaseProvider; JSON mode is requested so
    providers that support it return a bare object.
    """

    def __init__(
        self,
        provider: BaseProvider,
        config: Optional[JudgingConfig] = None,
        retry: Optional[RetryConfig] = None,
    ):
        """
        Args:
            provider: Model backend to use as judge.
            config: Judging configuration.
            retry: Retry policy for the judge call.
        """
        self.provider = provider
        self.config = config or JudgingConfig()
        self.retry = retry or RetryConfig()

    def build_messages(self, response: str, expected: str) -> List[Message]:
        return [
            Message(role="system", content=JUDGE_SYSTEM_PROMPT),
            Message(role="user", content=JUDGE_PROMPT.format(expected=expected, response=response)),
        ]

    async def raw_score(self, response: str, expected: str) -> float:
        """Judge score on the model's native 0-100 scale."""
        generation = GenerationConfig(
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            json_mode=True,
        )
        result = await async_retry_with_backoff(
            self.provider.complete,
            args=(self.build_messages(response, expected),),
            kwargs={"config": generation},
            config=self.retry,
            retryable_exceptions=RETRYABLE_API_ERRORS,
        )
        logger.debug(f"Judge {self.provider.model} replied: {result.text!r}")

        score = self._parse_score(result.text)
        if score is None:
            raise ScoringError(f"Could not parse judge score from: {result.text[:200]!r}")
        return max(self.config.min_score, min(self.config.max_score, score))

    async def score(self, response: str, expected: str) -> float:
        """Judge score normalized to 0-1."""
        raw = await self.raw_score(response, expected)
        span = self.config.max_score - self.config.min_score
        return (raw - self.config.min_score) / span

    def _parse_score(self, text: str) -> Optional[float]:
        """Parse {"score": N}, falling back to a score-like pattern in free text."""
        text = text.strip()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None

        if isinstance(data, dict) and "score" in data:
            try:
                return float(data["score"])
            except (TypeError, ValueError):
                return None
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return float(data)

        match = _SCORE_PATTERN.search(text)
        if match:
            return float(match.group(1))
        return None
