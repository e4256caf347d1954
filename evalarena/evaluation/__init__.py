"""
Evaluation pipeline: request types and the streaming fan-out orchestrator.

Usage:
    from evalarena.evaluation import EvaluationOrchestrator, EvaluationRequest
"""

from .models import EvaluationRequest, ModelRunState
from .orchestrator import EvaluationOrchestrator

__all__ = [
    "EvaluationOrchestrator",
    "EvaluationRequest",
    "ModelRunState",
]
