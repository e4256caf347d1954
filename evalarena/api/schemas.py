"""
Request bodies for the HTTP API (camelCase on the wire).
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..scoring.metrics import EvaluationMetric


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EvaluateBody(CamelModel):
    """Body of POST /api/evaluate."""

    system_prompt: str
    user_message: str
    expected_output: str
    selected_models: List[str] = Field(min_length=1)
    selected_metrics: List[EvaluationMetric] = Field(default_factory=list)


class CreateExperimentBody(CamelModel):
    name: str = Field(min_length=1)
    system_prompt: str
    model_ids: List[str] = Field(default_factory=list)
    test_case_ids: Optional[List[str]] = None


class TestCaseBody(CamelModel):
    __test__ = False

    user_message: str
    expected_output: str
    metrics: Optional[List[EvaluationMetric]] = None


class BulkTestCasesBody(CamelModel):
    test_cases: List[TestCaseBody]


class LinkTestCaseBody(CamelModel):
    test_case_id: Optional[str] = None


class ExperimentResultBody(CamelModel):
    """Body of POST /api/experiment-results; ids are checked by the handler."""

    experiment_id: Optional[str] = None
    test_case_id: Optional[str] = None
    model_id: Optional[str] = None
    response: str = ""
    metrics: Optional[Dict[EvaluationMetric, float]] = None
    timing: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
