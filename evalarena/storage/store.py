"""
Result Store

JSON-file document store for experiments, test cases and results. One file
holds everything; every mutation rewrites it atomically (temp file + rename).

Usage:
    store = ResultStore(config.STORE_PATH)
    experiment = store.create_experiment("Arithmetic", "You are helpful", ["gpt-4o"])
    case = store.create_test_case("2+2?", "4")
    store.add_test_case_to_experiment(experiment.id, case.id)
"""

import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from utils.exceptions import DatabaseError, NotFoundError

from ..scoring.metrics import EvaluationMetric
from .models import DEFAULT_TEST_CASE_METRICS, Experiment, ExperimentResult, TestCase, utcnow

logger = logging.getLogger(__name__)

_EMPTY: Dict[str, Dict[str, Any]] = {"experiments": {}, "testCases": {}, "results": {}}


def _validate_metrics(metrics: Iterable[str]) -> List[str]:
    try:
        return [EvaluationMetric.parse(m).value for m in metrics]
    except ValueError as e:
        raise DatabaseError(str(e)) from e


class ResultStore:
    """Thread-safe JSON document store."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data = self._load()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {key: {} for key in _EMPTY}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise DatabaseError(f"Could not read store at {self.path}: {e}") from e
        for key in _EMPTY:
            data.setdefault(key, {})
        logger.debug(
            f"Loaded store {self.path}: {len(data['experiments'])} experiments, "
            f"{len(data['testCases'])} test cases, {len(data['results'])} results"
        )
        return data

    def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        """Write the whole document. Caller holds the lock."""
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise DatabaseError(f"Could not write store at {self.path}: {e}") from e

    @contextmanager
    def _transaction(self) -> Iterator[Dict[str, Dict[str, Any]]]:
        """
        Yield a working copy of the document under the lock.

        The copy replaces the in-memory document only after it has been
        written, so a failed write leaves the store unchanged.
        """
        with self._lock:
            draft = copy.deepcopy(self._data)
            yield draft
            self._save(draft)
            self._data = draft

    # -- Experiments ---------------------------------------------------------

    def create_experiment(
        self,
        name: str,
        system_prompt: str,
        model_ids: Optional[List[str]] = None,
        test_case_ids: Optional[List[str]] = None,
    ) -> Experiment:
        if not name or not name.strip():
            raise DatabaseError("Experiment name is required")
        with self._transaction() as data:
            for tc_id in test_case_ids or []:
                if tc_id not in data["testCases"]:
                    raise NotFoundError(f"Test case not found: {tc_id}")
            experiment = Experiment(
                name=name.strip(),
                system_prompt=system_prompt,
                model_ids=list(dict.fromkeys(model_ids or [])),
                test_case_ids=list(dict.fromkeys(test_case_ids or [])),
            )
            data["experiments"][experiment.id] = experiment.to_dict()
        logger.info(f"Created experiment {experiment.id} ({experiment.name})")
        return experiment

    def get_experiment(self, experiment_id: str) -> Experiment:
        with self._lock:
            data = self._data["experiments"].get(experiment_id)
        if data is None:
            raise NotFoundError(f"Experiment not found: {experiment_id}")
        return Experiment.from_dict(data)

    def list_experiments(self) -> List[Experiment]:
        with self._lock:
            items = [Experiment.from_dict(d) for d in self._data["experiments"].values()]
        return sorted(items, key=lambda e: e.created_at, reverse=True)

    # -- Test cases ------------------------------------------------------------

    def create_test_case(
        self,
        user_message: str,
        expected_output: str,
        metrics: Optional[List[str]] = None,
    ) -> TestCase:
        return self.create_test_cases(
            [{"userMessage": user_message, "expectedOutput": expected_output, "metrics": metrics}]
        )[0]

    def create_test_cases(
        self,
        items: List[Dict[str, Any]],
        experiment_id: Optional[str] = None,
    ) -> List[TestCase]:
        """
        Create several test cases in one write, optionally linking them.

        Args:
            items: Dicts with ``userMessage``, ``expectedOutput`` and
                optional ``metrics``.
            experiment_id: Experiment to link the new test cases to.
        """
        cases = []
        for item in items:
            if "userMessage" not in item or "expectedOutput" not in item:
                raise DatabaseError("Test case needs userMessage and expectedOutput")
            metrics = item.get("metrics") or DEFAULT_TEST_CASE_METRICS
            cases.append(
                TestCase(
                    user_message=item["userMessage"],
                    expected_output=item["expectedOutput"],
                    metrics=_validate_metrics(metrics),
                )
            )

        with self._transaction() as data:
            experiment = None
            if experiment_id is not None:
                experiment = data["experiments"].get(experiment_id)
                if experiment is None:
                    raise NotFoundError(f"Experiment not found: {experiment_id}")
            for case in cases:
                data["testCases"][case.id] = case.to_dict()
                if experiment is not None:
                    experiment["testCaseIds"].append(case.id)
            if experiment is not None:
                experiment["testCaseCount"] = len(experiment["testCaseIds"])
                experiment["updatedAt"] = utcnow()
        return cases

    def get_test_case(self, test_case_id: str) -> TestCase:
        with self._lock:
            data = self._data["testCases"].get(test_case_id)
        if data is None:
            raise NotFoundError(f"Test case not found: {test_case_id}")
        return TestCase.from_dict(data)

    def get_test_cases(self, test_case_ids: Iterable[str]) -> List[TestCase]:
        """Look up several test cases, skipping ids that are not stored."""
        with self._lock:
            rows = [self._data["testCases"][i] for i in test_case_ids if i in self._data["testCases"]]
        return [TestCase.from_dict(r) for r in rows]

    def add_test_case_to_experiment(self, experiment_id: str, test_case_id: str) -> TestCase:
        linked = self.get_experiment(experiment_id).test_case_ids
        case = self.get_test_case(test_case_id)
        if case.id in linked:
            return case
        with self._transaction() as data:
            experiment = data["experiments"].get(experiment_id)
            if experiment is None:
                raise NotFoundError(f"Experiment not found: {experiment_id}")
            if test_case_id not in experiment["testCaseIds"]:
                experiment["testCaseIds"].append(test_case_id)
                experiment["testCaseCount"] = len(experiment["testCaseIds"])
                experiment["updatedAt"] = utcnow()
        return case

    def get_test_cases_for_experiment(self, experiment_id: str) -> List[TestCase]:
        with self._lock:
            experiment = self._data["experiments"].get(experiment_id)
            if experiment is None:
                raise NotFoundError(f"Experiment not found: {experiment_id}")
            return [
                TestCase.from_dict(self._data["testCases"][tc_id])
                for tc_id in experiment["testCaseIds"]
                if tc_id in self._data["testCases"]
            ]

    # -- Results ---------------------------------------------------------------

    def create_experiment_result(
        self,
        experiment_id: str,
        test_case_id: str,
        model_id: str,
        response: str,
        scores: Optional[Dict[str, float]] = None,
        timing: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> ExperimentResult:
        if not experiment_id or not test_case_id or not model_id:
            raise DatabaseError("experimentId, testCaseId, and modelId are required")
        if scores is not None:
            _validate_metrics(scores.keys())

        with self._transaction() as data:
            if experiment_id not in data["experiments"]:
                raise NotFoundError(f"Experiment not found: {experiment_id}")
            if test_case_id not in data["testCases"]:
                raise NotFoundError(f"Test case not found: {test_case_id}")
            result = ExperimentResult(
                experiment_id=experiment_id,
                test_case_id=test_case_id,
                model_id=model_id,
                response=response,
                scores=scores,
                timing=timing,
                error=error,
            )
            data["results"][result.id] = result.to_dict()
        logger.debug(f"Stored result {result.id} for {model_id} on test case {test_case_id}")
        return result

    def get_experiment_results(self, experiment_id: str) -> List[ExperimentResult]:
        with self._lock:
            rows = [r for r in self._data["results"].values() if r["experimentId"] == experiment_id]
        return [ExperimentResult.from_dict(r) for r in rows]

    def get_test_case_results(self, experiment_id: str, test_case_id: str) -> List[ExperimentResult]:
        return [
            r for r in self.get_experiment_results(experiment_id)
            if r.test_case_id == test_case_id
        ]
