"""
Experiment report generator.

Aggregates stored results per model and renders markdown/JSON reports
using Jinja2 templates.

Usage:
    summary = summarize_results(store.get_experiment_results(exp.id), experiment=exp)
    md_path = write_report(summary, Path("./reports"))
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from jinja2 import Environment, FileSystemLoader

from utils.exceptions import ReportingError
from utils.logging_config import log_performance

from ..storage.models import Experiment, ExperimentResult, TestCase

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


def _sanitize_name(name: str) -> str:
    """Convert a name to a safe filename stem."""
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "experiment"


def _score_rating(score: float) -> str:
    """Map a 0-1 score to a rating string."""
    if score >= 0.9:
        return "Excellent"
    elif score >= 0.7:
        return "Good"
    elif score >= 0.5:
        return "Partial"
    else:
        return "Poor"


@dataclass
class ModelSummary:
    """Aggregate of one model's results within an experiment."""

    model_id: str
    results: int = 0
    errors: int = 0
    metric_means: Dict[str, float] = field(default_factory=dict)
    mean_duration_ms: Optional[float] = None
    mean_tokens_per_second: Optional[float] = None

    @property
    def overall(self) -> Optional[float]:
        if not self.metric_means:
            return None
        return float(np.mean(list(self.metric_means.values())))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelId": self.model_id,
            "results": self.results,
            "errors": self.errors,
            "metricMeans": dict(self.metric_means),
            "overall": self.overall,
            "meanDurationMs": self.mean_duration_ms,
            "meanTokensPerSecond": self.mean_tokens_per_second,
        }


@dataclass
class ExperimentSummary:
    """Per-model aggregates for one experiment."""

    experiment_id: str
    experiment_name: str = ""
    test_cases: int = 0
    models: List[ModelSummary] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def best_model(self) -> Optional[str]:
        ranked = [m for m in self.models if m.overall is not None]
        if not ranked:
            return None
        return max(ranked, key=lambda m: m.overall).model_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experimentId": self.experiment_id,
            "experimentName": self.experiment_name,
            "testCases": self.test_cases,
            "bestModel": self.best_model,
            "models": [m.to_dict() for m in self.models],
            "generatedAt": self.generated_at.isoformat(),
        }


def _mean(values: List[float]) -> Optional[float]:
    return float(np.mean(values)) if values else None


def summarize_results(
    results: Sequence[ExperimentResult],
    experiment: Optional[Experiment] = None,
    test_cases: Optional[Sequence[TestCase]] = None,
) -> ExperimentSummary:
    """
    Aggregate results per model.

    Errored results count towards ``errors`` and are excluded from the
    metric means. Models are listed in first-seen order.

    Args:
        results: Stored results for one experiment.
        experiment: Experiment the results belong to.
        test_cases: When given, a result only contributes the metrics its
            test case requested. Other stored scores are ignored.
    """
    requested: Dict[str, set] = {tc.id: set(tc.metrics) for tc in test_cases or []}

    by_model: Dict[str, List[ExperimentResult]] = {}
    for result in results:
        by_model.setdefault(result.model_id, []).append(result)

    models = []
    for model_id, rows in by_model.items():
        scored: Dict[str, List[float]] = {}
        durations: List[float] = []
        throughput: List[float] = []
        errors = 0
        for row in rows:
            if row.error:
                errors += 1
                continue
            wanted = requested.get(row.test_case_id)
            for metric, value in (row.scores or {}).items():
                if wanted is not None and metric not in wanted:
                    continue
                scored.setdefault(metric, []).append(float(value))
            timing = row.timing or {}
            if "duration" in timing:
                durations.append(float(timing["duration"]))
            streaming = timing.get("streaming") or {}
            if "tokensPerSecond" in streaming:
                throughput.append(float(streaming["tokensPerSecond"]))

        models.append(
            ModelSummary(
                model_id=model_id,
                results=len(rows),
                errors=errors,
                metric_means={m: float(np.mean(v)) for m, v in sorted(scored.items())},
                mean_duration_ms=_mean(durations),
                mean_tokens_per_second=_mean(throughput),
            )
        )

    test_case_ids = {r.test_case_id for r in results}
    experiment_id = experiment.id if experiment else (results[0].experiment_id if results else "")
    return ExperimentSummary(
        experiment_id=experiment_id,
        experiment_name=experiment.name if experiment else "",
        test_cases=len(experiment.test_case_ids) if experiment else len(test_case_ids),
        models=models,
    )


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _build_context(summary: ExperimentSummary) -> Dict[str, Any]:
    metric_names = sorted({name for m in summary.models for name in m.metric_means})
    rows = []
    for m in summary.models:
        rows.append(
            {
                "model": m.model_id,
                "results": m.results,
                "errors": m.errors,
                "metrics": [
                    f"{m.metric_means[name]:.3f}" if name in m.metric_means else "-"
                    for name in metric_names
                ],
                "overall": f"{m.overall:.3f}" if m.overall is not None else "-",
                "rating": _score_rating(m.overall) if m.overall is not None else "-",
                "duration": f"{m.mean_duration_ms:.0f}" if m.mean_duration_ms is not None else "-",
                "tps": f"{m.mean_tokens_per_second:.1f}" if m.mean_tokens_per_second is not None else "-",
            }
        )
    return {
        "experiment_id": summary.experiment_id,
        "experiment_name": summary.experiment_name or summary.experiment_id,
        "test_cases": summary.test_cases,
        "timestamp": summary.generated_at.strftime("%Y-%m-%d %H:%M:%S"),
        "metric_names": metric_names,
        "rows": rows,
        "best_model": summary.best_model,
    }


def render_markdown(summary: ExperimentSummary) -> str:
    """Render the summary through the markdown template."""
    template = _environment().get_template("experiment_report.md.j2")
    return template.render(**_build_context(summary))


@log_performance()
def write_report(summary: ExperimentSummary, directory: Path) -> Path:
    """
    Write ``<name>_<timestamp>.md`` and ``.json`` into directory.

    Returns:
        Path to the markdown report.

    Raises:
        ReportingError: If rendering or writing fails.
    """
    try:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        stem = (
            f"{_sanitize_name(summary.experiment_name or summary.experiment_id)}_"
            f"{summary.generated_at.strftime('%Y%m%d_%H%M%S')}"
        )

        md_path = directory / f"{stem}.md"
        md_path.write_text(render_markdown(summary))
        logger.info(f"Markdown report saved to {md_path}")

        json_path = directory / f"{stem}.json"
        with open(json_path, "w") as f:
            json.dump(summary.to_dict(), f, indent=2, default=str)
        logger.info(f"JSON report saved to {json_path}")

        return md_path

    except Exception as e:
        raise ReportingError(f"Failed to generate report: {e}") from e
