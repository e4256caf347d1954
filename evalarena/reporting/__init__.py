"""Per-experiment aggregation and report rendering."""

from .summary import (
    ExperimentSummary,
    ModelSummary,
    render_markdown,
    summarize_results,
    write_report,
)

__all__ = [
    "ExperimentSummary",
    "ModelSummary",
    "render_markdown",
    "summarize_results",
    "write_report",
]
