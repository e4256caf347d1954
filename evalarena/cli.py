"""
EvalArena CLI

Command-line interface for serving the API and running evaluations.

Usage:
    # Start the API server
    python -m evalarena serve --port 8000

    # Show the model catalog
    python -m evalarena models

    # Stream one evaluation against a running server
    python -m evalarena evaluate -m gpt-4o-mini,gemini-1.5-flash \\
        --system "You are helpful" --prompt "2+2?" --expected 4 --metrics EXACT_MATCH

    # Evaluate a file of test cases for an experiment and store the results
    python -m evalarena bulk --experiment <id> --file cases.json

    # Write a markdown/JSON report for an experiment
    python -m evalarena report --experiment <id>
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import httpx
from rich.console import Console
from rich.live import Live
from rich.table import Table

import config
from utils.exceptions import EvalArenaError
from utils.logging_config import setup_logging

console = Console()


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _responses_table(responses: Sequence, title: str = "Responses") -> Table:
    table = Table(title=title)
    table.add_column("Model", style="cyan")
    table.add_column("Response")
    table.add_column("TTFT (ms)", justify="right")
    table.add_column("Tokens/sec", justify="right")
    table.add_column("Scores")

    for r in responses:
        streaming = r.timing.get("streaming") or {}
        ttft = streaming.get("timeToFirstToken")
        tps = streaming.get("tokensPerSecond")
        scores = ", ".join(f"{k}={v:.2f}" for k, v in r.scores.items())
        text = r.response if len(r.response) <= 200 else r.response[:200] + "..."
        if r.error:
            text = f"[red]{r.error}[/red]" if not r.response else f"{text}\n[red]{r.error}[/red]"
        table.add_row(
            r.model,
            text,
            f"{ttft:.0f}" if ttft is not None else "-",
            f"{tps:.1f}" if tps is not None else "-",
            scores or "-",
        )
    return table


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the API server."""
    import uvicorn

    from .api.app import create_app

    console.print(f"[cyan]EvalArena API on http://{args.host}:{args.port}[/cyan]")
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


async def cmd_models(args: argparse.Namespace) -> int:
    """Print the model catalog."""
    from .catalog import ModelCatalog

    catalog = ModelCatalog.load(Path(args.catalog) if args.catalog else config.MODEL_CATALOG_PATH)
    table = Table(title="Model Catalog")
    table.add_column("Category", style="cyan")
    table.add_column("Model")
    table.add_column("Label")
    table.add_column("Provider", style="dim")
    for entry in catalog.entries:
        table.add_row(entry.category, entry.value, entry.label, entry.provider)
    console.print(table)
    return 0


async def cmd_evaluate(args: argparse.Namespace) -> int:
    """Stream one evaluation from a running server."""
    from .evaluation.models import EvaluationRequest
    from .streaming.client import EvaluationClient

    request = EvaluationRequest.from_dict({
        "systemPrompt": args.system,
        "userMessage": args.prompt,
        "expectedOutput": args.expected,
        "selectedModels": _split(args.models),
        "selectedMetrics": _split(args.metrics) if args.metrics else [],
    })

    async with httpx.AsyncClient(timeout=None) as http:
        client = EvaluationClient(args.url, http_client=http)
        with Live(console=console, refresh_per_second=8) as live:
            async for snapshot in client.stream_evaluation(request):
                live.update(_responses_table(snapshot, title="Evaluating..."))
            live.update(_responses_table(client.last_results, title="Results"))

        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, "w") as f:
                json.dump(
                    [{"model": r.model, "response": r.response, "error": r.error, "metrics": r.metrics}
                     for r in client.last_results],
                    f,
                    indent=2,
                )
            console.print(f"\n[green]Results saved to {output_path}[/green]")

    return 1 if any(r.error for r in client.last_results) else 0


async def cmd_bulk(args: argparse.Namespace) -> int:
    """Create test cases from a JSON file, evaluate each and store results."""
    from .streaming.client import EvaluationClient

    path = Path(args.file)
    if not path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        return 1
    with open(path) as f:
        cases = json.load(f)
    if isinstance(cases, dict):
        cases = cases.get("testCases", [])

    async with httpx.AsyncClient(timeout=None) as http:
        client = EvaluationClient(args.url, http_client=http)
        experiment = await client.get_experiment(args.experiment)
        created = await client.create_test_cases(args.experiment, cases)
        console.print(
            f"[cyan]{experiment['name']}: evaluating {len(created)} test case(s) "
            f"against {', '.join(experiment['modelIds'])}[/cyan]"
        )

        metrics = _split(args.metrics) if args.metrics else None
        results = await client.run_test_cases(
            experiment_id=args.experiment,
            system_prompt=experiment["systemPrompt"],
            test_cases=created,
            models=experiment["modelIds"],
            metrics=metrics,
        )

    errors = 0
    for case in created:
        responses = results.get(case["id"], [])
        errors += sum(1 for r in responses if r.error)
        console.print(_responses_table(responses, title=case["userMessage"][:60]))
    console.print(f"\n[green]Stored results for {len(results)} test case(s)[/green]")
    return 1 if errors else 0


async def cmd_report(args: argparse.Namespace) -> int:
    """Summarize an experiment from the local store."""
    from .reporting.summary import summarize_results, write_report
    from .storage.store import ResultStore

    store = ResultStore(Path(args.store) if args.store else config.STORE_PATH)
    experiment = store.get_experiment(args.experiment)
    results = store.get_experiment_results(experiment.id)
    test_cases = store.get_test_cases({r.test_case_id for r in results})
    summary = summarize_results(results, experiment=experiment, test_cases=test_cases)

    table = Table(title=f"Experiment: {experiment.name}")
    table.add_column("Model", style="cyan")
    table.add_column("Results", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Overall", justify="right")
    table.add_column("Mean duration (ms)", justify="right")
    for m in summary.models:
        table.add_row(
            m.model_id,
            str(m.results),
            str(m.errors),
            f"{m.overall:.3f}" if m.overall is not None else "-",
            f"{m.mean_duration_ms:.0f}" if m.mean_duration_ms is not None else "-",
        )
    console.print(table)

    if not args.no_report:
        report_path = write_report(summary, Path(args.report_dir))
        console.print(f"[green]Report saved to {report_path}[/green]")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="evalarena",
        description="Side-by-side streaming LLM evaluation",
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default=config.API_HOST, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=config.API_PORT, help="Port")

    # models
    models_parser = subparsers.add_parser("models", help="Show the model catalog")
    models_parser.add_argument("--catalog", help="Path to catalog YAML")

    # evaluate
    eval_parser = subparsers.add_parser("evaluate", help="Stream one evaluation")
    eval_parser.add_argument("--models", "-m", required=True, help="Comma-separated model ids")
    eval_parser.add_argument("--system", default="You are a helpful assistant.", help="System prompt")
    eval_parser.add_argument("--prompt", "-p", required=True, help="User message")
    eval_parser.add_argument("--expected", "-e", required=True, help="Expected output")
    eval_parser.add_argument("--metrics", help="Comma-separated metrics (EXACT_MATCH, ...)")
    eval_parser.add_argument("--output", "-o", help="Save final responses as JSON")
    eval_parser.add_argument("--url", default=config.API_URL, help="API base URL")

    # bulk
    bulk_parser = subparsers.add_parser("bulk", help="Evaluate a file of test cases")
    bulk_parser.add_argument("--experiment", "-x", required=True, help="Experiment id")
    bulk_parser.add_argument("--file", "-f", required=True, help="JSON list of test cases")
    bulk_parser.add_argument("--metrics", help="Comma-separated metrics (default: each test case's own)")
    bulk_parser.add_argument("--url", default=config.API_URL, help="API base URL")

    # report
    report_parser = subparsers.add_parser("report", help="Summarize an experiment")
    report_parser.add_argument("--experiment", "-x", required=True, help="Experiment id")
    report_parser.add_argument("--store", help="Path to the result store JSON")
    report_parser.add_argument("--report-dir", default=str(config.REPORT_DIR), help="Report output directory")
    report_parser.add_argument("--no-report", action="store_true", help="Print only, write no files")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config.validate_config()
    setup_logging(level=args.log_level, log_dir=config.LOG_DIR, console=args.command == "serve")

    try:
        if args.command == "serve":
            return cmd_serve(args)
        elif args.command == "models":
            return asyncio.run(cmd_models(args))
        elif args.command == "evaluate":
            return asyncio.run(cmd_evaluate(args))
        elif args.command == "bulk":
            return asyncio.run(cmd_bulk(args))
        elif args.command == "report":
            return asyncio.run(cmd_report(args))
        else:
            parser.print_help()
            return 0
    except EvalArenaError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
