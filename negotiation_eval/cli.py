"""
Command-line runner for the negotiation eval harness.

Subcommands:
- extract: mine vendor personas from call-record transcripts
- simulate: run the bot script against a synthetic vendor population
- metrics: compute the eval report for a call-record file
- runs: list or show stored eval runs
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import TypeAdapter
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

from negotiation_eval.actions.report_generation import generate_eval_report, generate_period_table
from negotiation_eval.config.settings import get_settings
from negotiation_eval.metrics.eval_metrics import calculate_metrics, calculate_metrics_by_period
from negotiation_eval.models.calls import dump_call_records, filter_calls, load_call_records
from negotiation_eval.simulations.eval_batch import (
    DEFAULT_BOT_SCRIPT,
    DEFAULT_MARKET_PRICE,
    DEFAULT_TRIP_DETAILS,
    default_session_id,
    generate_synthetic_vendor_batch,
    run_eval_batch,
    simulated_call_to_record,
    summarize_batch,
)
from negotiation_eval.simulations.persona_extractor import analyze_persona_distribution, extract_personas_from_calls
from negotiation_eval.simulations.personas import PERSONA_TEMPLATES, VendorPersona
from negotiation_eval.storage.eval_runs import (
    DateRange,
    EvalRunConfig,
    EvalRunStore,
    compare_with_previous_run,
    create_eval_run,
    get_eval_run_by_id,
    get_eval_runs,
)


logger = logging.getLogger("negotiation_eval")
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _parse_date(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """ISO date or datetime; bare dates cover the whole day."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def _load_personas(path: Optional[Path]) -> list[VendorPersona]:
    if path is None:
        return list(PERSONA_TEMPLATES)
    raw = json.loads(path.read_text(encoding="utf-8"))
    # Accept either a bare list or the output of the extract command
    if isinstance(raw, dict):
        raw = raw.get("personas", [])
    return TypeAdapter(list[VendorPersona]).validate_python(raw)


def _run_extract(args: argparse.Namespace) -> int:
    calls = filter_calls(load_call_records(args.input), data_filter="actual")
    batch = extract_personas_from_calls(calls)
    distribution = analyze_persona_distribution(batch.extractions)

    payload = batch.model_dump(mode="json")
    payload["distribution"] = distribution.model_dump(mode="json")
    _write_json(args.output, payload)

    stats = batch.stats
    console.print(
        f"Extracted {stats.successful_extractions}/{stats.total_calls} calls "
        f"(avg confidence {stats.avg_confidence}%), {stats.personas_generated} personas -> {args.output}"
    )
    return 0


def _run_simulate(args: argparse.Namespace) -> int:
    personas = _load_personas(args.personas)
    vendors = generate_synthetic_vendor_batch(
        DEFAULT_TRIP_DETAILS,
        DEFAULT_MARKET_PRICE,
        count=args.count,
        personas=personas,
    )
    batch = run_eval_batch(vendors, DEFAULT_BOT_SCRIPT)
    _write_json(args.output, summarize_batch(batch))

    if args.records_output:
        session_id = default_session_id()
        records = [simulated_call_to_record(r, DEFAULT_TRIP_DETAILS, session_id) for r in batch.results]
        dump_call_records(records, args.records_output)
        logger.info("Wrote %d synthetic call records to %s", len(records), args.records_output)

    agg = batch.aggregate_metrics
    table = Table(title="Synthetic Eval Batch")
    table.add_column("Persona", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Quote Rate", justify="right")
    table.add_column("Success Rate", justify="right")
    table.add_column("Avg Reduction", justify="right")
    for persona_id, m in agg.by_persona.items():
        table.add_row(persona_id, str(m.calls), f"{m.quote_rate}%", f"{m.success_rate}%", f"{m.avg_reduction}%")
    table.add_row(
        "[bold]All[/bold]",
        str(agg.total_calls),
        f"{agg.quote_obtained_rate}%",
        f"{agg.negotiation_success_rate}%",
        f"{agg.avg_price_reduction}%",
    )
    console.print(table)
    console.print(f"Avg duration {agg.avg_call_duration}s, avg rounds {agg.avg_negotiation_rounds}")
    return 0


def _run_metrics(args: argparse.Namespace) -> int:
    start = _parse_date(args.start)
    end = _parse_date(args.end, end_of_day=True)
    calls = filter_calls(load_call_records(args.input), start=start, end=end, data_filter=args.data)
    logger.info("Computing metrics over %d calls", len(calls))

    if args.period:
        console.print(Markdown(generate_period_table(calculate_metrics_by_period(calls, args.period))))
        return 0

    if args.save:
        config = EvalRunConfig(
            date_range=DateRange(start=start, end=end) if start or end else None,
            min_calls=args.min_calls,
        )
        store = EvalRunStore(args.store) if args.store else None
        run = create_eval_run(calls, config, notes=args.notes, analyze_transcripts=args.analyze, store=store)
        comparison = compare_with_previous_run(run, store) if args.compare else None
        metrics = run.metrics
        console.print(f"Eval run [bold]{run.id}[/bold]")
    else:
        metrics = calculate_metrics(calls, analyze_transcripts=args.analyze)
        comparison = None

    console.print(Markdown(generate_eval_report(metrics, comparison)))
    return 0


def _run_runs(args: argparse.Namespace) -> int:
    store = EvalRunStore(args.store) if args.store else None

    if args.show:
        run = get_eval_run_by_id(args.show, store=store)
        if run is None:
            console.print(f"[red]No eval run {args.show}[/red]")
            return 1
        comparison = compare_with_previous_run(run, store) if args.compare else None
        console.print(f"Eval run [bold]{run.id}[/bold] at {run.run_at.isoformat()} {run.notes}")
        console.print(Markdown(generate_eval_report(run.metrics, comparison)))
        return 0

    table = Table(title="Eval Runs")
    table.add_column("Run", style="cyan")
    table.add_column("At")
    table.add_column("Calls", justify="right")
    table.add_column("Quote", justify="right")
    table.add_column("Attempt", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Safety", justify="right")
    table.add_column("Notes")
    for run in get_eval_runs(limit=args.limit, store=store):
        m = run.metrics
        table.add_row(
            run.id,
            run.run_at.strftime("%Y-%m-%d %H:%M"),
            str(m.total_calls),
            f"{m.quote_obtained_rate}%",
            f"{m.negotiation_attempt_rate}%",
            f"{m.negotiation_success_rate}%",
            f"{m.safety_rate}%",
            run.notes,
        )
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="negotiation-eval",
        description="Extract vendor personas, simulate negotiations and compute eval metrics.",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (defaults to settings).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser("extract", help="Extract personas from call transcripts.")
    extract_parser.add_argument("input", type=Path, help="Call-record JSON file.")
    extract_parser.add_argument("--output", type=Path, default=Path("personas.json"), help="Where to write results.")

    sim_parser = subparsers.add_parser("simulate", help="Run a synthetic vendor batch (LLM-as-vendor).")
    sim_parser.add_argument("--count", type=int, default=10, help="Number of synthetic vendors.")
    sim_parser.add_argument("--personas", type=Path, default=None, help="Personas JSON (from extract).")
    sim_parser.add_argument("--output", type=Path, default=Path("simulation.json"), help="Batch results JSON.")
    sim_parser.add_argument("--records-output", type=Path, default=None, help="Also write call-record JSON.")

    metrics_parser = subparsers.add_parser("metrics", help="Compute the eval report for call records.")
    metrics_parser.add_argument("input", type=Path, help="Call-record JSON file.")
    metrics_parser.add_argument("--analyze", action="store_true", help="Classify transcripts (one request per call).")
    metrics_parser.add_argument("--period", choices=["day", "week", "month"], default=None, help="Group by period.")
    metrics_parser.add_argument("--start", default=None, help="Start date (ISO).")
    metrics_parser.add_argument("--end", default=None, help="End date (ISO, inclusive).")
    metrics_parser.add_argument("--data", choices=["all", "actual", "synthetic"], default="all", help="Call filter.")
    metrics_parser.add_argument("--save", action="store_true", help="Persist as an eval run.")
    metrics_parser.add_argument("--compare", action="store_true", help="Compare with the previous stored run.")
    metrics_parser.add_argument("--notes", default="", help="Notes stored with the eval run.")
    metrics_parser.add_argument("--min-calls", type=int, default=1, help="Stored in the eval run config.")
    metrics_parser.add_argument("--store", type=Path, default=None, help="Eval run file (defaults to settings).")

    runs_parser = subparsers.add_parser("runs", help="List or show stored eval runs.")
    runs_parser.add_argument("--limit", type=int, default=50, help="Max runs to list.")
    runs_parser.add_argument("--show", default=None, help="Show one run by id.")
    runs_parser.add_argument("--compare", action="store_true", help="Compare the shown run with its predecessor.")
    runs_parser.add_argument("--store", type=Path, default=None, help="Eval run file (defaults to settings).")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()

    args = build_parser().parse_args(argv)
    _configure_logging(args.log_level or get_settings().log_level)

    handlers = {
        "extract": _run_extract,
        "simulate": _run_simulate,
        "metrics": _run_metrics,
        "runs": _run_runs,
    }
    return handlers[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
