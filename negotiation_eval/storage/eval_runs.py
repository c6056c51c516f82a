"""
Eval run persistence.

Runs are stored as flat rows in a JSON file: the headline and count metrics
as scalars (so they can be charted without decoding anything) plus the full
metrics, call ids and run config as JSON-encoded blobs. Rows are kept newest
first.

Persistence is best-effort: a store failure is logged and the caller still
gets its in-memory run.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from negotiation_eval.config.settings import get_settings
from negotiation_eval.metrics.call_analyzer import CallAnalyzer
from negotiation_eval.metrics.eval_metrics import EvalComparison, EvalMetrics, calculate_metrics, compare_metrics
from negotiation_eval.models.calls import CallRecord


logger = logging.getLogger(__name__)

SCALAR_COLUMNS: tuple[str, ...] = (
    "quote_obtained_rate",
    "negotiation_attempt_rate",
    "negotiation_success_rate",
    "safety_rate",
    "total_calls",
    "completed_calls",
    "calls_with_quotes",
    "calls_with_negotiation_attempt",
    "calls_with_successful_negotiation",
    "unsafe_calls",
    "avg_price_reduction_percent",
    "avg_quoted_price",
    "avg_final_price",
    "total_savings",
)


class EvalRunStoreError(Exception):
    """The eval run file could not be read or written."""
    pass


class DateRange(BaseModel):
    """Inclusive window; a missing bound is open."""
    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None


class EvalRunConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_range: Optional[DateRange] = None
    persona_filter: Optional[list[str]] = None
    min_calls: int = 1


class EvalRunResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    run_at: datetime
    metrics: EvalMetrics
    call_ids: list[str]
    notes: str = ""
    config: EvalRunConfig = Field(default_factory=EvalRunConfig)


def generate_run_id(now: Optional[datetime] = None) -> str:
    """``eval_<epoch ms>_<9 hex chars>``"""
    now = now or datetime.now(timezone.utc)
    return f"eval_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def run_to_row(run: EvalRunResult) -> dict[str, Any]:
    """Flatten a run into a storage row."""
    row: dict[str, Any] = {"run_id": run.id, "run_at": run.run_at.isoformat()}
    for column in SCALAR_COLUMNS:
        row[column] = getattr(run.metrics, column)
    row["metrics"] = run.metrics.model_dump_json()
    row["call_ids"] = json.dumps(run.call_ids)
    row["notes"] = run.notes
    row["config"] = run.config.model_dump_json()
    return row


def row_to_run(row: dict[str, Any]) -> EvalRunResult:
    """Rebuild a run from a storage row; the scalar columns are redundant with the blob."""
    return EvalRunResult(
        id=row["run_id"],
        run_at=row["run_at"],
        metrics=EvalMetrics.model_validate_json(row["metrics"]),
        call_ids=json.loads(row["call_ids"]),
        notes=row.get("notes") or "",
        config=EvalRunConfig.model_validate_json(row["config"]),
    )


class EvalRunStore:
    """JSON-file backed store of eval run rows."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else Path(get_settings().eval_runs_path)

    def _read_rows(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            rows = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise EvalRunStoreError(f"Failed to read eval runs from {self.path}: {e}") from e
        if not isinstance(rows, list):
            raise EvalRunStoreError(f"Eval run file {self.path} does not contain a list")
        for index, row in enumerate(rows):
            # run_at is the sort key; isoformat strings order chronologically
            if not isinstance(row, dict):
                raise EvalRunStoreError(f"Malformed eval run row {index} in {self.path}")
            if not isinstance(row.get("run_id"), str) or not isinstance(row.get("run_at"), str):
                raise EvalRunStoreError(f"Eval run row {index} in {self.path} lacks run_id/run_at")
        return rows

    def _write_rows(self, rows: list[dict[str, Any]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(rows, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise EvalRunStoreError(f"Failed to write eval runs to {self.path}: {e}") from e

    def _decode(self, rows: Sequence[dict[str, Any]]) -> list[EvalRunResult]:
        try:
            return [row_to_run(row) for row in rows]
        except (KeyError, ValueError, ValidationError) as e:
            raise EvalRunStoreError(f"Malformed eval run row in {self.path}: {e}") from e

    def save(self, run: EvalRunResult) -> None:
        # New row first so runs sharing a timestamp still list newest first
        rows = [run_to_row(run)] + self._read_rows()
        rows.sort(key=lambda r: r["run_at"], reverse=True)
        self._write_rows(rows)

    def list_runs(self, limit: int = 50) -> list[EvalRunResult]:
        return self._decode(self._read_rows()[:limit])

    def get(self, run_id: str) -> Optional[EvalRunResult]:
        matches = [row for row in self._read_rows() if row.get("run_id") == run_id]
        return self._decode(matches)[0] if matches else None

    def previous_run(self, run: EvalRunResult) -> Optional[EvalRunResult]:
        """The newest stored run older than ``run``."""
        for candidate in self._decode(self._read_rows()):
            if candidate.id != run.id and candidate.run_at < run.run_at:
                return candidate
        return None


def create_eval_run(
    calls: Sequence[CallRecord],
    config: EvalRunConfig,
    notes: str = "",
    analyze_transcripts: bool = True,
    store: Optional[EvalRunStore] = None,
    analyzer: Optional[CallAnalyzer] = None,
) -> EvalRunResult:
    """
    Compute metrics for ``calls`` and persist them as a new eval run.

    Returns the run even when it could not be persisted.
    """
    metrics = calculate_metrics(calls, analyze_transcripts=analyze_transcripts, analyzer=analyzer)
    run_at = datetime.now(timezone.utc)
    run = EvalRunResult(
        id=generate_run_id(run_at),
        run_at=run_at,
        metrics=metrics,
        call_ids=[c.call_id for c in calls],
        notes=notes,
        config=config,
    )

    store = store or EvalRunStore()
    try:
        store.save(run)
        logger.info("Saved eval run: %s", run.id)
    except EvalRunStoreError:
        logger.exception("Failed to persist eval run %s", run.id)

    return run


def get_eval_runs(limit: int = 50, store: Optional[EvalRunStore] = None) -> list[EvalRunResult]:
    """Stored runs, newest first; empty on store failure."""
    store = store or EvalRunStore()
    try:
        return store.list_runs(limit)
    except EvalRunStoreError:
        logger.exception("Failed to get eval runs")
        return []


def get_latest_eval_run(store: Optional[EvalRunStore] = None) -> Optional[EvalRunResult]:
    runs = get_eval_runs(limit=1, store=store)
    return runs[0] if runs else None


def get_eval_run_by_id(run_id: str, store: Optional[EvalRunStore] = None) -> Optional[EvalRunResult]:
    store = store or EvalRunStore()
    try:
        return store.get(run_id)
    except EvalRunStoreError:
        logger.exception("Failed to get eval run %s", run_id)
        return None


def compare_with_previous_run(run: EvalRunResult, store: Optional[EvalRunStore] = None) -> EvalComparison:
    """Compare a run against the run stored immediately before it."""
    store = store or EvalRunStore()
    try:
        previous = store.previous_run(run)
    except EvalRunStoreError:
        logger.exception("Failed to load previous eval run for %s", run.id)
        previous = None
    return compare_metrics(run.metrics, previous.metrics if previous else None)
