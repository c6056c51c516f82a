"""
Eval metrics for the negotiation bot.

The four headline metrics:
1. Quote obtained rate: % of calls where the vendor gave a price
2. Negotiation attempt rate: % of quoted calls where the bot asked for a lower price
3. Negotiation success rate: % of quoted calls where the price came down
4. Safety rate: % of completed calls where the bot behaved

1 and 3 come straight from call records. 2 and 4 need a transcript analysis
per call, so they are only computed on request; otherwise 2 defaults to 0
(unknown) and 4 to 100 (assumed safe).
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from negotiation_eval.engine.rounding import mean, percent, round_half_up
from negotiation_eval.metrics.call_analyzer import CallAnalysisForEval, CallAnalyzer
from negotiation_eval.models.calls import CallRecord, CallStatus


logger = logging.getLogger(__name__)

Period = Literal["day", "week", "month"]

DEFAULT_NEGOTIATION_ATTEMPT_RATE = 0
DEFAULT_SAFETY_RATE = 100
IMPROVEMENT_THRESHOLD = 3


class OutcomeBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    completed: int = 0
    no_answer: int = 0
    busy: int = 0
    rejected: int = 0
    failed: int = 0


class SafetyIssueCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue: str
    count: int


class BasicMetrics(BaseModel):
    """Metrics computable from call records alone."""
    model_config = ConfigDict(frozen=True)

    quote_obtained_rate: int = 0
    negotiation_success_rate: int = 0

    total_calls: int = 0
    completed_calls: int = 0
    calls_with_quotes: int = 0
    calls_with_successful_negotiation: int = 0

    avg_price_reduction_percent: int = 0
    avg_quoted_price: int = 0
    avg_final_price: int = 0
    total_savings: int = 0

    outcomes: OutcomeBreakdown = OutcomeBreakdown()


class EvalMetrics(BasicMetrics):
    """Full metric snapshot, including the transcript-derived metrics."""

    negotiation_attempt_rate: int = DEFAULT_NEGOTIATION_ATTEMPT_RATE
    safety_rate: int = DEFAULT_SAFETY_RATE

    calls_with_negotiation_attempt: int = 0
    unsafe_calls: int = 0
    safety_issues: tuple[SafetyIssueCount, ...] = ()


class MetricsDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    quote_obtained_rate: int
    negotiation_attempt_rate: int
    negotiation_success_rate: int
    safety_rate: int


class EvalComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: EvalMetrics
    previous: Optional[EvalMetrics] = None
    delta: Optional[MetricsDelta] = None
    improvement: bool = False


def _count_outcomes(calls: Sequence[CallRecord]) -> OutcomeBreakdown:
    counts = Counter(call.status for call in calls)
    return OutcomeBreakdown(
        completed=counts[CallStatus.COMPLETED],
        no_answer=counts[CallStatus.NO_ANSWER],
        busy=counts[CallStatus.BUSY],
        rejected=counts[CallStatus.REJECTED],
        failed=counts[CallStatus.FAILED],
    )


def calculate_basic_metrics(calls: Sequence[CallRecord]) -> BasicMetrics:
    """
    Quote/success rates, price statistics and outcome counts.

    Deterministic and side-effect free; no completion requests.
    """
    total = len(calls)
    if total == 0:
        return BasicMetrics()

    outcomes = _count_outcomes(calls)
    quoted_calls = [c for c in calls if c.has_quote]
    reduced_calls = [
        c for c in quoted_calls
        if c.negotiated_price is not None and c.negotiated_price < c.quoted_price
    ]

    reductions: list[float] = []
    quoted_prices: list[float] = []
    final_prices: list[float] = []
    savings = 0.0

    for call in quoted_calls:
        quoted = call.quoted_price
        final = call.negotiated_price or quoted
        quoted_prices.append(quoted)
        final_prices.append(final)
        if final < quoted:
            reductions.append((quoted - final) / quoted * 100)
            savings += quoted - final

    return BasicMetrics(
        quote_obtained_rate=percent(len(quoted_calls), total),
        negotiation_success_rate=percent(len(reduced_calls), len(quoted_calls)),
        total_calls=total,
        completed_calls=outcomes.completed,
        calls_with_quotes=len(quoted_calls),
        calls_with_successful_negotiation=len(reduced_calls),
        avg_price_reduction_percent=round_half_up(mean(reductions)) if reductions else 0,
        avg_quoted_price=round_half_up(mean(quoted_prices)) if quoted_prices else 0,
        avg_final_price=round_half_up(mean(final_prices)) if final_prices else 0,
        total_savings=round_half_up(savings),
        outcomes=outcomes,
    )


def _tally_safety_issues(analyses: Sequence[CallAnalysisForEval]) -> tuple[SafetyIssueCount, ...]:
    counts: Counter[str] = Counter()
    for analysis in analyses:
        counts.update(analysis.safety_issues)
    return tuple(SafetyIssueCount(issue=issue, count=n) for issue, n in counts.most_common())


def metrics_from_analyses(
    calls: Sequence[CallRecord],
    analyses: Sequence[CallAnalysisForEval],
) -> EvalMetrics:
    """Combine basic metrics with per-call transcript analyses."""
    basic = calculate_basic_metrics(calls)

    quoted = [a for a in analyses if a.quote_obtained]
    attempted = sum(1 for a in quoted if a.bot_attempted_negotiation)

    completed_ids = {c.call_id for c in calls if c.status == CallStatus.COMPLETED}
    completed = [a for a in analyses if a.call_id in completed_ids]
    unsafe = sum(1 for a in completed if not a.is_safe)

    return EvalMetrics(
        **basic.model_dump(),
        negotiation_attempt_rate=percent(attempted, len(quoted)),
        safety_rate=percent(len(completed) - unsafe, len(completed), default=DEFAULT_SAFETY_RATE),
        calls_with_negotiation_attempt=attempted,
        unsafe_calls=unsafe,
        safety_issues=_tally_safety_issues(analyses),
    )


def calculate_metrics(
    calls: Sequence[CallRecord],
    analyze_transcripts: bool = False,
    analyzer: Optional[CallAnalyzer] = None,
) -> EvalMetrics:
    """
    Full eval metrics for a set of calls.

    Args:
        calls: Call records (real or synthetic)
        analyze_transcripts: Run a completion request per transcript for the
            negotiation-attempt and safety metrics
        analyzer: Transcript analyzer (optional, will create if needed)

    Returns:
        EvalMetrics snapshot
    """
    if not analyze_transcripts or not calls:
        return EvalMetrics(**calculate_basic_metrics(calls).model_dump())

    analyzer = analyzer or CallAnalyzer()
    analyses = analyzer.analyze_calls(calls)
    return metrics_from_analyses(calls, analyses)


def week_number(moment: datetime) -> int:
    """
    Week of the year, 1-indexed, counted from Jan 1 with the weekday offset of Jan 1.

    A simplified formula, not ISO-8601; days around New Year can land one week off.
    """
    start_of_year = datetime(moment.year, 1, 1, tzinfo=moment.tzinfo)
    days = (moment - start_of_year).total_seconds() / 86400
    sunday_based_weekday = (start_of_year.weekday() + 1) % 7
    return -int(-(days + sunday_based_weekday + 1) // 7)


def period_key(moment: datetime, period: Period) -> str:
    if period == "day":
        return moment.date().isoformat()
    if period == "week":
        return f"{moment.year}-W{week_number(moment):02d}"
    if period == "month":
        return f"{moment.year}-{moment.month:02d}"
    raise ValueError(f"Unknown period: {period}")


def group_calls_by_period(calls: Sequence[CallRecord], period: Period) -> dict[str, list[CallRecord]]:
    grouped: dict[str, list[CallRecord]] = defaultdict(list)
    for call in calls:
        grouped[period_key(call.date_time, period)].append(call)
    return dict(sorted(grouped.items()))


def calculate_metrics_by_period(calls: Sequence[CallRecord], period: Period) -> dict[str, EvalMetrics]:
    """Basic metrics per day/week/month bucket, keys in chronological order."""
    return {
        key: calculate_metrics(period_calls, analyze_transcripts=False)
        for key, period_calls in group_calls_by_period(calls, period).items()
    }


def compare_metrics(current: EvalMetrics, previous: Optional[EvalMetrics]) -> EvalComparison:
    """
    Deltas of the four headline metrics against a previous snapshot.

    Improvement needs at least three favourable deltas: a strict increase for
    the quote, attempt and success rates; no decrease for the safety rate.
    """
    if previous is None:
        return EvalComparison(current=current)

    delta = MetricsDelta(
        quote_obtained_rate=current.quote_obtained_rate - previous.quote_obtained_rate,
        negotiation_attempt_rate=current.negotiation_attempt_rate - previous.negotiation_attempt_rate,
        negotiation_success_rate=current.negotiation_success_rate - previous.negotiation_success_rate,
        safety_rate=current.safety_rate - previous.safety_rate,
    )

    favourable = [
        delta.quote_obtained_rate > 0,
        delta.negotiation_attempt_rate > 0,
        delta.negotiation_success_rate > 0,
        delta.safety_rate >= 0,
    ]

    return EvalComparison(
        current=current,
        previous=previous,
        delta=delta,
        improvement=sum(favourable) >= IMPROVEMENT_THRESHOLD,
    )
