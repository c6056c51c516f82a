"""
Markdown eval report rendering.

Pure formatting: takes an EvalMetrics snapshot (plus an optional comparison)
and returns Markdown. No I/O, no completion requests.
"""

from typing import Optional

from negotiation_eval.config.settings import get_settings
from negotiation_eval.metrics.eval_metrics import EvalComparison, EvalMetrics


METRIC_DEFINITIONS = (
    "1. **Quote Obtained**: % of calls where vendor gave a price quote",
    "2. **Negotiation Attempt**: % of calls (with quote) where bot asked for lower price",
    "3. **Negotiation Success**: % of calls (with quote) where bot reduced the price",
    "4. **Safety Rate**: % of completed calls where bot was professional (no misbehavior)",
)


def format_delta(value: int) -> str:
    """Signed percentage-point change; a dash for no change."""
    if value == 0:
        return "-"
    return f"{'+' if value > 0 else ''}{value}%"


def _headline_table(metrics: EvalMetrics, comparison: Optional[EvalComparison]) -> list[str]:
    delta = comparison.delta if comparison else None
    rows = [
        ("Quote Obtained Rate", metrics.quote_obtained_rate, delta.quote_obtained_rate if delta else None),
        ("Negotiation Attempt Rate", metrics.negotiation_attempt_rate, delta.negotiation_attempt_rate if delta else None),
        ("Negotiation Success Rate", metrics.negotiation_success_rate, delta.negotiation_success_rate if delta else None),
        ("Safety Rate", metrics.safety_rate, delta.safety_rate if delta else None),
    ]

    if delta:
        lines = ["| # | Metric | Value | Change |", "|---|--------|-------|--------|"]
    else:
        lines = ["| # | Metric | Value |", "|---|--------|-------|"]

    for index, (label, value, change) in enumerate(rows, start=1):
        line = f"| {index} | **{label}** | {value}% |"
        if delta:
            line += f" {format_delta(change)} |"
        lines.append(line)
    return lines


def generate_eval_report(
    metrics: EvalMetrics,
    comparison: Optional[EvalComparison] = None,
    currency: Optional[str] = None,
) -> str:
    """
    Render the eval report.

    Args:
        metrics: Metrics snapshot to report on
        comparison: Comparison against a previous snapshot (adds the Change
            column and the trend section)
        currency: Currency symbol for prices (defaults to the configured one)

    Returns:
        Markdown report string
    """
    currency = currency if currency is not None else get_settings().currency_symbol

    lines = ["# Negotiation Bot Eval Report", "", "## Key Eval Metrics", ""]
    lines += _headline_table(metrics, comparison)
    lines += ["", "### Metric Definitions", *METRIC_DEFINITIONS]

    lines += [
        "",
        "## Call Statistics",
        "",
        "| Stat | Count |",
        "|------|-------|",
        f"| Total Calls | {metrics.total_calls} |",
        f"| Completed | {metrics.completed_calls} |",
        f"| With Quotes | {metrics.calls_with_quotes} |",
        f"| Negotiation Attempted | {metrics.calls_with_negotiation_attempt} |",
        f"| Negotiation Successful | {metrics.calls_with_successful_negotiation} |",
        f"| Unsafe Calls | {metrics.unsafe_calls} |",
    ]

    lines += [
        "",
        "## Price Statistics",
        "",
        f"- **Avg Quoted Price**: {currency}{metrics.avg_quoted_price}",
        f"- **Avg Final Price**: {currency}{metrics.avg_final_price}",
        f"- **Avg Price Reduction**: {metrics.avg_price_reduction_percent}%",
        f"- **Total Savings**: {currency}{metrics.total_savings}",
    ]

    outcomes = metrics.outcomes
    lines += [
        "",
        "## Call Outcomes",
        "",
        f"- Completed: {outcomes.completed}",
        f"- No Answer: {outcomes.no_answer}",
        f"- Busy: {outcomes.busy}",
        f"- Rejected: {outcomes.rejected}",
        f"- Failed: {outcomes.failed}",
    ]

    if metrics.safety_issues:
        lines += ["", "## Safety Issues Found", ""]
        for entry in metrics.safety_issues:
            plural = "s" if entry.count > 1 else ""
            lines.append(f"- {entry.issue} ({entry.count} occurrence{plural})")

    # Trend only makes sense against an actual previous snapshot
    if comparison is not None and comparison.previous is not None:
        verdict = (
            "**Overall improvement** compared to previous period"
            if comparison.improvement
            else "Performance needs attention compared to previous period"
        )
        lines += ["", "## Trend", "", verdict]

    return "\n".join(lines) + "\n"


def generate_period_table(by_period: dict[str, EvalMetrics]) -> str:
    """Markdown table of basic metrics per period bucket."""
    lines = [
        "| Period | Calls | Quote Rate | Success Rate | Avg Reduction |",
        "|--------|-------|------------|--------------|---------------|",
    ]
    for key, m in by_period.items():
        lines.append(
            f"| {key} | {m.total_calls} | {m.quote_obtained_rate}% | "
            f"{m.negotiation_success_rate}% | {m.avg_price_reduction_percent}% |"
        )
    return "\n".join(lines) + "\n"
