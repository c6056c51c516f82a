"""
Run synthetic vendor calls: single simulations, vendor populations and eval batches.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from negotiation_eval.engine.negotiation_engine import (
    compute_call_metrics,
    compute_outcome,
    compute_pricing_anchors,
)
from negotiation_eval.engine.rounding import mean, percent, round_half_up
from negotiation_eval.graphs.simulation_graph import create_simulation_graph, recursion_limit_for
from negotiation_eval.models.calls import CallRecord, CallRequirements, CallStatus
from negotiation_eval.simulations.personas import (
    PERSONA_TEMPLATES,
    PersonaNotFoundError,
    VendorPersona,
    get_persona,
)
from negotiation_eval.simulations.synthetic_vendor import SyntheticVendor
from negotiation_eval.state.simulator_state import (
    MarketPrice,
    SimulatedCallResult,
    Speaker,
    TripDetails,
    VendorSimulatorContext,
    create_initial_state,
)


logger = logging.getLogger(__name__)

# Mimics the live bot's opening, ask, two pushes for a lower price, and close.
DEFAULT_BOT_SCRIPT: tuple[str, ...] = (
    "Hello! Main Preet bol rahi hoon. Kya meri baat aapke service se ho rahi hai?",
    "Ji, mujhe Koramangala se Airport jaana hai, kal subah 8 baje. Kitna lagega?",
    "Thoda zyada lag raha hai. Aap 20% kam kar sakte ho?",
    "Accha, thoda aur adjust karo na. Final kitna hoga?",
    "Theek hai, all-inclusive hai na? Toll, parking sab included?",
    "Okay, confirm karke thodi der mein callback karti hoon. Dhanyavaad!",
)

DEFAULT_TRIP_DETAILS = TripDetails(
    from_location="Koramangala, Bangalore",
    to_location="Kempegowda Airport",
    date="Tomorrow",
    time="8:00 AM",
    distance=35,
    vehicle_type="sedan",
    trip_type="one-way",
)

DEFAULT_MARKET_PRICE = MarketPrice(low=800, mid=1000, high=1200)

# Share of a batch per baseline persona, in percent.
DEFAULT_PERSONA_DISTRIBUTION: tuple[tuple[str, int], ...] = (
    ("firm_professional", 20),
    ("flexible_friendly", 30),
    ("anchor_high_haggler", 20),
    ("aggressive_reluctant", 15),
    ("whatsapp_redirector", 15),
)


class PersonaBatchMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    calls: int
    quote_rate: int
    success_rate: int
    avg_reduction: int


class BatchAggregateMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_calls: int
    quote_obtained_rate: int
    negotiation_success_rate: int
    avg_price_reduction: int
    avg_call_duration: int
    avg_negotiation_rounds: float
    by_persona: dict[str, PersonaBatchMetrics]


class EvalBatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    results: list[SimulatedCallResult]
    aggregate_metrics: BatchAggregateMetrics


def create_synthetic_vendor(
    persona_id: str,
    trip_details: TripDetails,
    market_price: MarketPrice,
    personas: Sequence[VendorPersona] = PERSONA_TEMPLATES,
) -> VendorSimulatorContext:
    """Fresh simulator context; unknown persona ids fall back to the first persona."""
    try:
        persona = get_persona(persona_id, personas)
    except PersonaNotFoundError:
        logger.warning("Unknown persona %r, falling back to %s", persona_id, personas[0].id)
        persona = personas[0]

    return VendorSimulatorContext(persona=persona, trip_details=trip_details, market_price=market_price)


def generate_synthetic_vendor_batch(
    trip_details: TripDetails,
    market_price: MarketPrice,
    count: int = 10,
    distribution: Sequence[tuple[str, int]] = DEFAULT_PERSONA_DISTRIBUTION,
    personas: Sequence[VendorPersona] = PERSONA_TEMPLATES,
) -> list[VendorSimulatorContext]:
    """
    A population of ``count`` vendors spread across personas.

    Each persona gets ceil(count * share) vendors, in distribution order,
    until ``count`` is reached.
    """
    vendors: list[VendorSimulatorContext] = []
    for persona_id, share in distribution:
        persona_count = math.ceil(count * share / 100)
        for _ in range(persona_count):
            if len(vendors) >= count:
                break
            vendors.append(create_synthetic_vendor(persona_id, trip_details, market_price, personas))
    return vendors


def simulate_call(
    context: VendorSimulatorContext,
    bot_messages: Sequence[str],
    vendor: Optional[SyntheticVendor] = None,
) -> SimulatedCallResult:
    """
    Simulate one complete call of the bot script against a persona.

    Args:
        context: Fresh vendor context
        bot_messages: Scripted bot lines
        vendor: Synthetic vendor (optional, will create if not provided)

    Returns:
        SimulatedCallResult with conversation, outcome and per-call metrics
    """
    vendor = vendor or SyntheticVendor()
    script = list(bot_messages)
    anchors = compute_pricing_anchors(context.persona, context.market_price)

    graph = create_simulation_graph(vendor)
    final_state = graph.invoke(
        create_initial_state(context, script, anchors),
        {"recursion_limit": recursion_limit_for(script)},
    )

    outcome = compute_outcome(final_state["negotiation"], final_state["elapsed_seconds"])

    return SimulatedCallResult(
        persona=context.persona,
        conversation=tuple(final_state["conversation"]),
        outcome=outcome,
        eval_metrics=compute_call_metrics(outcome),
    )


def _aggregate(results: Sequence[SimulatedCallResult]) -> BatchAggregateMetrics:
    total = len(results)
    reductions = [r.outcome.price_reduction_percent for r in results if r.outcome.price_reduction_percent is not None]

    grouped: dict[str, list[SimulatedCallResult]] = defaultdict(list)
    for result in results:
        grouped[result.persona.id].append(result)

    by_persona = {}
    for persona_id, persona_results in grouped.items():
        persona_reductions = [
            r.outcome.price_reduction_percent
            for r in persona_results
            if r.outcome.price_reduction_percent is not None
        ]
        by_persona[persona_id] = PersonaBatchMetrics(
            calls=len(persona_results),
            quote_rate=percent(sum(r.outcome.quote_obtained for r in persona_results), len(persona_results)),
            success_rate=percent(sum(r.outcome.price_reduced for r in persona_results), len(persona_results)),
            avg_reduction=round_half_up(mean(persona_reductions)) if persona_reductions else 0,
        )

    return BatchAggregateMetrics(
        total_calls=total,
        quote_obtained_rate=percent(sum(r.outcome.quote_obtained for r in results), total),
        negotiation_success_rate=percent(sum(r.outcome.price_reduced for r in results), total),
        avg_price_reduction=round_half_up(mean(reductions)) if reductions else 0,
        avg_call_duration=round_half_up(mean(r.outcome.call_duration for r in results)) if results else 0,
        avg_negotiation_rounds=(
            round_half_up(mean(r.outcome.negotiation_rounds for r in results) * 10) / 10 if results else 0.0
        ),
        by_persona=by_persona,
    )


def run_eval_batch(
    vendors: Sequence[VendorSimulatorContext],
    bot_script: Sequence[str] = DEFAULT_BOT_SCRIPT,
    vendor: Optional[SyntheticVendor] = None,
) -> EvalBatchResult:
    """
    Simulate every vendor with the same bot script and aggregate the outcomes.

    A vendor whose simulation raises is logged and left out of the aggregates.
    """
    vendor = vendor or SyntheticVendor()
    results: list[SimulatedCallResult] = []

    for context in vendors:
        try:
            result = simulate_call(context, bot_script, vendor=vendor)
        except Exception:
            logger.exception("Failed to simulate call with %s", context.persona.name)
            continue
        results.append(result)
        logger.info(
            "Simulated call with %s: %s",
            context.persona.name,
            "Quote obtained" if result.outcome.quote_obtained else "No quote",
        )

    return EvalBatchResult(results=results, aggregate_metrics=_aggregate(results))


def simulated_call_to_record(
    result: SimulatedCallResult,
    trip_details: TripDetails,
    session_id: str,
    *,
    now: Optional[datetime] = None,
) -> CallRecord:
    """Shape a simulated call like a real call record so it can feed the metrics engine."""
    transcript = "\n".join(
        f"{'Bot' if turn.speaker == Speaker.BOT else 'Vendor'}: {turn.text}" for turn in result.conversation
    )
    call_id = f"synthetic-{uuid.uuid4().hex[:12]}"
    outcome = result.outcome

    return CallRecord(
        id=f"call_{uuid.uuid4().hex[:12]}",
        call_id=call_id,
        vendor_name=f"{result.persona.name} (Synthetic)",
        vendor_phone="0000000000",
        date_time=now or datetime.now(timezone.utc),
        duration=outcome.call_duration,
        status=CallStatus.COMPLETED if outcome.quote_obtained else CallStatus.FAILED,
        requirements=CallRequirements(
            service="cab",
            from_location=trip_details.from_location,
            to_location=trip_details.to_location,
            date=trip_details.date,
            time=trip_details.time,
            vehicle_type=trip_details.vehicle_type,
            trip_type=trip_details.trip_type,
        ),
        quoted_price=outcome.first_offer,
        negotiated_price=outcome.final_price,
        transcript=transcript,
        notes=f"Synthetic call with persona: {result.persona.id}",
        session_id=session_id,
        ended_reason=outcome.end_reason,
        is_synthetic=True,
    )


def default_session_id() -> str:
    return f"synthetic-batch-{int(datetime.now(timezone.utc).timestamp() * 1000)}"


def summarize_batch(batch: EvalBatchResult) -> dict[str, Any]:
    """JSON-ready dump of a batch (results plus aggregates)."""
    return batch.model_dump(mode="json")
