"""
Negotiation engine: pricing anchors, state transitions and call outcomes.

Deterministic only. No LLM calls in this module; the synthetic vendor decides
what to say, this module decides what it means for the negotiation.
"""

from __future__ import annotations

from enum import Enum

from negotiation_eval.engine.rounding import reduction_percent, round_to_step
from negotiation_eval.simulations.personas import NegotiationStyle, VendorPersona
from negotiation_eval.state.simulator_state import (
    CallOutcome,
    MarketPrice,
    Mood,
    NegotiationState,
    PricingAnchors,
    SimulatedCallMetrics,
    Speaker,
    VendorIntent,
    VendorResponse,
    VendorSimulatorContext,
)


PRICE_STEP = 50
MAX_NEGOTIATION_ROUNDS = 5
BOT_TURN_SECONDS = 3
VENDOR_TURN_SECONDS = 4
NATURALNESS_PLACEHOLDER = 75

TERMINAL_INTENTS = frozenset({VendorIntent.ENDING_CALL, VendorIntent.ACCEPTING})

FALLBACK_ACKNOWLEDGEMENT = "Haan ji, bataiye"


class CallPhase(str, Enum):
    NOT_STARTED = "not_started"
    NEGOTIATING = "negotiating"
    TERMINATED_QUOTED = "terminated_quoted"
    TERMINATED_UNQUOTED = "terminated_unquoted"


def compute_pricing_anchors(persona: VendorPersona, market_price: MarketPrice) -> PricingAnchors:
    """
    Opening quote and floor price for a persona, both on 50-unit steps.

    first offer = market mid marked up by the persona's typical markup;
    minimum = first offer less the persona's minimum acceptable discount.
    """
    first_offer = round_to_step(market_price.mid * (1 + persona.typical_first_offer_markup / 100), PRICE_STEP)
    minimum = round_to_step(first_offer * (1 - persona.minimum_acceptable_discount / 100), PRICE_STEP)
    return PricingAnchors(first_offer_price=first_offer, minimum_price=minimum)


def next_mood(current: Mood, intent: VendorIntent, style: NegotiationStyle) -> Mood:
    """Mood after a vendor turn; intents outside the table leave it unchanged."""
    if intent == VendorIntent.REJECTING_OFFER:
        return Mood.NEGATIVE
    if intent == VendorIntent.ACCEPTING:
        return Mood.POSITIVE
    if intent == VendorIntent.OBJECTING:
        return Mood.FRUSTRATED if style == NegotiationStyle.AGGRESSIVE else Mood.NEGATIVE
    return current


def apply_vendor_response(
    state: NegotiationState,
    response: VendorResponse,
    style: NegotiationStyle,
) -> NegotiationState:
    """
    Transition function for one vendor turn.

    The first price ever named becomes quoted_price; every later price becomes
    current_offer and counts as a negotiation round.
    """
    update: dict = {"mood": next_mood(state.mood, response.intent, style)}

    if response.new_price is not None:
        if state.quoted_price is None:
            update["quoted_price"] = response.new_price
        else:
            update["current_offer"] = response.new_price
            update["negotiation_round"] = state.negotiation_round + 1

    return state.model_copy(update=update)


def update_vendor_state(context: VendorSimulatorContext, response: VendorResponse) -> VendorSimulatorContext:
    """Context with its negotiation state advanced by one vendor turn."""
    new_state = apply_vendor_response(context.current_state, response, context.persona.negotiation_style)
    return context.model_copy(update={"current_state": new_state})


def should_terminate(intent: VendorIntent, state: NegotiationState) -> bool:
    """Stop on accepting/ending_call, or once the round counter passes the cap."""
    return intent in TERMINAL_INTENTS or state.negotiation_round > MAX_NEGOTIATION_ROUNDS


def fallback_vendor_response(state: NegotiationState, anchors: PricingAnchors) -> VendorResponse:
    """
    Deterministic vendor turn used when the completion service fails.

    Quote the first-offer price if nothing was quoted yet, otherwise acknowledge.
    """
    if state.quoted_price is None:
        return VendorResponse(
            response=f"{anchors.first_offer_price} lagega sir",
            new_price=anchors.first_offer_price,
            intent=VendorIntent.QUOTING,
        )
    return VendorResponse(response=FALLBACK_ACKNOWLEDGEMENT, new_price=None, intent=VendorIntent.GREETING)


def current_phase(state: NegotiationState, *, started: bool, finished: bool) -> CallPhase:
    if finished:
        return CallPhase.TERMINATED_QUOTED if state.quoted_price is not None else CallPhase.TERMINATED_UNQUOTED
    if not started:
        return CallPhase.NOT_STARTED
    return CallPhase.NEGOTIATING


def compute_outcome(state: NegotiationState, call_duration: int) -> CallOutcome:
    """Outcome block of a finished simulated call."""
    quoted = state.quoted_price
    final = state.current_offer if state.current_offer is not None else quoted
    price_reduced = quoted is not None and final is not None and final < quoted

    return CallOutcome(
        quote_obtained=quoted is not None,
        first_offer=quoted,
        final_price=final,
        price_reduced=price_reduced,
        price_reduction_percent=reduction_percent(quoted, final) if price_reduced else None,
        negotiation_rounds=state.negotiation_round,
        call_duration=call_duration,
        # TODO: model vendor-initiated hang-ups; every simulated call is recorded as ended by the bot.
        ended_by=Speaker.BOT,
        end_reason="negotiation_complete" if quoted is not None else "no_quote_obtained",
    )


def compute_call_metrics(outcome: CallOutcome) -> SimulatedCallMetrics:
    return SimulatedCallMetrics(
        quote_obtained_rate=1 if outcome.quote_obtained else 0,
        negotiation_success=1 if outcome.price_reduced else 0,
        price_reduction_percent=outcome.price_reduction_percent,
        conversation_naturalness=NATURALNESS_PLACEHOLDER,
    )
