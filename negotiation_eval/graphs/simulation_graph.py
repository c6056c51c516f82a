"""
LangGraph graph definition for one simulated vendor call.

Flow:
- Explicit routing; the bot/vendor loop is the only cycle
- Each vendor turn sees the full transcript and the state left by the previous turn
"""

from __future__ import annotations

from typing import Any

from langgraph.graph import END, START, StateGraph

from negotiation_eval.engine.negotiation_engine import (
    BOT_TURN_SECONDS,
    VENDOR_TURN_SECONDS,
    CallPhase,
    apply_vendor_response,
    current_phase,
    should_terminate,
)
from negotiation_eval.simulations.synthetic_vendor import SyntheticVendor
from negotiation_eval.state.simulator_state import ConversationTurn, SimulationState, Speaker


def call_phase(state: SimulationState) -> CallPhase:
    """Where the call stands; it is over once terminated or out of script lines."""
    cursor = state["script_cursor"]
    finished = bool(state.get("terminated")) or cursor >= len(state["bot_script"])
    return current_phase(state["negotiation"], started=cursor > 0, finished=finished)


def has_next_line(state: SimulationState) -> str:
    """Route to another bot turn unless the call reached a terminal phase."""
    if call_phase(state) in (CallPhase.TERMINATED_QUOTED, CallPhase.TERMINATED_UNQUOTED):
        return "end"
    return "continue"


def bot_turn_node(state: SimulationState) -> dict[str, Any]:
    """Speak the next scripted bot line."""
    cursor = state["script_cursor"]
    elapsed = state["elapsed_seconds"]
    turn = ConversationTurn(speaker=Speaker.BOT, text=state["bot_script"][cursor], timestamp=elapsed)
    return {
        "conversation": [turn],
        "script_cursor": cursor + 1,
        "elapsed_seconds": elapsed + BOT_TURN_SECONDS,
    }


def make_vendor_turn_node(vendor: SyntheticVendor):
    """Bind a vendor to the node that answers the latest bot line."""

    def vendor_turn_node(state: SimulationState) -> dict[str, Any]:
        conversation = state["conversation"]
        negotiation = state["negotiation"]
        context = state["context"].model_copy(update={"current_state": negotiation})
        bot_message = conversation[-1].text

        response = vendor.respond(context, state["anchors"], bot_message, conversation)

        elapsed = state["elapsed_seconds"]
        turn = ConversationTurn(
            speaker=Speaker.VENDOR,
            text=response.response,
            intent=response.intent,
            timestamp=elapsed,
        )
        new_negotiation = apply_vendor_response(negotiation, response, context.persona.negotiation_style)

        return {
            "conversation": [turn],
            "elapsed_seconds": elapsed + VENDOR_TURN_SECONDS,
            "negotiation": new_negotiation,
            "last_intent": response.intent,
            "terminated": should_terminate(response.intent, new_negotiation),
        }

    return vendor_turn_node


def create_simulation_graph(vendor: SyntheticVendor):
    """
    Create the simulated-call graph.

    Flow:
    1. START: end immediately on an empty script
    2. bot_turn: append the next scripted line (+3s)
    3. vendor_turn: generate the reply (+4s), apply the transition
    4. Route: back to bot_turn, or END on termination / exhausted script

    Returns:
        Compiled graph
    """
    builder = StateGraph(SimulationState)

    builder.add_node("bot_turn", bot_turn_node)
    builder.add_node("vendor_turn", make_vendor_turn_node(vendor))

    builder.add_conditional_edges(START, has_next_line, {"continue": "bot_turn", "end": END})
    builder.add_edge("bot_turn", "vendor_turn")
    builder.add_conditional_edges("vendor_turn", has_next_line, {"continue": "bot_turn", "end": END})

    return builder.compile()


def recursion_limit_for(bot_script: list[str]) -> int:
    """Two graph steps per scripted line, plus headroom."""
    return 2 * len(bot_script) + 5
