"""
State schema for the synthetic vendor simulation graph.

Follows the same conventions as the rest of the graph code:
- Minimal typed graph state
- Reducer for the append-only conversation
- Immutable records for everything handed back to callers
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict

from negotiation_eval.engine.rounding import round_half_up
from negotiation_eval.simulations.personas import ObjectionType, VendorPersona


class Mood(str, Enum):
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    NEGATIVE = "negative"
    FRUSTRATED = "frustrated"


class VendorIntent(str, Enum):
    """What the vendor is trying to achieve with a turn."""
    GREETING = "greeting"
    QUOTING = "quoting"
    REJECTING_OFFER = "rejecting_offer"
    COUNTER_OFFERING = "counter_offering"
    ACCEPTING = "accepting"
    OBJECTING = "objecting"
    ENDING_CALL = "ending_call"
    ASKING_DETAILS = "asking_details"


class Speaker(str, Enum):
    BOT = "bot"
    VENDOR = "vendor"


class TripDetails(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_location: str = Field(alias="from")
    to_location: str = Field(alias="to")
    date: str
    time: str
    distance: float  # km
    vehicle_type: Optional[str] = None
    trip_type: Optional[str] = None  # "one-way" | "round-trip"


class MarketPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: float
    mid: float
    high: float


class PricingAnchors(BaseModel):
    """Prices fixed once per simulated call from persona + market."""
    model_config = ConfigDict(frozen=True)

    first_offer_price: int
    minimum_price: int


class NegotiationState(BaseModel):
    """
    Per-call negotiation state.

    quoted_price is the first price the vendor ever names and is set once;
    current_offer tracks every later price.
    """
    model_config = ConfigDict(frozen=True)

    quoted_price: Optional[int] = None
    current_offer: Optional[int] = None
    negotiation_round: int = 0
    objections_used: tuple[ObjectionType, ...] = ()
    mood: Mood = Mood.NEUTRAL


class VendorSimulatorContext(BaseModel):
    """Everything the simulated vendor knows about one call."""

    persona: VendorPersona
    trip_details: TripDetails
    market_price: MarketPrice
    current_state: NegotiationState = Field(default_factory=NegotiationState)


class VendorResponse(BaseModel):
    """Vendor turn as returned by the completion service (or the fallback)."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    response: str
    new_price: Optional[int] = None
    intent: VendorIntent

    @field_validator("new_price", mode="before")
    @classmethod
    def _whole_price(cls, value):
        if isinstance(value, float):
            return round_half_up(value)
        return value


class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str
    intent: Optional[VendorIntent] = None
    timestamp: int  # seconds since call start


class CallOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    quote_obtained: bool
    first_offer: Optional[int]
    final_price: Optional[int]
    price_reduced: bool
    price_reduction_percent: Optional[int]
    negotiation_rounds: int
    call_duration: int  # seconds
    ended_by: Speaker
    end_reason: str


class SimulatedCallMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    quote_obtained_rate: int  # 0 or 1
    negotiation_success: int  # 0 or 1
    price_reduction_percent: Optional[int]
    conversation_naturalness: int  # 0-100, placeholder


class SimulatedCallResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    persona: VendorPersona
    conversation: tuple[ConversationTurn, ...]
    outcome: CallOutcome
    eval_metrics: SimulatedCallMetrics


def add_turns(existing: Optional[list[ConversationTurn]], new: Optional[list[ConversationTurn]]) -> list[ConversationTurn]:
    """Reducer for the append-only conversation transcript."""
    return (existing or []) + (new or [])


class SimulationState(TypedDict):
    """
    Graph state for one simulated call.

    Fields:
    - context: Persona, trip and market for this vendor (static)
    - anchors: First offer and floor price (static)
    - negotiation: Current NegotiationState, replaced after every vendor turn
    - conversation: Transcript so far (add_turns reducer)
    - bot_script: Scripted bot lines
    - script_cursor: Index of the next bot line
    - elapsed_seconds: Simulated clock
    - last_intent: Intent of the latest vendor turn
    - terminated: Set when a termination condition fired
    """

    context: VendorSimulatorContext
    anchors: PricingAnchors
    negotiation: NegotiationState
    conversation: Annotated[list[ConversationTurn], add_turns]
    bot_script: list[str]
    script_cursor: int
    elapsed_seconds: int
    last_intent: Optional[VendorIntent]
    terminated: bool


def create_initial_state(
    context: VendorSimulatorContext,
    bot_script: list[str],
    anchors: PricingAnchors,
) -> SimulationState:
    """
    Create initial state for a new simulated call.

    Args:
        context: Vendor context (its current_state seeds the negotiation)
        bot_script: Scripted bot lines, spoken in order
        anchors: Pricing anchors computed for this context

    Returns:
        Initial SimulationState
    """
    return {
        "context": context,
        "anchors": anchors,
        "negotiation": context.current_state,
        "conversation": [],
        "bot_script": list(bot_script),
        "script_cursor": 0,
        "elapsed_seconds": 0,
        "last_intent": None,
        "terminated": False,
    }
