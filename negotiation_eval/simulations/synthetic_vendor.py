"""
LLM-as-vendor simulator for running the negotiation bot's script against a persona.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from negotiation_eval.config.settings import get_settings
from negotiation_eval.engine.negotiation_engine import fallback_vendor_response
from negotiation_eval.llm.completion import CompletionError, LazyChatModel, invoke_structured
from negotiation_eval.simulations.personas import LanguageMix, VendorPersona
from negotiation_eval.state.simulator_state import (
    ConversationTurn,
    PricingAnchors,
    Speaker,
    VendorIntent,
    VendorResponse,
    VendorSimulatorContext,
)


logger = logging.getLogger(__name__)

VENDOR_SYSTEM_PROMPT = (
    "You are an expert at role-playing Indian cab vendors. "
    "Respond naturally in the appropriate language mix. Always respond with valid JSON."
)

_LANGUAGE_NAMES = {
    LanguageMix.PURE_PRIMARY: "Hindi",
    LanguageMix.PURE_SECONDARY: "English",
}


class SyntheticVendor:
    """Produces vendor turns for a simulated call; never raises on a completion failure."""

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        llm: Optional[Any] = None,
    ) -> None:
        settings = get_settings()
        self.model = model or settings.vendor_model
        self.temperature = settings.vendor_temperature if temperature is None else temperature
        self.llm = llm or LazyChatModel(self.model, self.temperature)

    def respond(
        self,
        context: VendorSimulatorContext,
        anchors: PricingAnchors,
        bot_message: str,
        conversation: Sequence[ConversationTurn],
    ) -> VendorResponse:
        """
        Produce the next vendor turn for ``bot_message``.

        Falls back to a deterministic quote/acknowledgement when the completion
        service fails or returns something unusable.
        """
        user = self._build_user_prompt(context, anchors, bot_message, conversation)
        try:
            return invoke_structured(self.llm, VENDOR_SYSTEM_PROMPT, user, VendorResponse)
        except CompletionError as e:
            logger.warning("Vendor generation failed for %s, using fallback: %s", context.persona.id, e)
            return fallback_vendor_response(context.current_state, anchors)

    @staticmethod
    def _build_user_prompt(
        context: VendorSimulatorContext,
        anchors: PricingAnchors,
        bot_message: str,
        conversation: Sequence[ConversationTurn],
    ) -> str:
        p: VendorPersona = context.persona
        trip = context.trip_details
        market = context.market_price
        state = context.current_state
        currency = get_settings().currency_symbol
        language = _LANGUAGE_NAMES.get(p.language_mix, "Hinglish")
        objections = [o.value for o in p.common_objections]

        history = "\n".join(
            f"{'Bot' if t.speaker == Speaker.BOT else 'Vendor'}: {t.text}" for t in conversation
        )
        quoted = f"{currency}{state.quoted_price}" if state.quoted_price is not None else "Not yet quoted"
        current_offer = f"{currency}{state.current_offer}" if state.current_offer is not None else "None"
        used = ", ".join(o.value for o in state.objections_used) or "none"
        patterns = p.response_patterns
        intents = " | ".join(f'"{i.value}"' for i in VendorIntent)

        return (
            "You are simulating a cab vendor with the following personality:\n\n"
            f"VENDOR PERSONA: {p.name}\n"
            f"- Negotiation Style: {p.negotiation_style.value} - {p.description}\n"
            f"- Communication Style: {p.communication_style.value}\n"
            f"- Language: {p.language_mix.value} (respond in {language})\n"
            f"- Typical Objections: {', '.join(objections)}\n"
            f"- Deal Closing: {p.deal_closing_behavior.value}\n\n"
            "TRIP DETAILS:\n"
            f"- From: {trip.from_location}\n"
            f"- To: {trip.to_location}\n"
            f"- Date: {trip.date}, Time: {trip.time}\n"
            f"- Distance: ~{trip.distance:g} km\n"
            f"- Vehicle: {trip.vehicle_type or 'sedan'}\n"
            f"- Trip Type: {trip.trip_type or 'one-way'}\n\n"
            "PRICING STRATEGY:\n"
            f"- Market Price Range: {currency}{market.low:g} - {currency}{market.high:g}\n"
            f"- Your First Offer: {currency}{anchors.first_offer_price} (start here if not quoted yet)\n"
            f"- Your Minimum (don't go below): {currency}{anchors.minimum_price}\n"
            f"- Current Quote Given: {quoted}\n"
            f"- Current Offer: {current_offer}\n"
            f"- Negotiation Round: {state.negotiation_round}\n"
            f"- Objections Already Raised: {used}\n"
            f"- Current Mood: {state.mood.value}\n\n"
            "SAMPLE PHRASES (use similar style):\n"
            f"- Greeting: {' / '.join(patterns.greeting)}\n"
            f"- Price Quote: {' / '.join(patterns.price_quote)}\n"
            f"- Rejection: {' / '.join(patterns.rejection)}\n"
            f"- Acceptance: {' / '.join(patterns.acceptance)}\n\n"
            "CONVERSATION SO FAR:\n"
            f"{history or '(Call just started)'}\n\n"
            f'BOT\'S LATEST MESSAGE: "{bot_message}"\n\n'
            "Respond as the vendor. Remember:\n"
            "1. Stay in character based on your persona\n"
            f"2. Use {language}\n"
            f"3. If asked for price and haven't quoted, start with {currency}{anchors.first_offer_price}\n"
            f"4. If bot counter-offers, react based on your {p.negotiation_style.value} style\n"
            f"5. Don't go below {currency}{anchors.minimum_price}\n"
            f"6. Use objections like: {', '.join(objections[:2])} when appropriate\n\n"
            "Respond in JSON:\n"
            "{\n"
            '  "response": "Your response in appropriate language",\n'
            '  "new_price": number | null (if you\'re quoting or changing price),\n'
            f'  "intent": {intents}\n'
            "}"
        )
