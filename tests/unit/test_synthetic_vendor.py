from __future__ import annotations

from negotiation_eval.engine.negotiation_engine import FALLBACK_ACKNOWLEDGEMENT, compute_pricing_anchors
from negotiation_eval.simulations.personas import get_persona
from negotiation_eval.simulations.synthetic_vendor import SyntheticVendor
from negotiation_eval.state.simulator_state import (
    ConversationTurn,
    NegotiationState,
    Speaker,
    VendorIntent,
    VendorSimulatorContext,
)


def _context(trip_details, market_price, persona_id="anchor_high_haggler", state=None):
    return VendorSimulatorContext(
        persona=get_persona(persona_id),
        trip_details=trip_details,
        market_price=market_price,
        current_state=state or NegotiationState(),
    )


def test_respond_parses_vendor_json(trip_details, market_price, canned_llm):
    llm = canned_llm({"response": "1400 lagega sir, airport hai", "new_price": 1400, "intent": "quoting"})
    vendor = SyntheticVendor(llm=llm)
    context = _context(trip_details, market_price)

    response = vendor.respond(context, compute_pricing_anchors(context.persona, market_price), "Kitna lagega?", [])

    assert response.response == "1400 lagega sir, airport hai"
    assert response.new_price == 1400
    assert response.intent == VendorIntent.QUOTING
    assert llm.invocations == 1


def test_fractional_price_rounds_half_up(trip_details, market_price, canned_llm):
    llm = canned_llm({"response": "Chalo", "new_price": 1049.5, "intent": "counter_offering"})
    context = _context(trip_details, market_price)

    response = SyntheticVendor(llm=llm).respond(context, compute_pricing_anchors(context.persona, market_price), "Kam karo", [])

    assert response.new_price == 1050


def test_null_price_is_allowed(trip_details, market_price, canned_llm):
    llm = canned_llm({"response": "Kahan jaana hai?", "new_price": None, "intent": "asking_details"})
    context = _context(trip_details, market_price)

    response = SyntheticVendor(llm=llm).respond(context, compute_pricing_anchors(context.persona, market_price), "Hello", [])

    assert response.new_price is None
    assert response.intent == VendorIntent.ASKING_DETAILS


def test_failure_before_quote_falls_back_to_first_offer(trip_details, market_price, failing_llm):
    context = _context(trip_details, market_price)
    anchors = compute_pricing_anchors(context.persona, market_price)

    response = SyntheticVendor(llm=failing_llm).respond(context, anchors, "Kitna lagega?", [])

    assert response.new_price == anchors.first_offer_price == 1400
    assert response.intent == VendorIntent.QUOTING


def test_failure_after_quote_acknowledges(trip_details, market_price, failing_llm):
    context = _context(trip_details, market_price, state=NegotiationState(quoted_price=1400))
    anchors = compute_pricing_anchors(context.persona, market_price)

    response = SyntheticVendor(llm=failing_llm).respond(context, anchors, "Thoda kam karo", [])

    assert response.response == FALLBACK_ACKNOWLEDGEMENT
    assert response.new_price is None


def test_unknown_intent_falls_back(trip_details, market_price, canned_llm):
    llm = canned_llm({"response": "Hmm", "new_price": 1300, "intent": "pondering"})
    context = _context(trip_details, market_price)
    anchors = compute_pricing_anchors(context.persona, market_price)

    response = SyntheticVendor(llm=llm).respond(context, anchors, "Kitna?", [])

    assert response.intent == VendorIntent.QUOTING
    assert response.new_price == anchors.first_offer_price


def test_prompt_carries_persona_and_state(trip_details, market_price, canned_llm):
    llm = canned_llm({"response": "ok", "intent": "greeting"})
    state = NegotiationState(quoted_price=1400, current_offer=1300, negotiation_round=1)
    context = _context(trip_details, market_price, state=state)
    anchors = compute_pricing_anchors(context.persona, market_price)
    conversation = [
        ConversationTurn(speaker=Speaker.BOT, text="Kitna lagega?", timestamp=0),
        ConversationTurn(speaker=Speaker.VENDOR, text="1400", intent=VendorIntent.QUOTING, timestamp=3),
    ]

    SyntheticVendor(llm=llm).respond(context, anchors, "Aur kam?", conversation)

    prompt = llm.prompts[0][1].content
    assert "VENDOR PERSONA: " + context.persona.name in prompt
    assert "Your Minimum (don't go below): ₹1050" in prompt
    assert "Current Offer: ₹1300" in prompt
    assert "Bot: Kitna lagega?\nVendor: 1400" in prompt
    assert 'BOT\'S LATEST MESSAGE: "Aur kam?"' in prompt
    assert "Indiranagar, Bangalore" in prompt


def test_prompt_for_fresh_call(trip_details, market_price, canned_llm):
    llm = canned_llm({"response": "ok", "intent": "greeting"})
    context = _context(trip_details, market_price, persona_id="firm_professional")

    SyntheticVendor(llm=llm).respond(context, compute_pricing_anchors(context.persona, market_price), "Hello", [])

    prompt = llm.prompts[0][1].content
    assert "Current Quote Given: Not yet quoted" in prompt
    assert "(Call just started)" in prompt
