from __future__ import annotations

import pytest

from negotiation_eval.simulations.personas import (
    PERSONA_TEMPLATES,
    NegotiationStyle,
    PersonaNotFoundError,
    PhraseCategory,
    find_template_for_style,
    get_all_personas,
    get_persona,
)


def test_templates_have_unique_ids():
    ids = [p.id for p in PERSONA_TEMPLATES]

    assert len(ids) == 5
    assert len(set(ids)) == 5


def test_get_persona_by_id():
    persona = get_persona("anchor_high_haggler")

    assert persona.negotiation_style == NegotiationStyle.ANCHOR_HIGH
    assert persona.typical_first_offer_markup == 40


def test_unknown_persona_raises_key_error():
    with pytest.raises(PersonaNotFoundError) as excinfo:
        get_persona("does_not_exist")

    assert isinstance(excinfo.value, KeyError)
    assert "firm_professional" in str(excinfo.value)


def test_get_all_personas_returns_copy():
    personas = get_all_personas()
    personas.clear()

    assert len(get_all_personas()) == 5


def test_templates_are_frozen():
    with pytest.raises(Exception):
        PERSONA_TEMPLATES[0].price_flexibility = 99


def test_find_template_for_style():
    assert find_template_for_style(NegotiationStyle.PROFESSIONAL).id == "whatsapp_redirector"
    assert find_template_for_style(NegotiationStyle.FRIENDLY) is None


def test_response_patterns_by_category():
    persona = get_persona("flexible_friendly")

    assert persona.response_patterns.for_category(PhraseCategory.GREETING) == persona.response_patterns.greeting
