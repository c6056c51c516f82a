"""
Unit tests for transcript persona extraction.
"""

from negotiation_eval.simulations.persona_extractor import (
    analyze_persona_distribution,
    build_extraction_prompt,
    extract_persona_from_transcript,
    extract_personas_from_calls,
)
from negotiation_eval.simulations.personas import (
    CommunicationStyle,
    LanguageMix,
    NegotiationStyle,
    ObjectionType,
    PhraseCategory,
)


FIRM_PAYLOAD = {
    "negotiation_style": "firm",
    "communication_style": "terse",
    "language_mix": "mixed",
    "first_offer": 1200,
    "final_price": 1100,
    "objections_used": ["fuel_hike", "toll_extra", "weather_bad"],
    "deal_closing_behavior": "final_offer",
    "negotiation_rounds": 2,
    "sample_phrases": [
        {"category": "price_quote", "phrase": "1200 lagega", "primary_language": True},
        {"category": "small_talk", "phrase": "Aur sab theek?", "primary_language": True},
    ],
    "extraction_confidence": 85,
}


class TestExtractPersonaFromTranscript:
    """Single-call extraction."""

    def test_extracts_traits(self, make_call, canned_llm, negotiation_transcript):
        llm = canned_llm(FIRM_PAYLOAD)
        call = make_call(quoted_price=1200, negotiated_price=1100, transcript=negotiation_transcript)

        result = extract_persona_from_transcript(call, llm=llm)

        assert result is not None
        assert result.call_id == call.call_id
        assert result.vendor_name == call.vendor_name
        assert result.negotiation_style == NegotiationStyle.FIRM
        assert result.communication_style == CommunicationStyle.TERSE
        assert result.language_mix == LanguageMix.MIXED
        assert result.negotiation_rounds == 2
        assert result.extraction_confidence == 85

    def test_reduction_is_derived_from_prices(self, make_call, canned_llm, negotiation_transcript):
        payload = dict(FIRM_PAYLOAD, price_reduction_percent=99)

        result = extract_persona_from_transcript(make_call(transcript=negotiation_transcript), llm=canned_llm(payload))

        # (1200 - 1100) / 1200 = 8.33%
        assert result.price_reduction_percent == 8

    def test_no_reduction_when_price_not_lower(self, make_call, canned_llm, negotiation_transcript):
        payload = dict(FIRM_PAYLOAD, final_price=1200)

        result = extract_persona_from_transcript(make_call(transcript=negotiation_transcript), llm=canned_llm(payload))

        assert result.price_reduction_percent is None

    def test_unknown_tags_are_dropped(self, make_call, canned_llm, negotiation_transcript):
        result = extract_persona_from_transcript(make_call(transcript=negotiation_transcript), llm=canned_llm(FIRM_PAYLOAD))

        assert result.objections_used == (ObjectionType.FUEL_HIKE, ObjectionType.TOLL_EXTRA)
        assert len(result.sample_phrases) == 1
        assert result.sample_phrases[0].category == PhraseCategory.PRICE_QUOTE
        assert result.sample_phrases[0].primary_language is True

    def test_missing_optional_fields_get_defaults(self, make_call, canned_llm, negotiation_transcript):
        payload = {
            "negotiation_style": "flexible",
            "communication_style": "chatty",
            "language_mix": "pure_primary",
            "deal_closing_behavior": "accepts_quickly",
        }

        result = extract_persona_from_transcript(make_call(transcript=negotiation_transcript), llm=canned_llm(payload))

        assert result.negotiation_rounds == 1
        assert result.extraction_confidence == 50
        assert result.first_offer is None
        assert result.price_reduction_percent is None

    def test_short_transcript_returns_none(self, make_call, canned_llm):
        llm = canned_llm(FIRM_PAYLOAD)

        assert extract_persona_from_transcript(make_call(transcript="Hello?"), llm=llm) is None
        assert extract_persona_from_transcript(make_call(transcript=None), llm=llm) is None
        assert llm.invocations == 0

    def test_failure_returns_none(self, make_call, failing_llm, negotiation_transcript):
        assert extract_persona_from_transcript(make_call(transcript=negotiation_transcript), llm=failing_llm) is None

    def test_invalid_style_returns_none(self, make_call, canned_llm, negotiation_transcript):
        payload = dict(FIRM_PAYLOAD, negotiation_style="stubborn")

        assert extract_persona_from_transcript(make_call(transcript=negotiation_transcript), llm=canned_llm(payload)) is None

    def test_prompt_embeds_call_metadata(self, make_call, negotiation_transcript):
        prompt = build_extraction_prompt(make_call(vendor_name="Raju Travels", quoted_price=1200, transcript=negotiation_transcript))

        assert "Raju Travels" in prompt
        assert "1200" in prompt
        assert "Same as quoted" in prompt
        assert negotiation_transcript in prompt
        assert '"ask_whatsapp"' in prompt


class TestExtractPersonasFromCalls:
    """Batch extraction with clustering."""

    def test_batch_stats_and_personas(self, make_call, scripted_llm, negotiation_transcript):
        llm = scripted_llm([
            FIRM_PAYLOAD,
            dict(FIRM_PAYLOAD, extraction_confidence=70),
            "garbage",
        ])
        calls = [
            make_call(transcript=negotiation_transcript),
            make_call(transcript=negotiation_transcript),
            make_call(transcript=negotiation_transcript),
            make_call(transcript="too short"),
        ]

        batch = extract_personas_from_calls(calls, llm=llm)

        assert llm.invocations == 3
        assert batch.stats.total_calls == 4
        assert batch.stats.successful_extractions == 2
        assert batch.stats.avg_confidence == 78
        assert batch.stats.personas_generated == 1
        assert batch.personas[0].id == "firm_professional_refined"
        assert batch.personas[0].price_flexibility == 8

    def test_no_usable_calls(self, make_call):
        batch = extract_personas_from_calls([make_call(transcript="short")])

        assert batch.extractions == []
        assert batch.personas == []
        assert batch.stats.avg_confidence == 0


class TestAnalyzePersonaDistribution:
    def test_counts_and_averages(self, make_call, scripted_llm, negotiation_transcript):
        llm = scripted_llm([
            FIRM_PAYLOAD,
            dict(FIRM_PAYLOAD, negotiation_style="aggressive", final_price=900, negotiation_rounds=3,
                 objections_used=["fuel_hike"]),
        ])
        calls = [make_call(transcript=negotiation_transcript) for _ in range(2)]
        extractions = extract_personas_from_calls(calls, llm=llm).extractions

        distribution = analyze_persona_distribution(extractions)

        assert distribution.by_negotiation_style[NegotiationStyle.FIRM] == 1
        assert distribution.by_negotiation_style[NegotiationStyle.AGGRESSIVE] == 1
        assert distribution.by_negotiation_style[NegotiationStyle.FRIENDLY] == 0
        assert distribution.by_language_mix[LanguageMix.MIXED] == 2
        # Reductions 8 and 25
        assert distribution.avg_price_reduction == 17
        assert distribution.avg_negotiation_rounds == 2.5
        assert distribution.common_objections[0].objection == ObjectionType.FUEL_HIKE
        assert distribution.common_objections[0].count == 2

    def test_empty(self):
        distribution = analyze_persona_distribution([])

        assert distribution.avg_price_reduction == 0
        assert distribution.avg_negotiation_rounds == 0
        assert distribution.common_objections == []
        assert all(count == 0 for count in distribution.by_communication_style.values())
