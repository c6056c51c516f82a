"""
Persona extractor: turn real call transcripts into vendor behaviour traits.

One completion request per transcript. Extraction failures are never fatal;
a failed call just drops out of the sample handed to clustering.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from negotiation_eval.config.settings import get_settings
from negotiation_eval.engine.rounding import mean, reduction_percent, round_half_up
from negotiation_eval.llm.completion import CompletionError, LazyChatModel, invoke_structured
from negotiation_eval.models.calls import CallRecord
from negotiation_eval.simulations.persona_clusterer import cluster_into_personas
from negotiation_eval.simulations.personas import (
    PERSONA_TEMPLATES,
    CommunicationStyle,
    DealClosingBehavior,
    LanguageMix,
    NegotiationStyle,
    ObjectionType,
    PersonaExtractionResult,
    PhraseCategory,
    SamplePhrase,
    VendorPersona,
)


logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_LENGTH = 50

EXTRACTION_SYSTEM_PROMPT = (
    "You are an expert at analyzing negotiation transcripts and extracting behavioral patterns. "
    "Always respond with valid JSON."
)


class _PhrasePayload(BaseModel):
    category: str
    phrase: str
    primary_language: bool = False


class ExtractionPayload(BaseModel):
    """JSON object the completion service returns for one transcript."""
    model_config = ConfigDict(extra="ignore")

    negotiation_style: NegotiationStyle
    communication_style: CommunicationStyle
    language_mix: LanguageMix
    first_offer: Optional[float] = None
    final_price: Optional[float] = None
    objections_used: list[str] = []
    deal_closing_behavior: DealClosingBehavior
    negotiation_rounds: Optional[float] = None
    sample_phrases: list[_PhrasePayload] = []
    extraction_confidence: Optional[float] = None


class ExtractionStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_calls: int
    successful_extractions: int
    avg_confidence: int
    personas_generated: int


class PersonaExtractionBatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    extractions: list[PersonaExtractionResult]
    personas: list[VendorPersona]
    stats: ExtractionStats


class ObjectionCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    objection: ObjectionType
    count: int


class PersonaDistribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    by_negotiation_style: dict[NegotiationStyle, int]
    by_communication_style: dict[CommunicationStyle, int]
    by_language_mix: dict[LanguageMix, int]
    avg_price_reduction: int
    avg_negotiation_rounds: float
    common_objections: list[ObjectionCount]


def _fmt_price(value: Optional[float], missing: str) -> str:
    if not value:
        return missing
    currency = get_settings().currency_symbol
    return f"{currency}{value:g}"


def _taxonomy(doc: dict[str, str]) -> str:
    return "\n".join(f'   - "{key}": {text}' for key, text in doc.items())


_STYLE_DOC = {
    "firm": "Holds price firmly, rarely budges",
    "flexible": "Willing to negotiate, gives discounts",
    "anchor_high": "Starts very high, expects haggling",
    "aggressive": "Pushes back hard, may get frustrated",
    "friendly": "Accommodating, builds rapport",
    "professional": "Business-like, moderate negotiation",
}

_COMMUNICATION_DOC = {
    "terse": "Short, to-the-point answers",
    "chatty": "Lots of extra info, stories",
    "formal": "Professional language",
    "casual": "Informal, friendly",
    "impatient": "Wants quick resolution",
}

_LANGUAGE_DOC = {
    "pure_primary": "Only Hindi",
    "pure_secondary": "Only English",
    "mixed": "Mix of Hindi and English (Hinglish)",
    "regional_mix": "Includes a regional language",
}

_OBJECTION_DOC = {
    "price_too_low": '"Itna kam mein nahi hoga"',
    "distance_too_far": '"Bahut door hai"',
    "timing_issue": '"Is time available nahi hai"',
    "vehicle_unavailable": '"Gaadi available nahi hai"',
    "toll_extra": '"Toll alag lagega"',
    "waiting_charge": '"Waiting charge extra"',
    "fuel_hike": '"Petrol bahut mehenga hai"',
    "demand_high": '"Bahut demand hai aaj"',
    "minimum_fare": '"Minimum itna lagega"',
    "ask_whatsapp": '"WhatsApp pe details bhejo"',
}

_CLOSING_DOC = {
    "accepts_quickly": "Agrees to reasonable counter-offers",
    "needs_convincing": "Requires multiple rounds",
    "final_offer": "Gives one final price, take it or leave",
    "asks_callback": "Wants customer to call back",
    "offers_alternative": "Suggests different vehicle/time",
}


def build_extraction_prompt(call: CallRecord) -> str:
    """User prompt embedding the transcript, observed prices and the full taxonomy."""
    categories = " | ".join(f'"{c.value}"' for c in PhraseCategory)
    return (
        "Analyze this cab booking negotiation call transcript and extract the VENDOR's behavioral patterns.\n\n"
        "TRANSCRIPT:\n"
        f"{call.transcript}\n\n"
        "CALL METADATA:\n"
        f"- Vendor: {call.vendor_name}\n"
        f"- Quoted Price: {_fmt_price(call.quoted_price, 'Not obtained')}\n"
        f"- Negotiated Price: {_fmt_price(call.negotiated_price, 'Same as quoted')}\n"
        f"- Call Status: {call.status.value}\n\n"
        "Analyze the VENDOR (not the bot) and extract:\n\n"
        "1. NEGOTIATION STYLE - How does the vendor handle price discussions?\n"
        f"{_taxonomy(_STYLE_DOC)}\n\n"
        "2. COMMUNICATION STYLE - How does the vendor communicate?\n"
        f"{_taxonomy(_COMMUNICATION_DOC)}\n\n"
        "3. LANGUAGE MIX - What language does the vendor use?\n"
        f"{_taxonomy(_LANGUAGE_DOC)}\n\n"
        "4. OBJECTIONS USED - What objections did the vendor raise?\n"
        f"{_taxonomy(_OBJECTION_DOC)}\n\n"
        "5. DEAL CLOSING BEHAVIOR - How does the vendor close deals?\n"
        f"{_taxonomy(_CLOSING_DOC)}\n\n"
        "6. SAMPLE PHRASES - Actual phrases the vendor used, in the original language, for: "
        "greeting, price quote, rejection, acceptance, farewell, objection.\n\n"
        "Respond in JSON:\n"
        "{\n"
        f'  "negotiation_style": {" | ".join(repr(s.value) for s in NegotiationStyle)},\n'
        f'  "communication_style": {" | ".join(repr(s.value) for s in CommunicationStyle)},\n'
        f'  "language_mix": {" | ".join(repr(s.value) for s in LanguageMix)},\n'
        '  "first_offer": number | null (vendor\'s first price mention),\n'
        '  "final_price": number | null (final agreed price, if any),\n'
        '  "objections_used": ["objection_type", ...],\n'
        f'  "deal_closing_behavior": {" | ".join(repr(s.value) for s in DealClosingBehavior)},\n'
        '  "negotiation_rounds": number (how many back-and-forth price discussions),\n'
        '  "sample_phrases": [\n'
        f'    {{"category": {categories}, "phrase": "actual phrase", "primary_language": true/false}}\n'
        "  ],\n"
        '  "extraction_confidence": number (0-100, how confident you are in this analysis)\n'
        "}"
    )


def _known_objections(raw: Iterable[str]) -> tuple[ObjectionType, ...]:
    known = []
    for value in raw:
        try:
            known.append(ObjectionType(value))
        except ValueError:
            logger.debug("Dropping unknown objection type %r", value)
    return tuple(known)


def _known_phrases(raw: Iterable[_PhrasePayload]) -> tuple[SamplePhrase, ...]:
    phrases = []
    for item in raw:
        try:
            category = PhraseCategory(item.category)
        except ValueError:
            logger.debug("Dropping phrase with unknown category %r", item.category)
            continue
        phrases.append(SamplePhrase(category=category, phrase=item.phrase, primary_language=item.primary_language))
    return tuple(phrases)


def _to_extraction(call: CallRecord, payload: ExtractionPayload) -> PersonaExtractionResult:
    # Reduction is derived here; the model's own arithmetic is never used.
    confidence = round_half_up(payload.extraction_confidence) if payload.extraction_confidence else 50
    rounds = round_half_up(payload.negotiation_rounds) if payload.negotiation_rounds else 1

    return PersonaExtractionResult(
        call_id=call.call_id,
        vendor_name=call.vendor_name,
        negotiation_style=payload.negotiation_style,
        communication_style=payload.communication_style,
        language_mix=payload.language_mix,
        first_offer=payload.first_offer,
        final_price=payload.final_price,
        price_reduction_percent=reduction_percent(payload.first_offer, payload.final_price),
        objections_used=_known_objections(payload.objections_used),
        deal_closing_behavior=payload.deal_closing_behavior,
        negotiation_rounds=rounds,
        sample_phrases=_known_phrases(payload.sample_phrases),
        extraction_confidence=min(max(confidence, 0), 100),
    )


def _default_llm() -> Any:
    settings = get_settings()
    return LazyChatModel(settings.extraction_model, settings.extraction_temperature)


def extract_persona_from_transcript(call: CallRecord, llm: Optional[Any] = None) -> Optional[PersonaExtractionResult]:
    """
    Extract persona traits from a single call transcript.

    Args:
        call: Call record with a transcript
        llm: Chat model (optional, will create if not provided)

    Returns:
        The extraction, or None when the transcript is missing/too short or the
        completion service fails
    """
    if not call.transcript or len(call.transcript) < MIN_TRANSCRIPT_LENGTH:
        return None

    llm = llm or _default_llm()

    try:
        payload = invoke_structured(llm, EXTRACTION_SYSTEM_PROMPT, build_extraction_prompt(call), ExtractionPayload)
    except CompletionError as e:
        logger.warning("Persona extraction failed for call %s: %s", call.call_id, e)
        return None

    return _to_extraction(call, payload)


def extract_personas_from_calls(
    calls: Sequence[CallRecord],
    llm: Optional[Any] = None,
    templates: Sequence[VendorPersona] = PERSONA_TEMPLATES,
) -> PersonaExtractionBatch:
    """
    Extract every usable transcript, then cluster the extractions into refined personas.
    """
    with_transcripts = [c for c in calls if c.transcript and len(c.transcript) >= MIN_TRANSCRIPT_LENGTH]
    logger.info("Processing %d calls with transcripts", len(with_transcripts))

    if with_transcripts and llm is None:
        llm = _default_llm()

    extractions: list[PersonaExtractionResult] = []
    for call in with_transcripts:
        try:
            extraction = extract_persona_from_transcript(call, llm=llm)
        except Exception:
            logger.exception("Failed to extract persona from %s", call.vendor_name)
            continue
        if extraction is None:
            continue
        extractions.append(extraction)
        logger.info("Extracted persona from %s: %s", call.vendor_name, extraction.negotiation_style.value)

    personas = cluster_into_personas(extractions, templates)

    avg_confidence = round_half_up(mean(e.extraction_confidence for e in extractions)) if extractions else 0

    return PersonaExtractionBatch(
        extractions=extractions,
        personas=personas,
        stats=ExtractionStats(
            total_calls=len(calls),
            successful_extractions=len(extractions),
            avg_confidence=avg_confidence,
            personas_generated=len(personas),
        ),
    )


def analyze_persona_distribution(extractions: Sequence[PersonaExtractionResult]) -> PersonaDistribution:
    """Summarise how traits are spread across a set of extractions."""
    by_style = {style: 0 for style in NegotiationStyle}
    by_communication = {style: 0 for style in CommunicationStyle}
    by_language = {mix: 0 for mix in LanguageMix}
    objections: Counter[ObjectionType] = Counter()

    for extraction in extractions:
        by_style[extraction.negotiation_style] += 1
        by_communication[extraction.communication_style] += 1
        by_language[extraction.language_mix] += 1
        objections.update(extraction.objections_used)

    reductions = [e.price_reduction_percent for e in extractions if e.price_reduction_percent is not None]
    avg_rounds = mean(e.negotiation_rounds for e in extractions)

    return PersonaDistribution(
        by_negotiation_style=by_style,
        by_communication_style=by_communication,
        by_language_mix=by_language,
        avg_price_reduction=round_half_up(mean(reductions)) if reductions else 0,
        avg_negotiation_rounds=round_half_up(avg_rounds * 10) / 10 if extractions else 0.0,
        common_objections=[ObjectionCount(objection=o, count=n) for o, n in objections.most_common()],
    )
