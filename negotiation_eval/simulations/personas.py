"""
Vendor persona definitions for synthetic negotiation calls.

A persona describes how a vendor behaves on a price-negotiation call: how hard
it holds its price, how it talks, which objections it raises and how it
closes. Five baseline templates ship with the package; clustering real
extractions produces additional ``*_refined`` personas alongside them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class NegotiationStyle(str, Enum):
    """How the vendor handles price discussions."""
    FIRM = "firm"                # Holds price firmly, rarely budges
    FLEXIBLE = "flexible"        # Willing to negotiate, gives discounts
    ANCHOR_HIGH = "anchor_high"  # Starts very high, expects haggling
    AGGRESSIVE = "aggressive"    # Pushes back hard, may get frustrated
    FRIENDLY = "friendly"        # Accommodating, builds rapport
    PROFESSIONAL = "professional"  # Business-like, moderate negotiation


class CommunicationStyle(str, Enum):
    TERSE = "terse"
    CHATTY = "chatty"
    FORMAL = "formal"
    CASUAL = "casual"
    IMPATIENT = "impatient"


class LanguageMix(str, Enum):
    """Which languages the vendor speaks on the call."""
    PURE_PRIMARY = "pure_primary"      # Only the local language (Hindi)
    PURE_SECONDARY = "pure_secondary"  # Only English
    MIXED = "mixed"                    # Hinglish
    REGIONAL_MIX = "regional_mix"      # Includes a regional language


class ObjectionType(str, Enum):
    PRICE_TOO_LOW = "price_too_low"
    DISTANCE_TOO_FAR = "distance_too_far"
    TIMING_ISSUE = "timing_issue"
    VEHICLE_UNAVAILABLE = "vehicle_unavailable"
    TOLL_EXTRA = "toll_extra"
    WAITING_CHARGE = "waiting_charge"
    FUEL_HIKE = "fuel_hike"
    DEMAND_HIGH = "demand_high"
    MINIMUM_FARE = "minimum_fare"
    ASK_WHATSAPP = "ask_whatsapp"


class DealClosingBehavior(str, Enum):
    ACCEPTS_QUICKLY = "accepts_quickly"
    NEEDS_CONVINCING = "needs_convincing"
    FINAL_OFFER = "final_offer"
    ASKS_CALLBACK = "asks_callback"
    OFFERS_ALTERNATIVE = "offers_alternative"


class Level(str, Enum):
    """Shared low/medium/high scale (objection frequency, confidence)."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PhraseCategory(str, Enum):
    GREETING = "greeting"
    PRICE_QUOTE = "price_quote"
    REJECTION = "rejection"
    ACCEPTANCE = "acceptance"
    FAREWELL = "farewell"
    OBJECTION = "objection"


# Categories carried on a persona; objection phrases are extracted but not kept.
RESPONSE_PATTERN_CATEGORIES: tuple[PhraseCategory, ...] = (
    PhraseCategory.GREETING,
    PhraseCategory.PRICE_QUOTE,
    PhraseCategory.REJECTION,
    PhraseCategory.ACCEPTANCE,
    PhraseCategory.FAREWELL,
)

MAX_PHRASES_PER_CATEGORY = 3
MAX_REFINED_OBJECTIONS = 4


class PersonaNotFoundError(KeyError):
    """Raised when a persona id is not known."""
    pass


class ResponsePatterns(BaseModel):
    """Example phrases per category; ``{{price}}`` is substituted by the vendor."""
    model_config = ConfigDict(frozen=True)

    greeting: tuple[str, ...] = ()
    price_quote: tuple[str, ...] = ()
    rejection: tuple[str, ...] = ()
    acceptance: tuple[str, ...] = ()
    farewell: tuple[str, ...] = ()

    def for_category(self, category: PhraseCategory) -> tuple[str, ...]:
        return getattr(self, category.value)


class VendorPersona(BaseModel):
    """A reusable profile of a vendor's negotiation behaviour."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str

    negotiation_style: NegotiationStyle
    communication_style: CommunicationStyle
    language_mix: LanguageMix

    price_flexibility: int = Field(ge=0, le=100)  # % typically conceded
    typical_first_offer_markup: int              # % above fair price of the opening quote
    minimum_acceptable_discount: int             # % below own first offer it will go

    common_objections: tuple[ObjectionType, ...] = ()
    objection_frequency: Level = Level.MEDIUM

    deal_closing_behavior: DealClosingBehavior
    average_rounds_to_close: int

    response_patterns: ResponsePatterns = Field(default_factory=ResponsePatterns)

    source_call_ids: tuple[str, ...] = ()
    confidence: Level = Level.MEDIUM
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SamplePhrase(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: PhraseCategory
    phrase: str
    primary_language: bool = False  # True when spoken in the local language


class PersonaExtractionResult(BaseModel):
    """Traits observed in one real call transcript."""
    model_config = ConfigDict(frozen=True)

    call_id: str
    vendor_name: str

    negotiation_style: NegotiationStyle
    communication_style: CommunicationStyle
    language_mix: LanguageMix

    first_offer: Optional[float] = None
    final_price: Optional[float] = None
    price_reduction_percent: Optional[int] = None

    objections_used: tuple[ObjectionType, ...] = ()
    deal_closing_behavior: DealClosingBehavior
    negotiation_rounds: int = 1

    sample_phrases: tuple[SamplePhrase, ...] = ()
    extraction_confidence: int = Field(default=50, ge=0, le=100)


PERSONA_TEMPLATES: tuple[VendorPersona, ...] = (
    VendorPersona(
        id="firm_professional",
        name="Firm Professional",
        description="Business-like vendor who quotes fair prices and rarely negotiates",
        negotiation_style=NegotiationStyle.FIRM,
        communication_style=CommunicationStyle.FORMAL,
        language_mix=LanguageMix.MIXED,
        price_flexibility=10,
        typical_first_offer_markup=10,
        minimum_acceptable_discount=5,
        common_objections=(ObjectionType.FUEL_HIKE, ObjectionType.DEMAND_HIGH),
        objection_frequency=Level.LOW,
        deal_closing_behavior=DealClosingBehavior.FINAL_OFFER,
        average_rounds_to_close=2,
        response_patterns=ResponsePatterns(
            greeting=("Hello, haan boliye", "Ji haan, bataiye"),
            price_quote=("Sir, {{price}} rupaye lagenge", "{{price}} hoga"),
            rejection=("Nahi sir, itna kam mein nahi hoga", "Yeh rate nahi possible hai"),
            acceptance=("Theek hai sir, done", "Okay, confirm hai"),
            farewell=("Ji theek hai, thank you", "Okay bye"),
        ),
    ),
    VendorPersona(
        id="flexible_friendly",
        name="Flexible Friendly",
        description="Accommodating vendor who builds rapport and gives discounts",
        negotiation_style=NegotiationStyle.FLEXIBLE,
        communication_style=CommunicationStyle.CHATTY,
        language_mix=LanguageMix.MIXED,
        price_flexibility=25,
        typical_first_offer_markup=20,
        minimum_acceptable_discount=15,
        common_objections=(ObjectionType.TOLL_EXTRA, ObjectionType.WAITING_CHARGE),
        objection_frequency=Level.MEDIUM,
        deal_closing_behavior=DealClosingBehavior.ACCEPTS_QUICKLY,
        average_rounds_to_close=3,
        response_patterns=ResponsePatterns(
            greeting=("Haan ji, boliye!", "Hello madam, kaise help kar sakta hoon?"),
            price_quote=(
                "Dekhiye normally {{price}} lete hain, aapke liye thoda adjust kar denge",
                "{{price}} lagega, but negotiate kar sakte hain",
            ),
            rejection=("Madam thoda zyada kam hai, thoda upar aa jaiye", "Itna kam mein loss ho jayega"),
            acceptance=("Chal theek hai, aapke liye kar dete hain", "Done madam, confirm"),
            farewell=("Thank you madam, safe journey!", "Theek hai ji, phir baat karte hain"),
        ),
    ),
    VendorPersona(
        id="anchor_high_haggler",
        name="Anchor High Haggler",
        description="Starts with inflated prices expecting negotiation",
        negotiation_style=NegotiationStyle.ANCHOR_HIGH,
        communication_style=CommunicationStyle.CASUAL,
        language_mix=LanguageMix.PURE_PRIMARY,
        price_flexibility=35,
        typical_first_offer_markup=40,
        minimum_acceptable_discount=25,
        common_objections=(ObjectionType.PRICE_TOO_LOW, ObjectionType.MINIMUM_FARE, ObjectionType.FUEL_HIKE),
        objection_frequency=Level.HIGH,
        deal_closing_behavior=DealClosingBehavior.NEEDS_CONVINCING,
        average_rounds_to_close=4,
        response_patterns=ResponsePatterns(
            greeting=("Haan bolo", "Ji boliye"),
            price_quote=("{{price}} lagega", "Kam se kam {{price}}"),
            rejection=("Bhai itna kam mein kaise hoga", "Yeh to bahut kam hai", "Petrol ka rate dekha hai aapne?"),
            acceptance=("Accha chal theek hai", "Chal bhai kar lete hain"),
            farewell=("Theek hai bhai", "Chal bye"),
        ),
    ),
    VendorPersona(
        id="aggressive_reluctant",
        name="Aggressive Reluctant",
        description="Pushes back hard, may show frustration, difficult to negotiate",
        negotiation_style=NegotiationStyle.AGGRESSIVE,
        communication_style=CommunicationStyle.IMPATIENT,
        language_mix=LanguageMix.PURE_PRIMARY,
        price_flexibility=5,
        typical_first_offer_markup=15,
        minimum_acceptable_discount=3,
        common_objections=(ObjectionType.PRICE_TOO_LOW, ObjectionType.DEMAND_HIGH, ObjectionType.DISTANCE_TOO_FAR),
        objection_frequency=Level.HIGH,
        deal_closing_behavior=DealClosingBehavior.FINAL_OFFER,
        average_rounds_to_close=2,
        response_patterns=ResponsePatterns(
            greeting=("Haan", "Boliye jaldi"),
            price_quote=("{{price}} final hai", "{{price}}, kam nahi hoga"),
            rejection=("Nahi hoga", "Time waste mat karo", "Itna kam mein koi nahi jayega"),
            acceptance=("Chal theek hai", "Okay"),
            farewell=("Bye", "Theek hai"),
        ),
    ),
    VendorPersona(
        id="whatsapp_redirector",
        name="WhatsApp Redirector",
        description="Prefers communication via WhatsApp, may avoid phone negotiation",
        negotiation_style=NegotiationStyle.PROFESSIONAL,
        communication_style=CommunicationStyle.TERSE,
        language_mix=LanguageMix.MIXED,
        price_flexibility=15,
        typical_first_offer_markup=15,
        minimum_acceptable_discount=10,
        common_objections=(ObjectionType.ASK_WHATSAPP, ObjectionType.VEHICLE_UNAVAILABLE),
        objection_frequency=Level.MEDIUM,
        deal_closing_behavior=DealClosingBehavior.ASKS_CALLBACK,
        average_rounds_to_close=2,
        response_patterns=ResponsePatterns(
            greeting=("Hello", "Ji haan"),
            price_quote=("Approx {{price}} hoga", "{{price}} ke around"),
            rejection=("Details WhatsApp pe bhejo", "Abhi busy hoon, WhatsApp karo"),
            acceptance=("WhatsApp pe confirm kar dena", "Theek hai, details bhej dena"),
            farewell=("WhatsApp karna", "Bye, message karna"),
        ),
    ),
)


def get_persona(persona_id: str, personas: Sequence[VendorPersona] = PERSONA_TEMPLATES) -> VendorPersona:
    for persona in personas:
        if persona.id == persona_id:
            return persona
    available = ", ".join(sorted(p.id for p in personas))
    raise PersonaNotFoundError(f"Unknown persona_id: {persona_id}. Available: {available}")


def get_all_personas() -> list[VendorPersona]:
    return list(PERSONA_TEMPLATES)


def find_template_for_style(
    style: NegotiationStyle,
    templates: Sequence[VendorPersona] = PERSONA_TEMPLATES,
) -> Optional[VendorPersona]:
    """First template whose negotiation style matches, if any."""
    return next((t for t in templates if t.negotiation_style == style), None)
