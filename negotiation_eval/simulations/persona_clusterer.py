"""
Group persona extractions into refined vendor personas.

Clusters are the fixed negotiation styles: every extraction lands in the bucket
of its style, and each populated bucket refines the baseline template of the
same style. Templates are copied, never mutated.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Sequence

from negotiation_eval.engine.rounding import mean, round_half_up
from negotiation_eval.simulations.personas import (
    MAX_PHRASES_PER_CATEGORY,
    MAX_REFINED_OBJECTIONS,
    PERSONA_TEMPLATES,
    RESPONSE_PATTERN_CATEGORIES,
    Level,
    NegotiationStyle,
    ObjectionType,
    PersonaExtractionResult,
    ResponsePatterns,
    VendorPersona,
    find_template_for_style,
)


logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_MIN_CALLS = 5
MEDIUM_CONFIDENCE_MIN_CALLS = 2


def partition_by_style(
    extractions: Sequence[PersonaExtractionResult],
) -> dict[NegotiationStyle, list[PersonaExtractionResult]]:
    """Bucket extractions by negotiation style; every style is present, possibly empty."""
    buckets: dict[NegotiationStyle, list[PersonaExtractionResult]] = {style: [] for style in NegotiationStyle}
    for extraction in extractions:
        buckets[extraction.negotiation_style].append(extraction)
    return buckets


def confidence_for_bucket(size: int) -> Level:
    if size >= HIGH_CONFIDENCE_MIN_CALLS:
        return Level.HIGH
    if size >= MEDIUM_CONFIDENCE_MIN_CALLS:
        return Level.MEDIUM
    return Level.LOW


def top_objections(bucket: Sequence[PersonaExtractionResult], limit: int = MAX_REFINED_OBJECTIONS) -> tuple[ObjectionType, ...]:
    """Most frequent objections; ties keep first-seen order."""
    counts: Counter[ObjectionType] = Counter()
    for extraction in bucket:
        counts.update(extraction.objections_used)
    return tuple(objection for objection, _ in counts.most_common(limit))


def merge_response_patterns(bucket: Sequence[PersonaExtractionResult], fallback: ResponsePatterns) -> ResponsePatterns:
    """Collect up to three distinct phrases per category, keeping the template's when none were seen."""
    merged = {}
    for category in RESPONSE_PATTERN_CATEGORIES:
        seen: dict[str, None] = {}
        for extraction in bucket:
            for sample in extraction.sample_phrases:
                if sample.category == category:
                    seen.setdefault(sample.phrase, None)
        phrases = tuple(seen)[:MAX_PHRASES_PER_CATEGORY]
        merged[category.value] = phrases or fallback.for_category(category)
    return ResponsePatterns(**merged)


def refine_persona(template: VendorPersona, bucket: Sequence[PersonaExtractionResult]) -> VendorPersona:
    """Override a template with the evidence from one non-empty bucket."""
    reductions = [e.price_reduction_percent for e in bucket if e.price_reduction_percent is not None]
    price_flexibility = mean(reductions) if reductions else template.price_flexibility
    avg_rounds = mean(e.negotiation_rounds for e in bucket)
    objections = top_objections(bucket)

    return template.model_copy(update={
        "id": f"{template.id}_refined",
        "price_flexibility": round_half_up(price_flexibility),
        "average_rounds_to_close": round_half_up(avg_rounds),
        "common_objections": objections or template.common_objections,
        "response_patterns": merge_response_patterns(bucket, template.response_patterns),
        "source_call_ids": tuple(e.call_id for e in bucket),
        "confidence": confidence_for_bucket(len(bucket)),
        "created_at": datetime.now(timezone.utc),
    })


def cluster_into_personas(
    extractions: Sequence[PersonaExtractionResult],
    templates: Sequence[VendorPersona] = PERSONA_TEMPLATES,
) -> list[VendorPersona]:
    """
    Produce one refined persona per negotiation style that has evidence.

    Args:
        extractions: Per-call extraction results
        templates: Baseline personas used as priors/fallbacks

    Returns:
        Refined personas, at most one per style, in style order
    """
    refined: list[VendorPersona] = []

    for style, bucket in partition_by_style(extractions).items():
        if not bucket:
            continue

        template = find_template_for_style(style, templates)
        if template is None:
            logger.info("No template for style %s; skipping %d extractions", style.value, len(bucket))
            continue

        refined.append(refine_persona(template, bucket))

    return refined
