"""
Review flavor extraction.

Scores batches of free-text reviews on the six flavor axes and infers how old
each bottle was when reviewed. Uses the shared fallback chain: extraction
models in order, then the keyword scorer.
"""

import logging
import re
import threading
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

from openai import OpenAI
from pydantic import BaseModel, Field

from uaps.ai_chain import FallbackChain, InferenceStrategy, openai_strategies
from uaps.config import MAX_EXTRACTION_BATCH, OPENAI_EXTRACTION_MODELS
from uaps.constants import AlgorithmConstants
from uaps.error_handling import InputValidationError, UpstreamAIError
from uaps.keyword_scorer import score_text
from uaps.schema import ExtractedFlavors, FlavorVector
from uaps.utils import sanitize_text_input

logger = logging.getLogger(__name__)

KEYWORD_METHOD = "keyword_fallback"

VINTAGE_CALC_CONFIDENCE = 0.92
OLD_VINTAGE_CALC_CONFIDENCE = 0.70
TEXT_YEARS_CONFIDENCE = 0.88
TEXT_MONTHS_CONFIDENCE = 0.85

YEAR_PATTERNS = [
    re.compile(r'(\d+(?:\.\d+)?)\s*[-–]?\s*years?\s*(?:old|aged|of\s+age|on\s+(?:the\s+)?lees?|in\s+(?:bottle|cellar))'),
    re.compile(r'aged?\s+(?:for\s+)?(\d+(?:\.\d+)?)\s*years?'),
    re.compile(r'(\d+(?:\.\d+)?)\s*yrs?\s+(?:old|aged)'),
]

MONTH_PATTERNS = [
    re.compile(r'(\d+)\s*months?\s+(?:on\s+(?:the\s+)?lees?|aged?|in\s+(?:bottle|cellar))'),
    re.compile(r'disgorgement\s+after\s+(\d+)\s*months?'),
    re.compile(r'(\d+)\s*months?\s+(?:of\s+)?(?:aging|ageing|maturation)'),
]


class ReviewInput(BaseModel):
    """One review to score."""

    text: str
    wine_name: str = ""
    vintage: Optional[int] = None
    review_date: Optional[str] = Field(None, description="'YYYY-MM-DD' or 'YYYY'")


# =======================
# AGING YEARS INFERENCE
# =======================

def infer_aging_years_from_vintage(
    vintage: Optional[int],
    review_date: Optional[str] = None,
    current_year: Optional[int] = None,
) -> Optional[Tuple[float, float]]:
    """
    Years between vintage and review (or this year).

    Returns:
        (years, confidence) or None when vintage is unusable
    """
    if not vintage or vintage < 1900:
        return None

    if review_date:
        try:
            review_year = int(review_date[:4])
        except ValueError:
            return None
    else:
        review_year = current_year or datetime.now(timezone.utc).year

    years = review_year - vintage
    if years < 0 or years > 50:
        return None

    confidence = OLD_VINTAGE_CALC_CONFIDENCE if years > 30 else VINTAGE_CALC_CONFIDENCE
    return float(years), confidence


def infer_aging_years_from_text(text: str) -> Optional[Tuple[float, float]]:
    """Explicit age statements such as 'aged 5 years' or '36 months on the lees'."""
    lower = (text or "").lower()

    for pattern in YEAR_PATTERNS:
        match = pattern.search(lower)
        if match:
            value = float(match.group(1))
            if 0 < value <= 50:
                return value, TEXT_YEARS_CONFIDENCE

    for pattern in MONTH_PATTERNS:
        match = pattern.search(lower)
        if match:
            months = int(match.group(1))
            if 0 < months <= 600:
                return round(months / 12, 1), TEXT_MONTHS_CONFIDENCE

    return None


def _local_aging_years(review: ReviewInput) -> Optional[Tuple[float, float]]:
    return infer_aging_years_from_vintage(review.vintage, review.review_date) or infer_aging_years_from_text(review.text)


# =======================
# STRATEGIES
# =======================

class KeywordExtractionStrategy(InferenceStrategy[List[ExtractedFlavors]]):
    """Terminal strategy: keyword scores plus locally inferred age. Never raises."""

    name = KEYWORD_METHOD

    def try_extract(self, payload: Sequence[ReviewInput]) -> List[ExtractedFlavors]:
        results = []
        for review in payload:
            aging = _local_aging_years(review)
            results.append(ExtractedFlavors(
                flavor=score_text(review.text),
                aging_years=aging[0] if aging else None,
                aging_years_confidence=aging[1] if aging else None,
                method=KEYWORD_METHOD,
            ))
        return results


def _build_messages(reviews: Sequence[ReviewInput]) -> List[dict]:
    blocks = []
    for i, review in enumerate(reviews, 1):
        vintage_info = f" (vintage: {review.vintage})" if review.vintage else ""
        date_info = f" [reviewed: {review.review_date}]" if review.review_date else ""
        blocks.append(f"[{i}] Wine: {review.wine_name}{vintage_info}{date_info}\nReview: {review.text}")

    prompt = f"""Analyze these sparkling wine tasting notes and extract, for each review:
1. Six flavor scores (0-100)
2. agingYears: how many years old the wine was at time of review

Flavor dimensions:
- fruity: citrus, stone fruit, tropical, apple, pear, berry
- floralMineral: floral, chalk, flint, saline, mineral
- yeastyAutolytic: brioche, toast, pastry, lees, biscuit
- acidityFreshness: crisp, bright, tart, lively
- bodyTexture: mousse, creaminess, weight, richness
- finishComplexity: length, layers, nutty, honeyed

For agingYears:
- If vintage and review date are both given: reviewYear - vintageYear
- If the review says "X years old/aged" or "X months on lees": extract directly
- If completely unclear: null
- agingYearsConfidence: 0.90 (dates), 0.85 (explicit text), 0.60 (descriptors), 0 (unknown)

Return JSON only: {{"results": [...]}} with exactly {len(reviews)} objects, in input order.
Example object: {{"fruity":65,"floralMineral":30,"yeastyAutolytic":45,"acidityFreshness":70,"bodyTexture":55,"finishComplexity":40,"agingYears":5,"agingYearsConfidence":0.85}}

Reviews:
""" + "\n\n".join(blocks)

    return [
        {"role": "system", "content": "You are a sommelier scoring sparkling wine reviews. Return JSON only."},
        {"role": "user", "content": prompt},
    ]


def _parse_results(data: Any, message: Any, reviews: Sequence[ReviewInput]) -> List[ExtractedFlavors]:
    """Accept a bare array or {"results": [...]}; its length must equal the batch."""
    items = data.get("results") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise UpstreamAIError("Extraction response is not an array")
    if len(items) != len(reviews):
        raise UpstreamAIError(f"Result count mismatch: {len(items)} vs {len(reviews)}")

    results = []
    for item in items:
        if not isinstance(item, dict):
            raise UpstreamAIError("Extraction item is not an object")
        years = item.get("agingYears")
        confidence = item.get("agingYearsConfidence")
        results.append(ExtractedFlavors(
            flavor=FlavorVector.model_validate(item),
            aging_years=float(years) if isinstance(years, (int, float)) and years >= 0 else None,
            aging_years_confidence=float(confidence) if isinstance(confidence, (int, float)) else None,
            method="ai",
        ))
    return results


def build_extraction_chain(client: Optional[OpenAI], models: Sequence[str] = OPENAI_EXTRACTION_MODELS) -> FallbackChain:
    return FallbackChain(
        openai_strategies(client, models, _build_messages, _parse_results),
        terminal=KeywordExtractionStrategy(),
        operation="Flavor extraction",
    )


# =======================
# PUBLIC API
# =======================

def extract_flavor_profiles(
    reviews: Sequence[ReviewInput],
    client: Optional[OpenAI] = None,
    chain: Optional[FallbackChain] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[ExtractedFlavors]:
    """
    Score one batch of reviews.

    A date-based age calculation overrides whatever the model inferred, and
    any age below the minimum confidence is dropped.

    Args:
        reviews: 1..20 reviews
        client: OpenAI client; None means keyword scoring only
        chain: Pre-built chain (overrides client)
        cancel_event: Set to abandon remaining model attempts

    Returns:
        One ExtractedFlavors per review, in input order

    Raises:
        InputValidationError: Empty batch or more than 20 reviews
    """
    if not reviews:
        raise InputValidationError("At least one review is required")
    if len(reviews) > MAX_EXTRACTION_BATCH:
        raise InputValidationError(f"At most {MAX_EXTRACTION_BATCH} reviews per batch, got {len(reviews)}")

    cleaned = [
        review.model_copy(update={"text": sanitize_text_input(review.text, AlgorithmConstants.MAX_TEXT_INPUT_LENGTH)})
        for review in reviews
    ]

    chain = chain or build_extraction_chain(client)
    outcome = chain.run(cleaned, cancel_event=cancel_event)

    results = []
    for review, result in zip(cleaned, outcome.value):
        update = {}
        vintage_calc = infer_aging_years_from_vintage(review.vintage, review.review_date)
        if vintage_calc and result.method != KEYWORD_METHOD:
            update = {"aging_years": vintage_calc[0], "aging_years_confidence": vintage_calc[1]}
        result = result.model_copy(update=update)

        if (result.aging_years_confidence or 0.0) < AlgorithmConstants.AGING_YEARS_MIN_CONFIDENCE:
            result = result.model_copy(update={"aging_years": None, "aging_years_confidence": None})
        results.append(result)

    logger.info(f"Extracted flavors for {len(results)} reviews via {outcome.source}")
    return results


def extract_in_batches(reviews: Sequence[ReviewInput], client: Optional[OpenAI] = None,
                       batch_size: int = MAX_EXTRACTION_BATCH) -> List[ExtractedFlavors]:
    """Score any number of reviews in chunks of at most batch_size."""
    batch_size = min(batch_size, MAX_EXTRACTION_BATCH)
    chain = build_extraction_chain(client)
    results = []
    for start in range(0, len(reviews), batch_size):
        results.extend(extract_flavor_profiles(reviews[start:start + batch_size], chain=chain))
    return results
