"""
Expert Profile Generator (Layer 2a)

Asks a search-grounded model what this specific wine tastes like today.
Best-effort enrichment: every failure is logged and turned into None.
"""

import logging
import threading
from typing import Any, List, Optional, Sequence

from openai import OpenAI

from uaps.ai_chain import FallbackChain, openai_strategies
from uaps.config import OPENAI_EXPERT_MODELS
from uaps.constants import WINE_TYPE_LABELS
from uaps.error_handling import PredictionCancelledError, UAPSError, validate_llm_response
from uaps.schema import AgingProduct, ExpertProfile, FlavorVector
from uaps.utils import clamp, sanitize_text_input

logger = logging.getLogger(__name__)


def _build_messages(product: AgingProduct) -> List[dict]:
    vintage = product.vintage or "NV"
    label = WINE_TYPE_LABELS.get(product.wine_type, product.wine_type.value)
    name = sanitize_text_input(product.product_name or product.id, max_length=200)
    producer = sanitize_text_input(product.producer, max_length=200)

    prompt = f"""Search professional reviews and tasting notes for this specific sparkling wine:

Wine: {name}
Producer: {producer or "unknown"}
Style: {label}
Vintage: {vintage}

Score its current sensory profile on six axes (0-100):
fruity, floralMineral, yeastyAutolytic, acidityFreshness, bodyTexture, finishComplexity

Return a single JSON object and nothing else:
{{"profile": {{"fruity": 0, "floralMineral": 0, "yeastyAutolytic": 0, "acidityFreshness": 0, "bodyTexture": 0, "finishComplexity": 0}},
  "confidence": 0.0,
  "sources": ["https://..."]}}

confidence is 0-1: how well the sources describe this exact wine and vintage."""

    return [
        {"role": "system", "content": "You are a sparkling wine critic with web search. Return JSON only."},
        {"role": "user", "content": prompt},
    ]


def _citation_urls(message: Any) -> List[str]:
    """URLs from url_citation annotations on a search-model reply."""
    urls = []
    for annotation in getattr(message, "annotations", None) or []:
        if getattr(annotation, "type", None) != "url_citation":
            continue
        citation = getattr(annotation, "url_citation", None)
        url = getattr(citation, "url", None)
        if url:
            urls.append(url)
    return urls


def _parse_profile(data: Any, message: Any, product: AgingProduct) -> ExpertProfile:
    data = validate_llm_response(data, ["profile", "confidence"], "expert profile")

    sources = []
    for url in list(data.get("sources") or []) + _citation_urls(message):
        if isinstance(url, str) and url.startswith("http") and url not in sources:
            sources.append(url)

    return ExpertProfile(
        profile=FlavorVector.model_validate(data["profile"]),
        confidence=clamp(float(data["confidence"]), 0.0, 1.0),
        sources=sources,
    )


class ExpertProfileGenerator:
    """
    Wine-specific profile from search-capable models.

    Tries each expert model once; never raises except on cancellation.
    """

    def __init__(self, client: Optional[OpenAI], models: Sequence[str] = OPENAI_EXPERT_MODELS,
                 chain: Optional[FallbackChain] = None):
        self.chain = chain or FallbackChain(
            # Search models reject response_format and temperature; their prose cites [1]-style markers
            openai_strategies(
                client, models, _build_messages, _parse_profile,
                json_mode=False, temperature=None, expect=(dict,),
            ),
            terminal=None,
            operation="Expert profile",
        )

    def generate(self, product: AgingProduct, cancel_event: Optional[threading.Event] = None) -> Optional[ExpertProfile]:
        """
        Args:
            product: Product to profile
            cancel_event: Set to abandon remaining attempts

        Returns:
            ExpertProfile, or None if no model produced a usable answer
        """
        if not self.chain.strategies:
            logger.warning("No expert models available; skipping expert profile")
            return None

        try:
            outcome = self.chain.run(product, cancel_event=cancel_event)
        except PredictionCancelledError:
            raise
        except UAPSError as e:
            logger.warning(f"Expert profile unavailable for {product.id}: {e}")
            return None

        profile = outcome.value.model_copy(update={"model": outcome.source})
        logger.info(
            f"Expert profile for {product.id} from {outcome.source} "
            f"(confidence {profile.confidence:.2f}, {len(profile.sources)} sources)"
        )
        return profile
