"""
Keyword fallback scorer.

Terminal step of every AI extraction chain: counts lexical cues per axis and
maps the hit count to a score. Pure, so it cannot fail.
"""

from typing import Dict, List

from uaps.constants import AlgorithmConstants, FlavorAxes
from uaps.schema import FlavorVector
from uaps.utils import count_hits

# Lexical cues per axis, matched as case-insensitive substrings
FLAVOR_KEYWORDS: Dict[str, List[str]] = {
    FlavorAxes.FRUITY: [
        "citrus", "lemon", "lime", "grapefruit", "orange", "apple", "pear",
        "peach", "tropical", "fruit", "berry", "cherry", "strawberry",
        "raspberry", "melon", "mandarin", "yuzu", "zesty",
    ],
    FlavorAxes.FLORAL_MINERAL: [
        "floral", "flower", "blossom", "mineral", "chalk", "flinty", "slate",
        "iodine", "saline", "wet stone", "petrichor", "jasmine", "acacia",
        "rose petal", "violet",
    ],
    FlavorAxes.YEASTY_AUTOLYTIC: [
        "yeast", "brioche", "bread", "pastry", "dough", "biscuit", "autolysis",
        "lees", "bready", "croissant", "sourdough", "toast", "toasty",
    ],
    FlavorAxes.ACIDITY_FRESHNESS: [
        "acid", "acidity", "fresh", "crisp", "bright", "tart", "sharp",
        "lively", "zest", "tangy", "vibrant", "refreshing", "nerve",
    ],
    FlavorAxes.BODY_TEXTURE: [
        "body", "creamy", "mousse", "silky", "rich", "full", "velvety",
        "texture", "weight", "round", "dense", "concentrated", "viscous",
    ],
    FlavorAxes.FINISH_COMPLEXITY: [
        "finish", "complex", "length", "depth", "layer", "nuance", "persistent",
        "elegant", "long", "aftertaste", "honey", "nutty", "almond",
        "hazelnut", "marzipan", "toffee",
    ],
}


def hits_to_score(hits: int) -> float:
    for minimum, score in AlgorithmConstants.KEYWORD_SCORE_THRESHOLDS:
        if hits >= minimum:
            return score
    return 0.0


def score_text(text: str) -> FlavorVector:
    """
    Score one review by keyword hits.

    >>> score_text("bright citrus and crisp acidity, hints of brioche").acidity_freshness
    80.0
    """
    text = text or ""
    return FlavorVector(**{
        axis: hits_to_score(count_hits(text, cues))
        for axis, cues in FLAVOR_KEYWORDS.items()
    })
