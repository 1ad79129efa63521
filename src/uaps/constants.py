"""
UAPS Constants and Enums

Centralized constants, enums, and tunable defaults to eliminate string
duplication and keep every domain number in one place.
"""

from enum import Enum
from typing import Dict, List, Tuple


# =======================
# WINE ATTRIBUTE ENUMS
# =======================

class WineType(str, Enum):
    """Sparkling wine styles tracked by the corpus."""
    VINTAGE = "vintage"
    BLEND = "blend"
    ROSE = "rose"
    BLANC_DE_BLANCS = "blanc_de_blancs"
    BLANC_DE_NOIRS = "blanc_de_noirs"


class AgingStage(str, Enum):
    """Bottle-age buckets, youngest first."""
    YOUTHFUL = "youthful"
    DEVELOPING = "developing"
    MATURE = "mature"
    AGED = "aged"


class DataSource(str, Enum):
    """Where a terrestrial data point came from."""
    VIVINO = "vivino"
    CELLARTRACKER = "cellartracker"
    DECANTER = "decanter"
    INTERNAL_TASTING = "internal_tasting"
    MANUAL_ENTRY = "manual_entry"
    CSV_IMPORT = "csv_import"
    HUGGINGFACE = "huggingface"


class ReductionPotential(str, Enum):
    """Tendency of a cuvée to develop reductive off-flavors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CoefficientBasis(str, Enum):
    """Strength of evidence behind an environmental coefficient."""
    SCIENTIFIC = "scientific"
    HYPOTHESIS = "hypothesis"


class ModelUsed(str, Enum):
    """Confidence label reported next to every prediction."""
    HYBRID = "hybrid"
    STATISTICAL_FALLBACK = "statistical_fallback"


WINE_TYPE_LABELS = {
    WineType.BLANC_DE_BLANCS: "Blanc de Blancs",
    WineType.BLANC_DE_NOIRS: "Blanc de Noirs",
    WineType.ROSE: "Rosé",
    WineType.BLEND: "Blend",
    WineType.VINTAGE: "Vintage",
}


# =======================
# FLAVOR AXES
# =======================

class FlavorAxes:
    """The six WSET/OIV sensory axes, in canonical order."""

    FRUITY = "fruity"
    FLORAL_MINERAL = "floral_mineral"
    YEASTY_AUTOLYTIC = "yeasty_autolytic"
    ACIDITY_FRESHNESS = "acidity_freshness"
    BODY_TEXTURE = "body_texture"
    FINISH_COMPLEXITY = "finish_complexity"

    # camelCase names used on the wire (AI prompts, JSON payloads)
    WIRE_NAMES = {
        "fruity": "fruity",
        "floral_mineral": "floralMineral",
        "yeasty_autolytic": "yeastyAutolytic",
        "acidity_freshness": "acidityFreshness",
        "body_texture": "bodyTexture",
        "finish_complexity": "finishComplexity",
    }

    MIN_VALUE = 0.0
    MAX_VALUE = 100.0

    @classmethod
    def all(cls) -> List[str]:
        """Get the six axes in canonical order."""
        return [
            cls.FRUITY,
            cls.FLORAL_MINERAL,
            cls.YEASTY_AUTOLYTIC,
            cls.ACIDITY_FRESHNESS,
            cls.BODY_TEXTURE,
            cls.FINISH_COMPLEXITY,
        ]

    @classmethod
    def wire_names(cls) -> List[str]:
        """Get the camelCase axis names in canonical order."""
        return [cls.WIRE_NAMES[axis] for axis in cls.all()]


# =======================
# CONFIG STORE KEYS
# =======================

class ConfigKeys:
    """Keys of the flat key→string config store."""

    TCI = "tci_coefficient"
    FRI = "fri_coefficient"
    BRI = "bri_coefficient"

    STAGE_YOUTHFUL = "stage_threshold_youthful"
    STAGE_DEVELOPING = "stage_threshold_developing"
    STAGE_MATURE = "stage_threshold_mature"

    RISK_OFF_FLAVOR = "risk_threshold_off_flavor"
    QUALITY_OPTIMAL = "quality_threshold_optimal"

    EXPERT_MAX_WEIGHT = "expert_max_weight"
    AXIS_COEFFICIENT_MAP = "axis_coefficient_map"
    QUALITY_WEIGHTS = "quality_weights"
    RISK_SIGMOID_K = "risk_sigmoid_k"
    RISK_SIGMOID_MIDPOINT = "risk_sigmoid_midpoint"
    TIMELINE_BASE_TAU = "timeline_base_tau_months"


# =======================
# DEFAULTS
# =======================

class Defaults:
    """Documented fallbacks for every config key."""

    TCI = 0.40
    FRI = 0.56
    BRI = 0.72

    # Upper bound (years) of each stage; anything older is "aged"
    STAGE_THRESHOLDS = {"youthful": 3, "developing": 7, "mature": 15}

    OFF_FLAVOR_THRESHOLD = 70.0
    OPTIMAL_QUALITY_THRESHOLD = 80.0

    # Max share an expert profile can take of the baseline (scaled by its confidence)
    EXPERT_MAX_WEIGHT = 0.4

    # Off-flavor sigmoid: slope per month and midpoint month
    RISK_SIGMOID_K = 0.2
    RISK_SIGMOID_MIDPOINT = 22.0

    # Base time constant of the flavor easing curve
    TIMELINE_BASE_TAU_MONTHS = 12.0

    # Used whenever no model group matched
    GLOBAL_FLAVOR_VECTOR = {
        "fruity": 60.0,
        "floral_mineral": 45.0,
        "yeasty_autolytic": 40.0,
        "acidity_freshness": 70.0,
        "body_texture": 55.0,
        "finish_complexity": 50.0,
    }

    # axis -> (coefficient, mode). "direct" scales by the value,
    # "inverse" by 1/value; unlisted axes are not scaled.
    AXIS_COEFFICIENT_MAP: Dict[str, Tuple[str, str]] = {
        "fruity": ("fri", "direct"),
        "acidity_freshness": ("fri", "direct"),
        "yeasty_autolytic": ("tci", "inverse"),
        "body_texture": ("bri", "direct"),
    }

    # Weights of axis deviations in the quality score (sum to 1)
    QUALITY_WEIGHTS = {
        "fruity": 0.20,
        "floral_mineral": 0.10,
        "yeasty_autolytic": 0.15,
        "acidity_freshness": 0.25,
        "body_texture": 0.15,
        "finish_complexity": 0.15,
    }


# =======================
# ALGORITHM CONSTANTS
# =======================

class AlgorithmConstants:
    """
    Algorithm constants with documentation.
    """

    # CLUSTERING
    # Groups below this size are kept but flagged as low-sample
    LOW_SAMPLE_THRESHOLD = 5
    # A group reaches full confidence at this many samples
    FULL_CONFIDENCE_SAMPLES = 100
    # Training still runs below this corpus size, with a warning
    MIN_RECOMMENDED_CORPUS = 100

    # SIMILARITY
    DEFAULT_TOP_K = 5
    # Added to every distance before inverting (flavor points)
    IDW_EPSILON = 1.0

    # PREDICTION CONFIDENCE
    # Matched-cluster count that gives full prediction confidence
    FULL_CONFIDENCE_MATCHES = 5

    # DURATION LIMITS (months)
    MIN_DURATION_MONTHS = 1
    MAX_DURATION_MONTHS = 36

    # COEFFICIENT EVIDENCE
    # Share of a coefficient's effect applied, by basis
    BASIS_CONFIDENCE = {
        CoefficientBasis.SCIENTIFIC: 1.0,
        CoefficientBasis.HYPOTHESIS: 0.5,
    }

    # AI DELTAS
    # Largest per-axis change an AI answer may propose
    MAX_AI_DELTA = 40.0

    # QUALITY SCORE
    # Points of quality lost per weighted point outside the envelope
    QUALITY_DEVIATION_PENALTY = 2.0

    # OFF-FLAVOR RISK
    # Midpoint shift (months) by reduction potential
    RISK_MIDPOINT_SHIFT = {
        ReductionPotential.LOW: 0.0,
        ReductionPotential.MEDIUM: -4.0,
        ReductionPotential.HIGH: -7.0,
    }

    # KEYWORD FALLBACK
    # Hit count -> score, checked top-down
    KEYWORD_SCORE_THRESHOLDS = ((3, 80.0), (2, 60.0), (1, 40.0))

    # AGING YEARS INFERENCE
    AGING_YEARS_MIN_CONFIDENCE = 0.75

    # INPUT LIMITS
    MAX_TEXT_INPUT_LENGTH = 5000


# Ideal sensory envelope for a well-aged sparkling wine, per axis (low, high)
IDEAL_ENVELOPE: Dict[str, Tuple[float, float]] = {
    "fruity": (50.0, 80.0),
    "floral_mineral": (40.0, 75.0),
    "yeasty_autolytic": (40.0, 80.0),
    "acidity_freshness": (55.0, 85.0),
    "body_texture": (45.0, 80.0),
    "finish_complexity": (45.0, 85.0),
}
