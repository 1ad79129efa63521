"""Pydantic schemas for UAPS data validation."""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from uaps.constants import (
    AgingStage,
    CoefficientBasis,
    DataSource,
    Defaults,
    FlavorAxes,
    ModelUsed,
    ReductionPotential,
    WineType,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =======================
# FLAVOR VECTOR
# =======================

class FlavorVector(BaseModel):
    """Six-axis sensory profile, every axis clamped to [0, 100].

    Accepts snake_case or camelCase keys, so AI JSON parses directly.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    fruity: float = Field(..., description="Citrus, orchard, stone and red fruit")
    floral_mineral: float = Field(..., description="Blossom, chalk, flint, saline")
    yeasty_autolytic: float = Field(..., description="Brioche, pastry, toast, lees")
    acidity_freshness: float = Field(..., description="Crisp, bright, tart, vibrant")
    body_texture: float = Field(..., description="Mousse, creaminess, weight")
    finish_complexity: float = Field(..., description="Length, layers, nutty, honeyed")

    @field_validator('*', mode='before')
    @classmethod
    def clamp_axis(cls, value: Any) -> float:
        """Clamp every axis into [0, 100]; reject non-numeric and NaN."""
        if isinstance(value, bool) or value is None:
            raise ValueError("flavor axis must be numeric")
        number = float(value)
        if math.isnan(number):
            raise ValueError("flavor axis must not be NaN")
        return max(FlavorAxes.MIN_VALUE, min(FlavorAxes.MAX_VALUE, number))

    def to_array(self) -> np.ndarray:
        """Convert to numpy array in canonical axis order."""
        return np.array([getattr(self, axis) for axis in FlavorAxes.all()], dtype=float)

    @classmethod
    def from_array(cls, values) -> 'FlavorVector':
        """Create from an array-like in canonical axis order (clamped)."""
        values = list(values)
        if len(values) != len(FlavorAxes.all()):
            raise ValueError(f"Expected {len(FlavorAxes.all())} values, got {len(values)}")
        return cls(**{axis: float(v) for axis, v in zip(FlavorAxes.all(), values)})

    def to_dict(self, wire: bool = False) -> Dict[str, float]:
        """Axis → value mapping; camelCase keys when ``wire`` is set."""
        return self.model_dump(by_alias=wire)

    def distance_to(self, other: 'FlavorVector') -> float:
        """Euclidean distance in 6-D flavor space."""
        return float(np.linalg.norm(self.to_array() - other.to_array()))


# =======================
# CORPUS AND MODEL GROUPS
# =======================

class TerrestrialDataPoint(BaseModel):
    """One classified and scored review from the ingestion collaborator."""

    wine_name: str = Field(..., min_length=1)
    vintage: Optional[int] = Field(None, ge=1800, le=2100)
    wine_type: WineType
    aging_stage: AgingStage
    flavor: FlavorVector
    data_source: DataSource = DataSource.MANUAL_ENTRY
    rating: Optional[float] = None
    review_text: Optional[str] = None
    aging_years: Optional[float] = Field(None, ge=0)


class ModelGroup(BaseModel):
    """Statistical summary of all reviews sharing (wine_type, aging_stage)."""

    model_config = ConfigDict(frozen=True)

    wine_type: WineType
    aging_stage: AgingStage
    centroid: FlavorVector
    stddev: Dict[str, float] = Field(..., description="Population stddev per axis")
    sample_count: int = Field(..., ge=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    computed_at: datetime = Field(default_factory=_utcnow)
    low_sample_threshold: int = Field(5, ge=1)

    @property
    def key(self) -> str:
        return group_key(self.wine_type, self.aging_stage)

    @property
    def is_low_sample(self) -> bool:
        """True when the group is valid but thin; always reported, never hidden."""
        return self.sample_count < self.low_sample_threshold


def group_key(wine_type: WineType, aging_stage: AgingStage) -> str:
    """Canonical key of a model group, also used as the lexical tie-breaker."""
    return f"{WineType(wine_type).value}::{AgingStage(aging_stage).value}"


class ModelSnapshot(BaseModel):
    """Immutable, versioned set of model groups produced by one training run."""

    model_config = ConfigDict(frozen=True)

    version: int = Field(..., ge=0)
    groups: Tuple[ModelGroup, ...] = ()
    trained_at: Optional[datetime] = None
    corpus_size: int = 0

    def get(self, wine_type: WineType, aging_stage: AgingStage) -> Optional[ModelGroup]:
        key = group_key(wine_type, aging_stage)
        for group in self.groups:
            if group.key == key:
                return group
        return None

    def __len__(self) -> int:
        return len(self.groups)


# =======================
# PRODUCT
# =======================

class AgingProduct(BaseModel):
    """Bottle lot to be (or being) aged undersea, from the product catalog."""

    id: str = Field(..., min_length=1)
    product_name: str = ""
    wine_type: WineType
    vintage: Optional[int] = Field(None, ge=1800, le=2100)
    producer: str = ""
    aging_depth: float = Field(30.0, ge=0, description="Immersion depth in meters")
    reduction_potential: ReductionPotential = ReductionPotential.LOW
    aging_stage: Optional[AgingStage] = Field(None, description="Explicit stage; derived from vintage when absent")
    flavor_profile: Optional[FlavorVector] = Field(None, description="Measured pre-immersion profile, if any")
    notes: Optional[str] = None


# =======================
# CONFIG
# =======================

class CoefficientMeta(BaseModel):
    """An environmental coefficient with the derivation that produced it."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float
    basis: CoefficientBasis
    formula_params: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    references: List[str] = Field(default_factory=list)
    lower95: Optional[float] = None
    upper95: Optional[float] = None


class StageThresholds(BaseModel):
    """Upper bound in years of each aging stage."""

    model_config = ConfigDict(frozen=True)

    youthful: int = 3
    developing: int = 7
    mature: int = 15


class RiskThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    off_flavor: float = 70.0
    optimal_quality: float = 80.0


class AxisCoefficientRule(BaseModel):
    """How one flavor axis' AI delta is scaled by an environmental coefficient."""

    model_config = ConfigDict(frozen=True)

    coefficient: str = Field(..., pattern=r'^(tci|fri|bri)$')
    mode: str = Field("direct", pattern=r'^(direct|inverse)$')


class ParsedUAPSConfig(BaseModel):
    """Typed, defaulted view of the flat config store. Parsed once per invocation."""

    model_config = ConfigDict(frozen=True)

    tci: CoefficientMeta
    fri: CoefficientMeta
    bri: CoefficientMeta
    bri_override: Optional[float] = Field(None, description="Configured BRI value, kept for depth re-derivation")
    stage_thresholds: StageThresholds = Field(default_factory=StageThresholds)
    risk_thresholds: RiskThresholds = Field(default_factory=RiskThresholds)
    expert_max_weight: float = Field(0.4, ge=0.0, le=1.0)
    axis_coefficient_map: Dict[str, AxisCoefficientRule] = Field(default_factory=lambda: {
        axis: AxisCoefficientRule(coefficient=coefficient, mode=mode)
        for axis, (coefficient, mode) in Defaults.AXIS_COEFFICIENT_MAP.items()
    })
    quality_weights: Dict[str, float] = Field(default_factory=lambda: dict(Defaults.QUALITY_WEIGHTS))
    risk_sigmoid_k: float = Field(0.2, gt=0)
    risk_sigmoid_midpoint: float = 22.0
    timeline_base_tau_months: float = Field(12.0, gt=0)

    def coefficient(self, name: str) -> CoefficientMeta:
        """Look up tci/fri/bri by name."""
        return {'tci': self.tci, 'fri': self.fri, 'bri': self.bri}[name]


# =======================
# AI LAYER RESULTS
# =======================

class ExpertProfile(BaseModel):
    """AI-grounded profile of the specific wine. Transient."""

    model_config = ConfigDict(frozen=True)

    profile: FlavorVector
    confidence: float = Field(..., ge=0.0, le=1.0)
    sources: List[str] = Field(default_factory=list)
    model: Optional[str] = None


class AIInference(BaseModel):
    """Directional per-axis deltas for the requested duration, plus narrative."""

    model_config = ConfigDict(frozen=True)

    deltas: Dict[str, float]
    insight: str = ""
    risk_warning: Optional[str] = None
    source: str = Field(..., description="Model id, or the name of the deterministic fallback")


class ExtractedFlavors(BaseModel):
    """Flavor scores for one review text, plus inferred bottle age."""

    flavor: FlavorVector
    aging_years: Optional[float] = None
    aging_years_confidence: Optional[float] = None
    method: str = "keyword_fallback"


# =======================
# PREDICTION
# =======================

class ClusterMatch(BaseModel):
    """A model group ranked against a product."""

    model_config = ConfigDict(frozen=True)

    group: ModelGroup
    distance: float = Field(..., ge=0.0)


class MatchedCluster(BaseModel):
    """The part of a ClusterMatch recorded on a prediction."""

    model_config = ConfigDict(frozen=True)

    group_key: str
    distance: float
    sample_count: int
    is_low_sample: bool


class TimelineEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1)
    flavor: FlavorVector
    quality_score: float = Field(..., ge=0.0, le=100.0)
    off_flavor_risk: float = Field(..., ge=0.0, le=100.0)
    is_golden_window: bool = False


class GoldenWindow(BaseModel):
    """Longest run of months with high quality and acceptable risk."""

    model_config = ConfigDict(frozen=True)

    start_month: int
    end_month: int
    peak_month: int
    peak_quality: float

    @property
    def length(self) -> int:
        return self.end_month - self.start_month + 1


class AgingPrediction(BaseModel):
    """One immutable prediction; persisted by an external store."""

    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    product_name: str = ""
    wine_type: WineType
    duration_months: int
    aging_depth: float
    snapshot_version: int
    matched_clusters: List[MatchedCluster]
    model_used: ModelUsed
    coefficients: Dict[str, CoefficientMeta]
    before: FlavorVector
    after: FlavorVector
    expert_profile: Optional[ExpertProfile] = None
    timeline: List[TimelineEntry]
    golden_window: Optional[GoldenWindow] = None
    harvest_recommendation: str = ""
    ai_insight: str = ""
    ai_risk_warning: Optional[str] = None
    inference_source: str = ""
    prediction_confidence: float = Field(..., ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def matched_cluster_count(self) -> int:
        return len(self.matched_clusters)

    def to_response(self) -> Dict[str, Any]:
        """Payload for the reporting/UI collaborator."""
        return {
            "prediction": self.model_dump(mode="json"),
            "matchedClusters": self.matched_cluster_count,
            "modelUsed": self.model_used.value,
        }
