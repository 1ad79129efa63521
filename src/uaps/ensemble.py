"""
Ensemble Combiner

Deterministic blend of the statistical baseline, the optional expert profile,
the inferred deltas and the environmental coefficients into one before/after
pair.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence

import numpy as np

from uaps.coefficients import coefficient_confidence
from uaps.constants import AlgorithmConstants, Defaults, FlavorAxes, ModelUsed
from uaps.error_handling import DataUnavailableError
from uaps.schema import AIInference, ClusterMatch, ExpertProfile, FlavorVector, ParsedUAPSConfig
from uaps.utils import round1

logger = logging.getLogger(__name__)


@dataclass
class EnsembleResult:
    before: FlavorVector
    after: FlavorVector
    model_used: ModelUsed
    expert_weight: float = 0.0
    scale_factors: Dict[str, float] = field(default_factory=dict)


def global_default_vector() -> FlavorVector:
    return FlavorVector(**Defaults.GLOBAL_FLAVOR_VECTOR)


def inverse_distance_baseline(matches: Sequence[ClusterMatch]) -> FlavorVector:
    """
    Inverse-distance-weighted mean of matched centroids.

    Weights are 1/(distance + ε), renormalized to sum to 1.

    Raises:
        DataUnavailableError: If there are no matches
    """
    if not matches:
        raise DataUnavailableError("No model groups matched")

    weights = np.array([1.0 / (m.distance + AlgorithmConstants.IDW_EPSILON) for m in matches])
    weights = weights / weights.sum()
    centroids = np.vstack([m.group.centroid.to_array() for m in matches])
    return FlavorVector.from_array(weights @ centroids)


def blend_expert(baseline: FlavorVector, expert: Optional[ExpertProfile], max_weight: float):
    """(1 − w)·baseline + w·expert, w = confidence × max_weight. Returns (vector, w)."""
    if expert is None:
        return baseline, 0.0
    w = expert.confidence * max_weight
    blended = (1 - w) * baseline.to_array() + w * expert.profile.to_array()
    return FlavorVector.from_array(blended), w


def axis_scale_factors(config: ParsedUAPSConfig) -> Dict[str, float]:
    """
    Per-axis multiplier for inferred deltas.

    raw = value (direct) or 1/value (inverse); the effect is damped by the
    coefficient's evidence confidence: factor = 1 + (raw − 1)·confidence.
    Unmapped axes are unscaled.
    """
    factors = {}
    for axis in FlavorAxes.all():
        rule = config.axis_coefficient_map.get(axis)
        if rule is None:
            factors[axis] = 1.0
            continue
        meta = config.coefficient(rule.coefficient)
        if rule.mode == "inverse":
            raw = 1.0 / meta.value if meta.value > 0 else 1.0
        else:
            raw = meta.value
        factors[axis] = 1.0 + (raw - 1.0) * coefficient_confidence(meta)
    return factors


def apply_deltas(base: FlavorVector, deltas: Dict[str, float], factors: Dict[str, float]) -> FlavorVector:
    """Add scaled deltas per axis; the result is clamped by FlavorVector."""
    return FlavorVector(**{
        axis: round1(getattr(base, axis) + deltas.get(axis, 0.0) * factors.get(axis, 1.0))
        for axis in FlavorAxes.all()
    })


def blend_baseline(
    matches: Sequence[ClusterMatch],
    config: ParsedUAPSConfig,
    expert: Optional[ExpertProfile] = None,
) -> EnsembleResult:
    """
    Starting point before any deltas: IDW baseline blended with the expert
    profile. ``after`` equals ``before`` until apply_inference runs.

    model_used depends only on the number of matched clusters.
    """
    try:
        baseline = inverse_distance_baseline(matches)
        model_used = ModelUsed.HYBRID
    except DataUnavailableError:
        logger.warning("No clusters matched; using global default baseline")
        baseline = global_default_vector()
        model_used = ModelUsed.STATISTICAL_FALLBACK

    blended, expert_weight = blend_expert(baseline, expert, config.expert_max_weight)
    before = FlavorVector(**{axis: round1(v) for axis, v in blended.to_dict().items()})

    return EnsembleResult(
        before=before,
        after=before,
        model_used=model_used,
        expert_weight=expert_weight,
        scale_factors=axis_scale_factors(config),
    )


def apply_inference(start: EnsembleResult, inference: Optional[AIInference]) -> EnsembleResult:
    """Scale the inferred deltas and add them to ``start.before``."""
    after = apply_deltas(start.before, inference.deltas if inference else {}, start.scale_factors)
    return replace(start, after=after)


def combine(
    matches: Sequence[ClusterMatch],
    config: ParsedUAPSConfig,
    expert: Optional[ExpertProfile] = None,
    inference: Optional[AIInference] = None,
) -> EnsembleResult:
    """
    Blend all signals into before/after vectors.

    Args:
        matches: Ranked cluster matches (may be empty)
        config: Parsed config
        expert: Optional expert profile
        inference: Deltas from the inference layer, or None for no change

    Returns:
        EnsembleResult
    """
    return apply_inference(blend_baseline(matches, config, expert), inference)
