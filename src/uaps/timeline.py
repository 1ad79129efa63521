"""
Timeline Projector

Expands a before/after pair into a month-by-month trajectory with quality
score, off-flavor risk and the golden retrieval window.

Flavor follows a normalized Weibull-type approach curve
p(m) = g(m)/g(N), g(m) = 1 - exp(-(m/τ)²): slow at first, saturating late,
monotonic, and exactly at `after` in month N.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

from uaps.coefficients import coefficient_confidence
from uaps.constants import IDEAL_ENVELOPE, AlgorithmConstants, FlavorAxes, ReductionPotential
from uaps.schema import FlavorVector, GoldenWindow, ParsedUAPSConfig, TimelineEntry
from uaps.utils import clamp, round1

logger = logging.getLogger(__name__)


# =======================
# FLAVOR CURVE
# =======================

def time_constant(config: ParsedUAPSConfig) -> float:
    """
    τ in months. Higher FRI slows the approach; TCI speeds it up, damped by
    its hypothesis-level confidence.
    """
    tci = config.tci
    return (
        config.timeline_base_tau_months
        * (0.5 + config.fri.value)
        * (1 - 0.5 * tci.value * coefficient_confidence(tci))
    )


def progress(month: int, duration: int, tau: float) -> float:
    """Share of the total change reached by `month`, in [0, 1]."""
    g_end = 1 - math.exp(-((duration / tau) ** 2))
    if g_end <= 0:
        return 1.0
    return clamp((1 - math.exp(-((month / tau) ** 2))) / g_end, 0.0, 1.0)


def interpolate(before: FlavorVector, after: FlavorVector, fraction: float) -> FlavorVector:
    start, end = before.to_array(), after.to_array()
    return FlavorVector.from_array([round1(v) for v in start + (end - start) * fraction])


# =======================
# QUALITY AND RISK
# =======================

def quality_score(flavor: FlavorVector, weights: Dict[str, float]) -> float:
    """
    100 minus the weighted distance outside the ideal envelope.

    Each axis contributes max(0, low − v, v − high); weights are normalized
    to sum to 1.
    """
    total_weight = sum(weights.values()) or 1.0
    penalty = 0.0
    for axis in FlavorAxes.all():
        low, high = IDEAL_ENVELOPE[axis]
        value = getattr(flavor, axis)
        deviation = max(0.0, low - value, value - high)
        penalty += weights.get(axis, 0.0) / total_weight * deviation
    return round1(clamp(100 - AlgorithmConstants.QUALITY_DEVIATION_PENALTY * penalty))


def risk_midpoint(config: ParsedUAPSConfig, reduction_potential: ReductionPotential) -> float:
    """Sigmoid midpoint in months, earlier for reduction-prone wines."""
    shift = AlgorithmConstants.RISK_MIDPOINT_SHIFT[ReductionPotential(reduction_potential)]
    return config.risk_sigmoid_midpoint + shift


def off_flavor_risk(month: int, k: float, midpoint: float) -> float:
    """100 / (1 + exp(−k·(m − m0))), evaluated without overflow for steep or distant curves."""
    z = -k * (month - midpoint)
    if z > 0:
        e = math.exp(-z)
        return 100.0 * e / (1.0 + e)
    return 100.0 / (1.0 + math.exp(z))


# =======================
# GOLDEN WINDOW
# =======================

def find_golden_window(entries: List[TimelineEntry], optimal_quality: float,
                       off_flavor_threshold: float) -> Optional[GoldenWindow]:
    """
    Longest contiguous run of qualifying months; earliest run wins ties.

    Returns None when no month qualifies.
    """
    best: Optional[Tuple[int, int]] = None
    run_start = None

    for i, entry in enumerate(entries + [None]):
        ok = (
            entry is not None
            and entry.quality_score >= optimal_quality
            and entry.off_flavor_risk <= off_flavor_threshold
        )
        if ok and run_start is None:
            run_start = i
        elif not ok and run_start is not None:
            if best is None or (i - run_start) > (best[1] - best[0] + 1):
                best = (run_start, i - 1)
            run_start = None

    if best is None:
        return None

    window = entries[best[0]:best[1] + 1]
    peak = max(window, key=lambda e: (e.quality_score, -e.month))
    return GoldenWindow(
        start_month=window[0].month,
        end_month=window[-1].month,
        peak_month=peak.month,
        peak_quality=peak.quality_score,
    )


def harvest_recommendation(window: Optional[GoldenWindow], entries: List[TimelineEntry]) -> str:
    if window is not None:
        return (
            f"Retrieve between month {window.start_month} and month {window.end_month}; "
            f"quality peaks at month {window.peak_month} ({window.peak_quality:.1f})."
        )
    if not entries:
        return ""
    best = max(entries, key=lambda e: (e.quality_score - e.off_flavor_risk, -e.month))
    return (
        f"No month meets both the quality and off-flavor thresholds. "
        f"Best trade-off at month {best.month} (quality {best.quality_score:.1f}, "
        f"risk {best.off_flavor_risk:.1f}); consider a shorter immersion."
    )


# =======================
# PROJECTION
# =======================

def project_timeline(
    before: FlavorVector,
    after: FlavorVector,
    duration_months: int,
    config: ParsedUAPSConfig,
    reduction_potential: ReductionPotential = ReductionPotential.LOW,
) -> Tuple[List[TimelineEntry], Optional[GoldenWindow]]:
    """
    Month-by-month trajectory for months 1..N.

    Risk is non-decreasing month over month, including after rounding.

    Args:
        before: Flavor at immersion
        after: Predicted flavor at retrieval
        duration_months: N, 1..36
        config: Parsed config (coefficients, thresholds, weights, sigmoid)
        reduction_potential: Shifts the risk sigmoid earlier

    Returns:
        (timeline entries, golden window or None)
    """
    if not AlgorithmConstants.MIN_DURATION_MONTHS <= duration_months <= AlgorithmConstants.MAX_DURATION_MONTHS:
        raise ValueError(f"duration_months must be within 1..36, got {duration_months}")

    tau = time_constant(config)
    midpoint = risk_midpoint(config, reduction_potential)
    k = config.risk_sigmoid_k

    points = []
    running_risk = 0.0
    for month in range(1, duration_months + 1):
        flavor = interpolate(before, after, progress(month, duration_months, tau))
        running_risk = max(running_risk, round1(off_flavor_risk(month, k, midpoint)))
        points.append((month, flavor, quality_score(flavor, config.quality_weights), running_risk))

    entries = [
        TimelineEntry(month=m, flavor=f, quality_score=q, off_flavor_risk=r)
        for m, f, q, r in points
    ]

    thresholds = config.risk_thresholds
    window = find_golden_window(entries, thresholds.optimal_quality, thresholds.off_flavor)
    if window is not None:
        entries = [
            e.model_copy(update={"is_golden_window": window.start_month <= e.month <= window.end_month})
            for e in entries
        ]

    logger.debug(f"Projected {duration_months} months (tau={tau:.2f}, risk midpoint={midpoint:.1f})")
    return entries, window
