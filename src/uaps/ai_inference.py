"""
AI Inference Layer (Layer 2b)

Asks a model for directional per-axis deltas over the requested duration.
Deltas are raw directions; the ensemble applies the environmental
coefficients. When every model fails, DirectionalPriorStrategy supplies
deltas from fixed aging directions.
"""

import json
import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI

from uaps.ai_chain import ChainOutcome, FallbackChain, InferenceStrategy, openai_strategies
from uaps.config import OPENAI_INFERENCE_MODELS
from uaps.constants import AlgorithmConstants, FlavorAxes, WINE_TYPE_LABELS
from uaps.error_handling import UpstreamAIError, validate_llm_response
from uaps.schema import AgingProduct, AIInference, ClusterMatch, FlavorVector, ParsedUAPSConfig
from uaps.utils import clamp, parse_float, round1, sanitize_text_input

logger = logging.getLogger(__name__)

DIRECTIONAL_PRIOR = "directional_prior"

# Fixed aging directions, per 12 months
FRUITY_DECAY_PER_MONTH = 0.015
ACIDITY_DECAY_PER_MONTH = 0.012
ANNUAL_GAIN = {
    FlavorAxes.FLORAL_MINERAL: 2.5,
    FlavorAxes.YEASTY_AUTOLYTIC: 3.0,
    FlavorAxes.BODY_TEXTURE: 2.5,
    FlavorAxes.FINISH_COMPLEXITY: 2.0,
}


@dataclass(frozen=True)
class InferenceRequest:
    """Everything the delta layer sees for one prediction."""
    product: AgingProduct
    duration_months: int
    baseline: FlavorVector
    matches: Sequence[ClusterMatch]
    config: ParsedUAPSConfig


def clamp_delta(value: float) -> float:
    return clamp(value, -AlgorithmConstants.MAX_AI_DELTA, AlgorithmConstants.MAX_AI_DELTA)


class DirectionalPriorStrategy(InferenceStrategy[AIInference]):
    """
    Terminal strategy. Exponential decay of fruit and acidity, linear gain of
    autolytic, floral, body and finish character. Pure; never raises.
    """

    name = DIRECTIONAL_PRIOR

    def try_extract(self, payload: InferenceRequest) -> AIInference:
        months = payload.duration_months
        baseline = payload.baseline
        deltas = {
            FlavorAxes.FRUITY: baseline.fruity * (math.exp(-FRUITY_DECAY_PER_MONTH * months) - 1),
            FlavorAxes.ACIDITY_FRESHNESS: baseline.acidity_freshness * (math.exp(-ACIDITY_DECAY_PER_MONTH * months) - 1),
        }
        for axis, per_year in ANNUAL_GAIN.items():
            deltas[axis] = per_year * months / 12

        return AIInference(
            deltas={axis: round1(clamp_delta(deltas[axis])) for axis in FlavorAxes.all()},
            insight=(
                f"Statistical projection over {months} months: primary fruit and freshness fade "
                f"while autolytic and tertiary character build."
            ),
            risk_warning=None,
            source=self.name,
        )


def _build_messages(request: InferenceRequest) -> List[dict]:
    product = request.product
    config = request.config
    label = WINE_TYPE_LABELS.get(product.wine_type, product.wine_type.value)

    clusters = "\n".join(
        f"- {m.group.key}: n={m.group.sample_count}, distance={m.distance:.1f}, "
        f"centroid={json.dumps(m.group.centroid.to_dict(wire=True))}"
        for m in request.matches
    ) or "- none (no terrestrial data matched)"

    coefficients = "\n".join(
        f"- {meta.name.upper()} = {meta.value} (basis: {meta.basis.value})"
        for meta in (config.tci, config.fri, config.bri)
    )

    prompt = f"""Predict how this sparkling wine's flavor profile changes after {request.duration_months} months
of aging on the seabed at {product.aging_depth:.0f} m depth.

Wine: {sanitize_text_input(product.product_name or product.id, max_length=200)} ({label}, vintage {product.vintage or "NV"})
Reduction potential: {product.reduction_potential.value}

Current baseline profile (0-100):
{json.dumps(request.baseline.to_dict(wire=True))}

Matched terrestrial aging clusters:
{clusters}

Environmental coefficients (hypothesis-based values are weaker evidence):
{coefficients}

Return JSON only, with per-axis CHANGES (not final values), each between -{AlgorithmConstants.MAX_AI_DELTA:.0f} and {AlgorithmConstants.MAX_AI_DELTA:.0f}:
{{"deltas": {{"fruity": 0, "floralMineral": 0, "yeastyAutolytic": 0, "acidityFreshness": 0, "bodyTexture": 0, "finishComplexity": 0}},
  "insight": "one or two sentences",
  "riskWarning": null}}"""

    return [
        {"role": "system", "content": "You are an oenologist specializing in undersea wine aging. Return JSON only."},
        {"role": "user", "content": prompt},
    ]


def _parse_inference(data: Any, message: Any, request: InferenceRequest) -> AIInference:
    data = validate_llm_response(data, ["deltas"], "delta inference")
    raw = data["deltas"]
    if not isinstance(raw, dict):
        raise UpstreamAIError("deltas is not an object")

    deltas: Dict[str, float] = {}
    for axis in FlavorAxes.all():
        wire = FlavorAxes.WIRE_NAMES[axis]
        value = raw.get(wire, raw.get(axis))
        if value is None:
            raise UpstreamAIError(f"deltas missing axis '{wire}'")
        deltas[axis] = round1(clamp_delta(parse_float(value)))

    warning = data.get("riskWarning")
    return AIInference(
        deltas=deltas,
        insight=str(data.get("insight") or ""),
        risk_warning=str(warning) if warning else None,
        source="model",
    )


class DeltaInferenceLayer:
    """Inference models in order, then the directional prior."""

    def __init__(self, client: Optional[OpenAI], models: Sequence[str] = OPENAI_INFERENCE_MODELS,
                 chain: Optional[FallbackChain] = None):
        self.chain = chain or FallbackChain(
            openai_strategies(client, models, _build_messages, _parse_inference),
            terminal=DirectionalPriorStrategy(),
            operation="Delta inference",
        )

    def infer(self, request: InferenceRequest, cancel_event: Optional[threading.Event] = None) -> ChainOutcome:
        """
        Returns:
            ChainOutcome whose value is an AIInference; source names the model
            that answered, or the directional prior
        """
        outcome = self.chain.run(request, cancel_event=cancel_event)
        outcome.value = outcome.value.model_copy(update={"source": outcome.source})
        if outcome.used_terminal:
            logger.info(f"Using directional prior deltas for {request.product.id}")
        return outcome
