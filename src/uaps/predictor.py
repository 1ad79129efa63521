"""
Undersea aging predictor.

Runs one prediction end to end:

1. Validate input (fails fast, before any pipeline work)
2. Parse config once and read the current model snapshot once
3. Match clusters
4. Expert profile (best-effort) and delta inference (model chain + prior)
5. Ensemble, then timeline projection

Computation failures degrade into a valid prediction; only input errors,
cancellation and total pipeline exhaustion surface.
"""

import logging
import threading
import uuid
from typing import Any, Mapping, Optional, Protocol, Union

from openai import OpenAI

from uaps.ai_chain import build_openai_client
from uaps.ai_inference import DeltaInferenceLayer, InferenceRequest
from uaps.clustering import ModelStore
from uaps.config_parser import ConfigSource, config_for_depth, parse_uaps_config
from uaps.constants import AlgorithmConstants
from uaps.ensemble import apply_inference, blend_baseline
from uaps.error_handling import (
    InputValidationError,
    PersistenceError,
    PipelineExhaustedError,
    PredictionCancelledError,
)
from uaps.expert_profile import ExpertProfileGenerator
from uaps.schema import AgingPrediction, AgingProduct, MatchedCluster, ParsedUAPSConfig
from uaps.similarity import find_similar_clusters
from uaps.timeline import harvest_recommendation, project_timeline

logger = logging.getLogger(__name__)


# =======================
# COLLABORATOR INTERFACES
# =======================

class ProductCatalog(Protocol):
    """Supplies AgingProduct records."""

    def get_product(self, product_id: str) -> Optional[AgingProduct]:
        ...


class PredictionStore(Protocol):
    """Persists finished predictions. The engine never reads them back."""

    def save(self, prediction: AgingPrediction) -> Any:
        ...


def validate_duration(duration_months: Any) -> int:
    if isinstance(duration_months, bool) or not isinstance(duration_months, int):
        raise InputValidationError(f"duration_months must be an integer, got {duration_months!r}")
    if not AlgorithmConstants.MIN_DURATION_MONTHS <= duration_months <= AlgorithmConstants.MAX_DURATION_MONTHS:
        raise InputValidationError(
            f"duration_months must be within {AlgorithmConstants.MIN_DURATION_MONTHS}.."
            f"{AlgorithmConstants.MAX_DURATION_MONTHS}, got {duration_months}"
        )
    return duration_months


def _check_cancelled(cancel_event: Optional[threading.Event], stage: str):
    if cancel_event is not None and cancel_event.is_set():
        raise PredictionCancelledError(f"Prediction cancelled before {stage}")


class UnderseaAgingPredictor:
    """
    Undersea aging prediction engine.

    Holds no per-request state; concurrent predict() calls each produce an
    independent AgingPrediction.
    """

    def __init__(
        self,
        model_store: ModelStore,
        config_source: Union[ConfigSource, ParsedUAPSConfig] = None,
        client: Optional[OpenAI] = None,
        expert_generator: Optional[ExpertProfileGenerator] = None,
        inference_layer: Optional[DeltaInferenceLayer] = None,
        use_expert: bool = True,
        top_k: int = AlgorithmConstants.DEFAULT_TOP_K,
    ):
        """
        Args:
            model_store: Source of the current model snapshot
            config_source: Raw config store (parsed per prediction) or a parsed config
            client: OpenAI client; None runs statistical layers with fallbacks only
            expert_generator: Override the expert profile layer
            inference_layer: Override the delta inference layer
            use_expert: Disable expert enrichment entirely
            top_k: Number of clusters to match
        """
        self.model_store = model_store
        if config_source is not None and not isinstance(config_source, (Mapping, ParsedUAPSConfig)):
            # Row iterables are read once here so every prediction can re-parse them
            config_source = list(config_source)
        self.config_source = config_source
        self.expert_generator = expert_generator or ExpertProfileGenerator(client)
        self.inference_layer = inference_layer or DeltaInferenceLayer(client)
        self.use_expert = use_expert
        self.top_k = top_k

    @classmethod
    def from_environment(cls, model_store: ModelStore, config_source: ConfigSource = None,
                         **kwargs) -> 'UnderseaAgingPredictor':
        """Build with an OpenAI client from OPENAI_API_KEY (AI layers off without one)."""
        return cls(model_store, config_source, client=build_openai_client(), **kwargs)

    def _parse_config(self) -> ParsedUAPSConfig:
        if isinstance(self.config_source, ParsedUAPSConfig):
            return self.config_source
        return parse_uaps_config(self.config_source)

    def predict(
        self,
        product: AgingProduct,
        duration_months: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> AgingPrediction:
        """
        Predict the flavor trajectory of one product.

        Args:
            product: Product from the catalog
            duration_months: Immersion duration, 1..36
            cancel_event: Set by the caller to abandon the request

        Returns:
            Immutable AgingPrediction

        Raises:
            InputValidationError: Missing product or invalid duration
            PredictionCancelledError: cancel_event was set mid-pipeline
            PipelineExhaustedError: Unexpected failure despite every fallback
        """
        if product is None or not getattr(product, "id", None):
            raise InputValidationError("A product with an id is required")
        duration_months = validate_duration(duration_months)

        try:
            return self._run_pipeline(product, duration_months, cancel_event)
        except (InputValidationError, PredictionCancelledError):
            raise
        except Exception as e:
            logger.exception(f"Prediction pipeline failed for product {product.id}")
            raise PipelineExhaustedError(f"Could not produce a prediction for {product.id}: {e}") from e

    def _run_pipeline(self, product: AgingProduct, duration_months: int,
                      cancel_event: Optional[threading.Event]) -> AgingPrediction:
        config = config_for_depth(self._parse_config(), product.aging_depth)
        snapshot = self.model_store.current()

        _check_cancelled(cancel_event, "cluster matching")
        matches = find_similar_clusters(product, snapshot, self.top_k, config.stage_thresholds)

        expert = None
        if self.use_expert:
            _check_cancelled(cancel_event, "expert profile")
            expert = self.expert_generator.generate(product, cancel_event=cancel_event)

        # Deltas are proposed against the blended starting point
        _check_cancelled(cancel_event, "delta inference")
        start = blend_baseline(matches, config, expert=expert)
        outcome = self.inference_layer.infer(
            InferenceRequest(
                product=product,
                duration_months=duration_months,
                baseline=start.before,
                matches=tuple(matches),
                config=config,
            ),
            cancel_event=cancel_event,
        )
        inference = outcome.value

        _check_cancelled(cancel_event, "ensemble")
        result = apply_inference(start, inference)

        _check_cancelled(cancel_event, "timeline projection")
        timeline, window = project_timeline(
            result.before, result.after, duration_months, config, product.reduction_potential
        )

        prediction = AgingPrediction(
            id=str(uuid.uuid4()),
            product_id=product.id,
            product_name=product.product_name,
            wine_type=product.wine_type,
            duration_months=duration_months,
            aging_depth=product.aging_depth,
            snapshot_version=snapshot.version,
            matched_clusters=[
                MatchedCluster(
                    group_key=m.group.key,
                    distance=round(m.distance, 3),
                    sample_count=m.group.sample_count,
                    is_low_sample=m.group.is_low_sample,
                )
                for m in matches
            ],
            model_used=result.model_used,
            coefficients={"tci": config.tci, "fri": config.fri, "bri": config.bri},
            before=result.before,
            after=result.after,
            expert_profile=expert,
            timeline=timeline,
            golden_window=window,
            harvest_recommendation=harvest_recommendation(window, timeline),
            ai_insight=inference.insight,
            ai_risk_warning=inference.risk_warning,
            inference_source=outcome.source,
            prediction_confidence=min(len(matches) / AlgorithmConstants.FULL_CONFIDENCE_MATCHES, 1.0),
        )

        _check_cancelled(cancel_event, "returning the prediction")
        logger.info(
            f"Prediction {prediction.id} for {product.id}: {duration_months} months, "
            f"{prediction.model_used.value}, {prediction.matched_cluster_count} clusters, "
            f"deltas from {outcome.source}"
        )
        return prediction

    def predict_for_id(
        self,
        product_id: str,
        duration_months: int,
        catalog: ProductCatalog,
        cancel_event: Optional[threading.Event] = None,
    ) -> AgingPrediction:
        """Look up the product, then predict. Unknown ids are input errors."""
        if not product_id or not isinstance(product_id, str):
            raise InputValidationError("product_id is required")
        validate_duration(duration_months)

        product = catalog.get_product(product_id)
        if product is None:
            raise InputValidationError(f"Unknown product id: {product_id}")
        return self.predict(product, duration_months, cancel_event=cancel_event)

    def predict_and_persist(
        self,
        product_id: str,
        duration_months: int,
        catalog: ProductCatalog,
        store: PredictionStore,
        cancel_event: Optional[threading.Event] = None,
    ) -> AgingPrediction:
        """
        Predict and hand the result to the store.

        Nothing is saved if the request was cancelled.

        Raises:
            PersistenceError: The store failed; carries the computed prediction
        """
        prediction = self.predict_for_id(product_id, duration_months, catalog, cancel_event=cancel_event)
        _check_cancelled(cancel_event, "persistence")
        return save_prediction(prediction, store)


def save_prediction(prediction: AgingPrediction, store: PredictionStore) -> AgingPrediction:
    """Persist an already computed prediction; used for retries after PersistenceError."""
    try:
        store.save(prediction)
    except Exception as e:
        logger.error(f"Failed to persist prediction {prediction.id}: {e}")
        raise PersistenceError(f"Failed to persist prediction {prediction.id}", prediction=prediction) from e
    logger.info(f"Persisted prediction {prediction.id}")
    return prediction
