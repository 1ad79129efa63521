"""
Tests for the end-to-end predictor.
"""

import threading

import pytest

from uaps.ai_chain import ChainOutcome
from uaps.ai_inference import DIRECTIONAL_PRIOR
from uaps.clustering import ModelStore
from uaps.config import OPENAI_EXPERT_MODELS, OPENAI_INFERENCE_MODELS
from uaps.constants import ModelUsed
from uaps.error_handling import (
    InputValidationError,
    PersistenceError,
    PipelineExhaustedError,
    PredictionCancelledError,
)
from uaps.predictor import UnderseaAgingPredictor, save_prediction
from uaps.schema import AIInference

from conftest import as_json, data_point


class DictCatalog:
    def __init__(self, *products):
        self.products = {p.id: p for p in products}

    def get_product(self, product_id):
        return self.products.get(product_id)


class ListStore:
    def __init__(self, fail=False):
        self.fail = fail
        self.saved = []

    def save(self, prediction):
        if self.fail:
            raise ConnectionError("database unavailable")
        self.saved.append(prediction)


class BrokenInference:
    def infer(self, request, cancel_event=None):
        raise RuntimeError("unexpected")


class CancellingInference:
    """Sets the cancel event during inference, as a caller timing out would."""

    def __init__(self, cancel_event):
        self.cancel_event = cancel_event

    def infer(self, request, cancel_event=None):
        self.cancel_event.set()
        return ChainOutcome(
            value=AIInference(deltas={}, source=DIRECTIONAL_PRIOR),
            source=DIRECTIONAL_PRIOR,
            used_terminal=True,
        )


class TestPredict:
    def test_hybrid_with_trained_store(self, trained_store, config, product):
        """Matched clusters give the hybrid label and n/5 confidence."""
        prediction = UnderseaAgingPredictor(trained_store, config).predict(product, 12)

        assert prediction.model_used == ModelUsed.HYBRID
        assert prediction.matched_cluster_count == 3
        assert prediction.prediction_confidence == pytest.approx(0.6)
        assert prediction.snapshot_version == 1
        assert len(prediction.timeline) == 12
        assert prediction.inference_source == DIRECTIONAL_PRIOR

    def test_statistical_fallback_with_empty_store(self, config, product):
        """No model groups still yields a complete prediction."""
        prediction = UnderseaAgingPredictor(ModelStore(), config).predict(product, 12)

        assert prediction.model_used == ModelUsed.STATISTICAL_FALLBACK
        assert prediction.matched_clusters == []
        assert prediction.prediction_confidence == 0.0
        assert prediction.before.fruity == 60.0
        assert len(prediction.timeline) == 12

    def test_hybrid_when_every_model_fails(self, fake_openai, trained_store, config, product):
        """AI failures never change the label; each model is tried once."""
        client = fake_openai({})
        prediction = UnderseaAgingPredictor(trained_store, config, client=client).predict(product, 12)

        assert prediction.model_used == ModelUsed.HYBRID
        assert prediction.expert_profile is None
        assert prediction.inference_source == DIRECTIONAL_PRIOR
        called = client.chat.completions.models_called
        assert sorted(called) == sorted(OPENAI_EXPERT_MODELS + OPENAI_INFERENCE_MODELS)

    def test_model_deltas_flow_into_after(self, fake_openai, trained_store, config, product):
        deltas = {"fruity": -10, "floralMineral": 0, "yeastyAutolytic": 0,
                  "acidityFreshness": 0, "bodyTexture": 0, "finishComplexity": 0}
        client = fake_openai({OPENAI_INFERENCE_MODELS[0]: as_json({"deltas": deltas, "insight": "Less fruit."})})
        prediction = UnderseaAgingPredictor(trained_store, config, client=client).predict(product, 12)

        assert prediction.inference_source == OPENAI_INFERENCE_MODELS[0]
        assert prediction.ai_insight == "Less fruit."
        assert prediction.after.fruity == pytest.approx(round(prediction.before.fruity - 5.6, 1))
        assert prediction.after.body_texture == prediction.before.body_texture

    def test_vectors_in_range(self, trained_store, config, product):
        prediction = UnderseaAgingPredictor(trained_store, config).predict(product, 36)
        vectors = [prediction.before, prediction.after] + [e.flavor for e in prediction.timeline]
        for vector in vectors:
            assert all(0.0 <= v <= 100.0 for v in vector.to_dict().values())

    def test_raw_config_rows(self, trained_store, product):
        """Config rows are accepted and re-read on every prediction."""
        rows = iter([{"config_key": "fri_coefficient", "config_value": "0.8"}])
        predictor = UnderseaAgingPredictor(trained_store, rows)
        first = predictor.predict(product, 6)
        second = predictor.predict(product, 6)
        assert first.coefficients["fri"].value == 0.8
        assert second.coefficients["fri"].value == 0.8

    def test_to_response(self, trained_store, config, product):
        response = UnderseaAgingPredictor(trained_store, config).predict(product, 6).to_response()
        assert set(response) == {"prediction", "matchedClusters", "modelUsed"}
        assert response["matchedClusters"] == 3
        assert response["modelUsed"] == "hybrid"

    @pytest.mark.parametrize("overrides", [
        {"risk_sigmoid_k": "50"},
        {"risk_sigmoid_midpoint": "1e6"},
        {"risk_sigmoid_midpoint": "-1e6"},
    ])
    def test_extreme_risk_curve_still_predicts(self, trained_store, product, overrides):
        """Steep or distant risk curves give a valid, non-decreasing risk series."""
        prediction = UnderseaAgingPredictor(trained_store, overrides).predict(product, 12)
        risks = [e.off_flavor_risk for e in prediction.timeline]
        assert all(0.0 <= r <= 100.0 for r in risks)
        assert all(a <= b for a, b in zip(risks, risks[1:]))

    def test_bri_follows_product_depth(self, trained_store, config, product):
        """Deeper immersion retains more CO2; the depth is recorded with the coefficient."""
        predictor = UnderseaAgingPredictor(trained_store, config)
        shallow = predictor.predict(product.model_copy(update={"aging_depth": 10}), 12)
        deep = predictor.predict(product.model_copy(update={"aging_depth": 30}), 12)

        assert shallow.coefficients["bri"].value < deep.coefficients["bri"].value
        assert deep.coefficients["bri"].formula_params["depth_m"] == 30

    def test_fallback_warning_logged_once(self, config, product, caplog):
        with caplog.at_level("WARNING", logger="uaps.ensemble"):
            UnderseaAgingPredictor(ModelStore(), config).predict(product, 6)
        warnings = [r for r in caplog.records if "No clusters matched" in r.getMessage()]
        assert len(warnings) == 1

    def test_unexpected_failure_surfaces(self, trained_store, config, product):
        predictor = UnderseaAgingPredictor(trained_store, config, inference_layer=BrokenInference())
        with pytest.raises(PipelineExhaustedError):
            predictor.predict(product, 12)


class TestInputValidation:
    @pytest.mark.parametrize("months", [0, 37, -1, "12", 12.0, True, None])
    def test_invalid_duration(self, trained_store, config, product, months):
        with pytest.raises(InputValidationError):
            UnderseaAgingPredictor(trained_store, config).predict(product, months)

    def test_missing_product(self, trained_store, config):
        with pytest.raises(InputValidationError):
            UnderseaAgingPredictor(trained_store, config).predict(None, 12)

    def test_unknown_product_id(self, trained_store, config):
        with pytest.raises(InputValidationError):
            UnderseaAgingPredictor(trained_store, config).predict_for_id("missing", 12, DictCatalog())

    def test_invalid_duration_before_lookup(self, trained_store, config, product):
        """Validation fails before the catalog is consulted."""
        class ExplodingCatalog:
            def get_product(self, product_id):
                raise AssertionError("catalog should not be read")

        with pytest.raises(InputValidationError):
            UnderseaAgingPredictor(trained_store, config).predict_for_id(product.id, 0, ExplodingCatalog())


class TestPersistence:
    def test_saved(self, trained_store, config, product):
        store = ListStore()
        prediction = UnderseaAgingPredictor(trained_store, config).predict_and_persist(
            product.id, 12, DictCatalog(product), store
        )
        assert store.saved == [prediction]

    def test_failure_carries_prediction_for_retry(self, trained_store, config, product):
        """The computed prediction survives a store failure and can be saved later."""
        predictor = UnderseaAgingPredictor(trained_store, config)
        with pytest.raises(PersistenceError) as exc_info:
            predictor.predict_and_persist(product.id, 12, DictCatalog(product), ListStore(fail=True))

        prediction = exc_info.value.prediction
        assert prediction is not None
        retry_store = ListStore()
        assert save_prediction(prediction, retry_store) is prediction
        assert retry_store.saved == [prediction]


class TestCancellation:
    def test_cancelled_before_start(self, trained_store, config, product):
        cancel = threading.Event()
        cancel.set()
        store = ListStore()
        with pytest.raises(PredictionCancelledError):
            UnderseaAgingPredictor(trained_store, config).predict_and_persist(
                product.id, 12, DictCatalog(product), store, cancel_event=cancel
            )
        assert store.saved == []

    def test_cancelled_mid_pipeline(self, trained_store, config, product):
        """Cancellation during inference stops the pipeline and nothing is saved."""
        cancel = threading.Event()
        store = ListStore()
        predictor = UnderseaAgingPredictor(
            trained_store, config, inference_layer=CancellingInference(cancel), use_expert=False
        )
        with pytest.raises(PredictionCancelledError):
            predictor.predict_and_persist(product.id, 12, DictCatalog(product), store, cancel_event=cancel)
        assert store.saved == []


class TestSnapshotIsolation:
    def test_held_snapshot_unchanged_by_retrain(self, trained_store, config, product):
        """A retrain publishes a new version and leaves the old snapshot intact."""
        held = trained_store.current()
        trained_store.train([data_point("vintage", "aged", fruity=30)] * 2)

        assert held.version == 1
        assert len(held) == 3
        assert trained_store.current().version == 2
        assert len(trained_store.current()) == 1

        prediction = UnderseaAgingPredictor(trained_store, config).predict(product, 12)
        assert prediction.snapshot_version == 2
