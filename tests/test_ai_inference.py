"""
Tests for the delta inference layer.
"""

import threading

import pytest

from uaps.ai_inference import (
    DIRECTIONAL_PRIOR,
    DeltaInferenceLayer,
    DirectionalPriorStrategy,
    InferenceRequest,
)
from uaps.config import OPENAI_INFERENCE_MODELS
from uaps.error_handling import PredictionCancelledError
from uaps.schema import AgingProduct

from conftest import as_json, flavor

WIRE_DELTAS = {
    "fruity": -8,
    "floralMineral": 2,
    "yeastyAutolytic": 6,
    "acidityFreshness": -5,
    "bodyTexture": 3,
    "finishComplexity": 4,
}


@pytest.fixture
def request_for(config):
    def build(months=12):
        return InferenceRequest(
            product=AgingProduct(id="p1", product_name="Test Brut", wine_type="blend", vintage=2018),
            duration_months=months,
            baseline=flavor(),
            matches=(),
            config=config,
        )
    return build


class TestDirectionalPrior:
    def test_directions(self, request_for):
        """Fruit and freshness fall, autolytic and tertiary axes rise."""
        deltas = DirectionalPriorStrategy().try_extract(request_for(12)).deltas
        assert deltas["fruity"] < 0
        assert deltas["acidity_freshness"] < 0
        assert deltas["yeasty_autolytic"] == pytest.approx(3.0)
        assert deltas["floral_mineral"] == pytest.approx(2.5)
        assert deltas["body_texture"] == pytest.approx(2.5)
        assert deltas["finish_complexity"] == pytest.approx(2.0)

    def test_longer_immersion_larger_change(self, request_for):
        short = DirectionalPriorStrategy().try_extract(request_for(6)).deltas
        long = DirectionalPriorStrategy().try_extract(request_for(36)).deltas
        assert long["fruity"] < short["fruity"]
        assert long["yeasty_autolytic"] > short["yeasty_autolytic"]

    def test_deltas_bounded(self, request_for):
        deltas = DirectionalPriorStrategy().try_extract(request_for(36)).deltas
        assert all(-40 <= d <= 40 for d in deltas.values())


class TestDeltaInferenceLayer:
    def test_first_model_answers(self, fake_openai, request_for):
        """The model's deltas are used and its id recorded as the source."""
        client = fake_openai({
            OPENAI_INFERENCE_MODELS[0]: as_json({"deltas": WIRE_DELTAS, "insight": "Yeast builds."}),
        })
        outcome = DeltaInferenceLayer(client).infer(request_for())

        assert outcome.source == OPENAI_INFERENCE_MODELS[0]
        assert outcome.value.source == OPENAI_INFERENCE_MODELS[0]
        assert outcome.value.deltas["yeasty_autolytic"] == 6
        assert outcome.value.insight == "Yeast builds."
        assert client.chat.completions.models_called == [OPENAI_INFERENCE_MODELS[0]]

    def test_falls_through_to_next_model(self, fake_openai, request_for):
        client = fake_openai({
            OPENAI_INFERENCE_MODELS[0]: "not json at all",
            OPENAI_INFERENCE_MODELS[1]: as_json({"deltas": WIRE_DELTAS}),
        })
        outcome = DeltaInferenceLayer(client).infer(request_for())
        assert outcome.source == OPENAI_INFERENCE_MODELS[1]
        assert len(outcome.errors) == 1

    def test_incomplete_deltas_rejected(self, fake_openai, request_for):
        """A reply missing an axis counts as a failure."""
        partial = dict(WIRE_DELTAS)
        del partial["bodyTexture"]
        client = fake_openai({model: as_json({"deltas": partial}) for model in OPENAI_INFERENCE_MODELS})
        outcome = DeltaInferenceLayer(client).infer(request_for())
        assert outcome.source == DIRECTIONAL_PRIOR

    def test_out_of_range_deltas_clamped(self, fake_openai, request_for):
        client = fake_openai({
            OPENAI_INFERENCE_MODELS[0]: as_json({"deltas": dict(WIRE_DELTAS, fruity=-95, bodyTexture=120)}),
        })
        deltas = DeltaInferenceLayer(client).infer(request_for()).value.deltas
        assert deltas["fruity"] == -40
        assert deltas["body_texture"] == 40

    def test_all_models_fail_uses_prior(self, fake_openai, request_for):
        """Each model is called exactly once before the prior."""
        client = fake_openai({})
        outcome = DeltaInferenceLayer(client).infer(request_for())

        assert outcome.used_terminal
        assert outcome.value.source == DIRECTIONAL_PRIOR
        assert client.chat.completions.models_called == OPENAI_INFERENCE_MODELS

    def test_no_client_uses_prior(self, request_for):
        outcome = DeltaInferenceLayer(None).infer(request_for())
        assert outcome.source == DIRECTIONAL_PRIOR
        assert outcome.errors == []

    def test_cancelled_before_first_call(self, fake_openai, request_for):
        client = fake_openai({})
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(PredictionCancelledError):
            DeltaInferenceLayer(client).infer(request_for(), cancel_event=cancel)
        assert client.chat.completions.calls == []
