"""Shared fixtures: a scripted OpenAI stand-in and small corpora."""

import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from uaps.clustering import ModelStore
from uaps.config_parser import parse_uaps_config
from uaps.schema import AgingProduct, FlavorVector, TerrestrialDataPoint


class FakeCompletions:
    """Replies per model: a string, (string, annotations), or an exception to raise."""

    def __init__(self, script):
        self.script = script
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.script.get(kwargs["model"], RuntimeError(f"model {kwargs['model']} unavailable"))
        if isinstance(reply, Exception):
            raise reply
        content, annotations = reply if isinstance(reply, tuple) else (reply, [])
        message = SimpleNamespace(content=content, annotations=annotations)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    @property
    def models_called(self):
        return [call["model"] for call in self.calls]


class FakeOpenAI:
    def __init__(self, script):
        self.chat = SimpleNamespace(completions=FakeCompletions(script))


@pytest.fixture
def fake_openai():
    """Factory: fake_openai({"model-id": reply, ...})."""
    return FakeOpenAI


def flavor(fruity=60, floral=45, yeasty=40, acidity=70, body=55, finish=50):
    return FlavorVector(
        fruity=fruity,
        floral_mineral=floral,
        yeasty_autolytic=yeasty,
        acidity_freshness=acidity,
        body_texture=body,
        finish_complexity=finish,
    )


def data_point(wine_type="blend", aging_stage="developing", name="Test Cuvée", **axes):
    return TerrestrialDataPoint(
        wine_name=name,
        wine_type=wine_type,
        aging_stage=aging_stage,
        flavor=flavor(**axes),
    )


def as_json(payload):
    return json.dumps(payload)


@pytest.fixture
def config():
    return parse_uaps_config({})


@pytest.fixture
def sample_corpus():
    """Three groups: blend/developing (3), blanc_de_blancs/mature (2), rose/youthful (1)."""
    return [
        data_point("blend", "developing", fruity=60),
        data_point("blend", "developing", fruity=70),
        data_point("blend", "developing", fruity=80),
        data_point("blanc_de_blancs", "mature", fruity=50, yeasty=70, acidity=75),
        data_point("blanc_de_blancs", "mature", fruity=54, yeasty=74, acidity=79),
        data_point("rose", "youthful", fruity=85, floral=60, yeasty=20),
    ]


@pytest.fixture
def trained_store(sample_corpus):
    store = ModelStore()
    store.train(sample_corpus)
    return store


@pytest.fixture
def product():
    return AgingProduct(
        id="prod-001",
        product_name="Abyss Brut 2019",
        wine_type="blend",
        vintage=2019,
        producer="Maison Test",
        aging_depth=30,
        aging_stage="developing",
    )
