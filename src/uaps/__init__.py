"""UAPS - Undersea Aging Prediction Engine. Flavor trajectories for sparkling wine aged on the seabed."""

from uaps.clustering import ModelStore
from uaps.config_parser import parse_uaps_config
from uaps.predictor import UnderseaAgingPredictor
from uaps.schema import AgingPrediction, AgingProduct, FlavorVector, TerrestrialDataPoint

__version__ = "0.1.0"

__all__ = [
    'UnderseaAgingPredictor',
    'ModelStore',
    'parse_uaps_config',
    'AgingPrediction',
    'AgingProduct',
    'FlavorVector',
    'TerrestrialDataPoint',
    '__version__',
]
