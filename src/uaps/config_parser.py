"""
Config Parser

Turns the flat key→string config store into one frozen ParsedUAPSConfig.
Parsed once per invocation at the boundary; business logic never reads the
raw rows.
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Union

from pydantic import ValidationError

from uaps.coefficients import arrhenius_fri, bri_at_depth, henry_bri, tci_prior, with_override
from uaps.constants import ConfigKeys, Defaults, FlavorAxes
from uaps.schema import AxisCoefficientRule, ParsedUAPSConfig, RiskThresholds, StageThresholds
from uaps.utils import parse_float

logger = logging.getLogger(__name__)

ConfigSource = Union[Mapping[str, Any], Iterable[Mapping[str, Any]], None]


def _rows_to_mapping(source: ConfigSource) -> Dict[str, str]:
    """Accept a plain mapping or config-table rows ({"config_key", "config_value"})."""
    if source is None:
        return {}
    if isinstance(source, Mapping):
        return {str(k): v for k, v in source.items()}

    store = {}
    for row in source:
        key = row.get("config_key", row.get("key"))
        if key is None:
            logger.warning(f"Skipping config row without key: {row}")
            continue
        store[str(key)] = row.get("config_value", row.get("value"))
    return store


def _read(store: Dict[str, Any], key: str, default: Any, convert: Callable[[Any], Any]) -> Any:
    """Convert one key, falling back to the documented default on absence or bad input."""
    if key not in store or store[key] is None or store[key] == "":
        return default
    try:
        return convert(store[key])
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid config value for '{key}' ({store[key]!r}): {e}. Using default {default!r}")
        return default


def _parse_unit_interval(raw: Any) -> float:
    value = parse_float(raw)
    if not 0.0 <= value <= 1.0:
        raise ValueError("must be within [0, 1]")
    return value


def _parse_positive(raw: Any) -> float:
    value = parse_float(raw)
    if value <= 0:
        raise ValueError("must be positive")
    return value


def _parse_years(raw: Any) -> int:
    value = parse_float(raw)
    if value < 0:
        raise ValueError("must not be negative")
    return int(value)


def _parse_json_object(raw: Any) -> Dict[str, Any]:
    value = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(value, dict):
        raise ValueError("expected a JSON object")
    return value


def _parse_axis_map(raw: Any) -> Dict[str, AxisCoefficientRule]:
    """
    {"fruity": {"coefficient": "fri", "mode": "direct"}, ...}

    Axis names may be snake_case or camelCase. Unknown axes are rejected.
    """
    wire_to_axis = {wire: axis for axis, wire in FlavorAxes.WIRE_NAMES.items()}
    parsed = {}
    for name, rule in _parse_json_object(raw).items():
        axis = wire_to_axis.get(name, name)
        if axis not in FlavorAxes.all():
            raise ValueError(f"unknown axis '{name}'")
        try:
            parsed[axis] = AxisCoefficientRule(**rule) if isinstance(rule, dict) else AxisCoefficientRule(coefficient=rule)
        except ValidationError as e:
            raise ValueError(f"invalid rule for '{name}': {e.error_count()} errors") from e
    return parsed


def _parse_weights(raw: Any) -> Dict[str, float]:
    wire_to_axis = {wire: axis for axis, wire in FlavorAxes.WIRE_NAMES.items()}
    weights = {}
    for name, weight in _parse_json_object(raw).items():
        axis = wire_to_axis.get(name, name)
        if axis not in FlavorAxes.all():
            raise ValueError(f"unknown axis '{name}'")
        value = parse_float(weight)
        if value < 0:
            raise ValueError(f"negative weight for '{name}'")
        weights[axis] = value
    if sum(weights.values()) <= 0:
        raise ValueError("weights must not all be zero")
    return weights


def default_axis_coefficient_map() -> Dict[str, AxisCoefficientRule]:
    return {
        axis: AxisCoefficientRule(coefficient=coefficient, mode=mode)
        for axis, (coefficient, mode) in Defaults.AXIS_COEFFICIENT_MAP.items()
    }


def parse_uaps_config(source: ConfigSource = None) -> ParsedUAPSConfig:
    """
    Parse the config store into a typed, defaulted structure.

    Missing keys take their documented defaults; unparseable values are
    logged and defaulted, never raised. Coefficient overrides replace only
    the value, never the derivation metadata.

    Args:
        source: Mapping of key→string, or rows with config_key/config_value

    Returns:
        Frozen ParsedUAPSConfig
    """
    store = _rows_to_mapping(source)

    tci = with_override(tci_prior(), _read(store, ConfigKeys.TCI, None, _parse_unit_interval))
    fri = with_override(arrhenius_fri(), _read(store, ConfigKeys.FRI, None, _parse_unit_interval))
    bri_override = _read(store, ConfigKeys.BRI, None, _parse_unit_interval)
    bri = with_override(henry_bri(), bri_override)

    thresholds = Defaults.STAGE_THRESHOLDS
    youthful = _read(store, ConfigKeys.STAGE_YOUTHFUL, thresholds["youthful"], _parse_years)
    developing = _read(store, ConfigKeys.STAGE_DEVELOPING, thresholds["developing"], _parse_years)
    mature = _read(store, ConfigKeys.STAGE_MATURE, thresholds["mature"], _parse_years)
    if not youthful <= developing <= mature:
        logger.warning(
            f"Stage thresholds not ordered ({youthful}, {developing}, {mature}); using defaults"
        )
        youthful, developing, mature = thresholds["youthful"], thresholds["developing"], thresholds["mature"]

    config = ParsedUAPSConfig(
        tci=tci,
        fri=fri,
        bri=bri,
        bri_override=bri_override,
        stage_thresholds=StageThresholds(youthful=youthful, developing=developing, mature=mature),
        risk_thresholds=RiskThresholds(
            off_flavor=_read(store, ConfigKeys.RISK_OFF_FLAVOR, Defaults.OFF_FLAVOR_THRESHOLD, parse_float),
            optimal_quality=_read(store, ConfigKeys.QUALITY_OPTIMAL, Defaults.OPTIMAL_QUALITY_THRESHOLD, parse_float),
        ),
        expert_max_weight=_read(store, ConfigKeys.EXPERT_MAX_WEIGHT, Defaults.EXPERT_MAX_WEIGHT, _parse_unit_interval),
        axis_coefficient_map=_read(
            store, ConfigKeys.AXIS_COEFFICIENT_MAP, default_axis_coefficient_map(), _parse_axis_map
        ),
        quality_weights=_read(store, ConfigKeys.QUALITY_WEIGHTS, dict(Defaults.QUALITY_WEIGHTS), _parse_weights),
        risk_sigmoid_k=_read(store, ConfigKeys.RISK_SIGMOID_K, Defaults.RISK_SIGMOID_K, _parse_positive),
        risk_sigmoid_midpoint=_read(
            store, ConfigKeys.RISK_SIGMOID_MIDPOINT, Defaults.RISK_SIGMOID_MIDPOINT, parse_float
        ),
        timeline_base_tau_months=_read(
            store, ConfigKeys.TIMELINE_BASE_TAU, Defaults.TIMELINE_BASE_TAU_MONTHS, _parse_positive
        ),
    )

    logger.debug(f"Parsed UAPS config: TCI={tci.value}, FRI={fri.value}, BRI={bri.value}")
    return config


def config_for_depth(config: ParsedUAPSConfig, depth_m: float) -> ParsedUAPSConfig:
    """
    Re-derive BRI for a product's immersion depth.

    A bri_coefficient override still replaces only the value; the formula
    parameters always describe the actual depth.
    """
    bri = with_override(bri_at_depth(depth_m), config.bri_override)
    return config.model_copy(update={"bri": bri})
