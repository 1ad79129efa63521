"""
Tests for the environmental coefficient model.
"""

import pytest

from uaps.coefficients import (
    arrhenius_fri,
    bri_at_depth,
    coefficient_confidence,
    henry_bri,
    pressure_at_depth,
    tci_prior,
    with_override,
)
from uaps.constants import CoefficientBasis


class TestTCI:
    def test_default_is_hypothesis(self):
        """TCI is a prior and must be flagged as weaker evidence."""
        tci = tci_prior()
        assert tci.value == 0.40
        assert tci.basis == CoefficientBasis.HYPOTHESIS
        assert coefficient_confidence(tci) < 1.0

    def test_interval_brackets_value(self):
        tci = tci_prior()
        assert tci.lower95 < tci.value < tci.upper95


class TestFRI:
    def test_default_value(self):
        """Ea=47 kJ/mol, 4°C vs 12°C gives 0.56."""
        fri = arrhenius_fri()
        assert fri.value == 0.56
        assert fri.basis == CoefficientBasis.SCIENTIFIC

    def test_parameters_exposed(self):
        """Intermediate parameters are inspectable, not just the scalar."""
        params = arrhenius_fri().formula_params
        assert params["Ea"] == 47000
        assert params["R"] == 8.314
        assert params["T_reference"] == pytest.approx(285.15)
        assert params["T_undersea"] == pytest.approx(277.15)

    def test_same_temperature_means_full_rate(self):
        assert arrhenius_fri(12, 12).value == 1.0

    def test_higher_activation_energy_retains_less_rate(self):
        assert arrhenius_fri(activation_energy=60000).value < arrhenius_fri().value

    def test_interval_brackets_value(self):
        fri = arrhenius_fri()
        assert fri.lower95 <= fri.value <= fri.upper95


class TestBRI:
    def test_default_value(self):
        """2.5 atm vs 1 atm gives 0.72."""
        bri = henry_bri()
        assert bri.value == 0.72
        assert bri.basis == CoefficientBasis.SCIENTIFIC

    def test_monotonic_in_pressure(self):
        """Deeper water holds more CO2."""
        values = [henry_bri(p).value for p in (1.0, 1.5, 2.0, 2.5, 3.0, 4.0)]
        assert values == sorted(values)
        assert all(0.0 <= v <= 1.0 for v in values)

    def test_surface_pressure_gives_zero(self):
        assert henry_bri(1.0).value == 0.0

    def test_non_positive_pressure_rejected(self):
        with pytest.raises(ValueError):
            henry_bri(0)

    def test_pressure_from_depth(self):
        """One atmosphere at the surface plus one per 10 m of water."""
        assert pressure_at_depth(0) == 1.0
        assert pressure_at_depth(15) == pytest.approx(2.5)
        assert pressure_at_depth(30) == pytest.approx(4.0)

    def test_non_decreasing_with_depth(self):
        depths = [0, 5, 10, 15, 20, 30, 50, 100]
        values = [bri_at_depth(d).value for d in depths]
        assert values == sorted(values)
        assert bri_at_depth(15).value == henry_bri().value
        assert bri_at_depth(30).value > bri_at_depth(10).value

    def test_depth_recorded_in_params(self):
        bri = bri_at_depth(30)
        assert bri.formula_params["depth_m"] == 30
        assert bri.formula_params["P_undersea_atm"] == pytest.approx(4.0)
        assert bri.basis == CoefficientBasis.SCIENTIFIC


class TestOverride:
    def test_override_keeps_metadata(self):
        """Overrides replace only the value."""
        original = arrhenius_fri()
        overridden = with_override(original, 0.8)
        assert overridden.value == 0.8
        assert overridden.basis == original.basis
        assert overridden.formula_params == original.formula_params
        assert overridden.description == original.description

    def test_none_keeps_original(self):
        original = henry_bri()
        assert with_override(original, None) is original
