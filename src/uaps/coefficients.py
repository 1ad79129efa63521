"""
Environmental Coefficient Model

Three independent scalars describing how the undersea environment bends the
terrestrial aging curve:

- TCI (temperature-pressure): a hypothesis-based prior
- FRI (flavor retention): Arrhenius ratio of cellar vs. undersea reaction rate
- BRI (bubble retention): Henry's-Law ratio of surface vs. undersea pressure

Every function returns a CoefficientMeta so the derivation parameters travel
with the value.
"""

import math
from typing import Optional

from uaps.constants import AlgorithmConstants, CoefficientBasis, Defaults
from uaps.schema import CoefficientMeta
from uaps.utils import clamp

# Universal gas constant, J/(mol·K)
GAS_CONSTANT = 8.314
KELVIN_OFFSET = 273.15

# Reference conditions
REFERENCE_CELLAR_TEMP_C = 12.0
UNDERSEA_TEMP_C = 4.0
UNDERSEA_PRESSURE_ATM = 2.5
SURFACE_PRESSURE_ATM = 1.0
# Hydrostatic pressure gain per metre of seawater
ATM_PER_METER = 0.1

# Activation energy for ester hydrolysis / aroma loss, J/mol
ACTIVATION_ENERGY = 47000.0
ACTIVATION_ENERGY_UNCERTAINTY = 5000.0

# CO2 retention exponent applied to the pressure ratio
BRI_PRESSURE_EXPONENT = 1.4
BRI_PRESSURE_UNCERTAINTY_ATM = 0.5

TCI_CI_HALF_WIDTH = 0.24


def _arrhenius_retention(undersea_temp_c: float, reference_temp_c: float, activation_energy: float) -> float:
    t_undersea = undersea_temp_c + KELVIN_OFFSET
    t_reference = reference_temp_c + KELVIN_OFFSET
    ratio = math.exp(-activation_energy / GAS_CONSTANT * (1 / t_undersea - 1 / t_reference))
    return clamp(ratio, 0.0, 1.0)


def _henry_retention(undersea_pressure_atm: float, surface_pressure_atm: float, exponent: float) -> float:
    return clamp(1 - (surface_pressure_atm / undersea_pressure_atm) ** exponent, 0.0, 1.0)


def tci_prior() -> CoefficientMeta:
    """
    Temperature-pressure coefficient for constant ~12°C / ~2.5 atm conditions.

    Not derived from a physical law; flagged as hypothesis so downstream
    blending applies it at reduced confidence.
    """
    value = Defaults.TCI
    return CoefficientMeta(
        name="tci",
        value=value,
        basis=CoefficientBasis.HYPOTHESIS,
        formula_params={
            "temperature_c": REFERENCE_CELLAR_TEMP_C,
            "pressure_atm": UNDERSEA_PRESSURE_ATM,
        },
        description=(
            "Hypothesized acceleration of autolytic development under constant "
            "low temperature and elevated pressure. Requires empirical validation."
        ),
        references=["Prior estimate, pending retrieval tastings"],
        lower95=round(value - TCI_CI_HALF_WIDTH, 2),
        upper95=round(value + TCI_CI_HALF_WIDTH, 2),
    )


def arrhenius_fri(
    undersea_temp_c: float = UNDERSEA_TEMP_C,
    reference_temp_c: float = REFERENCE_CELLAR_TEMP_C,
    activation_energy: float = ACTIVATION_ENERGY,
) -> CoefficientMeta:
    """
    Flavor Retention Index from the Arrhenius equation.

    k_undersea / k_reference = exp(-Ea/R * (1/T_undersea - 1/T_reference))

    Colder water slows aroma-degrading reactions, so the ratio sits below 1.
    The 95% interval comes from Ea ± 5 kJ/mol.

    Args:
        undersea_temp_c: Water temperature at aging depth
        reference_temp_c: Terrestrial cellar temperature
        activation_energy: Ea in J/mol

    Returns:
        CoefficientMeta with basis "scientific"
    """
    value = _arrhenius_retention(undersea_temp_c, reference_temp_c, activation_energy)
    # Higher Ea means a stronger slowdown, hence the lower bound
    low = _arrhenius_retention(undersea_temp_c, reference_temp_c, activation_energy + ACTIVATION_ENERGY_UNCERTAINTY)
    high = _arrhenius_retention(undersea_temp_c, reference_temp_c, activation_energy - ACTIVATION_ENERGY_UNCERTAINTY)

    return CoefficientMeta(
        name="fri",
        value=round(value, 2),
        basis=CoefficientBasis.SCIENTIFIC,
        formula_params={
            "Ea": activation_energy,
            "R": GAS_CONSTANT,
            "T_reference": round(reference_temp_c + KELVIN_OFFSET, 2),
            "T_undersea": round(undersea_temp_c + KELVIN_OFFSET, 2),
        },
        description="Arrhenius rate ratio of flavor-degrading reactions, undersea vs. cellar.",
        references=["Arrhenius (1889); ester hydrolysis kinetics in sparkling wine"],
        lower95=round(low, 2),
        upper95=round(high, 2),
    )


def henry_bri(
    undersea_pressure_atm: float = UNDERSEA_PRESSURE_ATM,
    surface_pressure_atm: float = SURFACE_PRESSURE_ATM,
    pressure_exponent: float = BRI_PRESSURE_EXPONENT,
) -> CoefficientMeta:
    """
    Bubble Retention Index from Henry's Law.

    Dissolved CO2 follows external pressure; the share of CO2 held back from
    escaping is mapped monotonically into [0, 1] as 1 - (P_surface/P_undersea)^γ.
    """
    if undersea_pressure_atm <= 0 or surface_pressure_atm <= 0:
        raise ValueError("Pressures must be positive")

    value = _henry_retention(undersea_pressure_atm, surface_pressure_atm, pressure_exponent)
    low = _henry_retention(
        max(surface_pressure_atm, undersea_pressure_atm - BRI_PRESSURE_UNCERTAINTY_ATM),
        surface_pressure_atm,
        pressure_exponent,
    )
    high = _henry_retention(undersea_pressure_atm + BRI_PRESSURE_UNCERTAINTY_ATM, surface_pressure_atm, pressure_exponent)

    return CoefficientMeta(
        name="bri",
        value=round(value, 2),
        basis=CoefficientBasis.SCIENTIFIC,
        formula_params={
            "P_undersea_atm": undersea_pressure_atm,
            "P_surface_atm": surface_pressure_atm,
            "pressure_ratio": round(undersea_pressure_atm / surface_pressure_atm, 4),
            "exponent": pressure_exponent,
        },
        description="Henry's-Law CO2 retention from the undersea/surface pressure ratio.",
        references=["Henry (1803); Liger-Belair, CO2 in champagne"],
        lower95=round(low, 2),
        upper95=round(high, 2),
    )


def pressure_at_depth(depth_m: float) -> float:
    """Absolute pressure in atm at a given depth: 1 + depth/10."""
    return SURFACE_PRESSURE_ATM + max(0.0, depth_m) * ATM_PER_METER


def bri_at_depth(depth_m: float) -> CoefficientMeta:
    """BRI for a bottle immersed at ``depth_m`` metres; non-decreasing in depth."""
    meta = henry_bri(pressure_at_depth(depth_m))
    return meta.model_copy(update={"formula_params": {**meta.formula_params, "depth_m": depth_m}})


def with_override(meta: CoefficientMeta, value: Optional[float]) -> CoefficientMeta:
    """Replace only the value; basis, params and references are kept."""
    if value is None:
        return meta
    return meta.model_copy(update={"value": value})


def coefficient_confidence(meta: CoefficientMeta) -> float:
    """Share of a coefficient's effect to apply, by strength of evidence."""
    return AlgorithmConstants.BASIS_CONFIDENCE[CoefficientBasis(meta.basis)]


def default_coefficients() -> dict:
    """The three coefficients at their derived defaults."""
    return {"tci": tci_prior(), "fri": arrhenius_fri(), "bri": henry_bri()}
