"""Bioenergetic growth and mortality of feeding larvae.

Couples three sub-models:
  1. Light: clear-sky direct surface irradiance (PySolar) at the
     individual's position and calendar time, attenuated with depth
     by a chlorophyll-dependent coefficient K.
  2. Foraging: visual prey detection (light- and turbidity-limited),
     turbulence-enhanced encounter, gape-limited capture and size-ratio
     handling time over four prey types, combined in a multi-prey
     Holling type-II ingestion limited by stomach capacity.
  3. Mass balance: Folkvord maximum growth, routine metabolism and
     weight-dependent assimilation. The stage applies the stomach and
     weight updates from the returned terms.

Weights passed to and returned by this module are in grams (dry weight);
lengths are in mm; rates returned by `total_mortality` are per second.

References:
  - Kearney et al. (2020) Eq. A14 (0.42 PAR fraction at depth)
  - Fiksen & MacKenzie (2002) visual range of larval fish
  - Folkvord (2005) temperature/size growth of larval cod
  - Walton et al. (1992) handling time vs prey/predator size ratio
  - MacKenzie & Kiørboe (1995) turbulent dissipation from wind
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import NamedTuple, Sequence, Tuple

import numpy as np

from pcod_lhs.functions import BehaviorFunction
from pcod_lhs.solar import surface_shortwave
from pcod_lhs.types import (
    SECONDS_PER_DAY,
    FunctionCategory,
    GrowthKind,
    clamp_temperature,
)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

WATTS_TO_MICROEINSTEIN = 0.217   # divide W/m^2 by this for µE/m^2/s
PAR_FRACTION = 0.42

# Length–weight relation: DW (mg) = LW_A · SL (mm) ^ LW_B
LW_A = 4.1e-4
LW_B = 3.4

# Prey types, in input order: euphausiids (total), shelf Neocalanus,
# Neocalanus, small copepods.
PREY_NAMES = ('euphausiids', 'neocalanus_shelf', 'neocalanus', 'copepods')
PREY_LENGTH_MM = np.array([2.0, 1.2, 1.5, 0.6])
PREY_WIDTH_MM = 0.35 * PREY_LENGTH_MM
PREY_WEIGHT_UG = np.array([50.0, 12.0, 20.0, 2.0])

STARVATION_CONDITION = 0.8       # W/Wmax below which starvation sets in
LETHAL_CONDITION = 0.5           # W/Wmax at which the index reaches 1000


class BioenergeticsResult(NamedTuple):
    gross_growth: float              # g over the step, at max ration
    metabolic_cost: float            # g over the step
    ingestion: float                 # g over the step
    assimilation_efficiency: float
    stomach_fullness: float          # 0..1
    avg_prey_rank: float
    avg_prey_size: float             # mm
    epsilon: float                   # turbulent dissipation (W/kg)
    max_metabolic_cost: float        # g over the step, for the max-weight larva
    max_growth: float                # g over the step, for the max-weight larva


class MortalityRates(NamedTuple):
    total: float          # 1/s
    index: float          # starvation index; > 1000 is lethal
    fish: float           # 1/s
    invertebrate: float   # 1/s
    starvation: float     # 1/s


# ═══════════════════════════════════════════════════════════════════════
# LENGTH / WEIGHT
# ═══════════════════════════════════════════════════════════════════════

def weight_from_length(length: float) -> float:
    """Dry weight (g) of a larva of standard length `length` (mm)."""
    return LW_A * max(length, 0.0) ** LW_B * 1e-3


def length_from_weight(weight: float, previous_length: float) -> float:
    """Standard length (mm) from dry weight (g); never below `previous_length`."""
    if weight <= 0:
        return previous_length
    length = (weight * 1e3 / LW_A) ** (1.0 / LW_B)
    return max(length, previous_length)


# ═══════════════════════════════════════════════════════════════════════
# LIGHT
# ═══════════════════════════════════════════════════════════════════════

def surface_par(lat: float, lon: float, when: datetime) -> float:
    """Clear-sky PAR at the sea surface (µE/m^2/s); 0 at night."""
    return surface_shortwave(lon, lat, when) / WATTS_TO_MICROEINSTEIN


def light_attenuation(chlorophyll: float, depth: float,
                      bathym: float) -> Tuple[float, float]:
    """Attenuation coefficient K (1/m) and fraction of light at depth."""
    chl = max(chlorophyll, 0.0)
    k = 0.0384 + 0.0518 * chl ** 0.428
    z = max(min(depth, bathym), 0.0)
    return k, math.exp(-k * z)


def light_at_depth(lat: float, lon: float, when: datetime,
                   chlorophyll: float, depth: float,
                   bathym: float) -> Tuple[float, float]:
    """PAR at depth (µE/m^2/s) and the attenuation coefficient K."""
    surface = surface_par(lat, lon, when)
    k, fraction = light_attenuation(chlorophyll, depth, bathym)
    return PAR_FRACTION * surface * fraction, k


# ═══════════════════════════════════════════════════════════════════════
# FORAGING
# ═══════════════════════════════════════════════════════════════════════

def visual_range(contrast: float, prey_area: float, eye_sensitivity: float,
                 light: float, half_saturation: float, k: float) -> float:
    """Solve R² e^{cR} = C0·A·E'·Eb/(Ke+Eb) for R (m), with c = 3K.

    Newton iteration from R = sqrt(X).
    """
    if light <= 0:
        return 0.0
    x = contrast * prey_area * eye_sensitivity * light / (half_saturation + light)
    if x <= 0:
        return 0.0
    c = 3.0 * k
    r = math.sqrt(x)
    for _ in range(50):
        e = math.exp(c * r)
        f = r * r * e - x
        fp = e * (2.0 * r + c * r * r)
        step = f / fp
        r -= step
        if r <= 0:
            r = 1e-12
        if abs(step) < 1e-12:
            break
    return r


def turbulent_dissipation(wind_speed: float, depth: float) -> float:
    """Dissipation rate (W/kg) from wind speed (m/s) at depth (m)."""
    return 5.82e-9 * wind_speed ** 3 / max(depth, 1.0)


def gape_size(length: float) -> float:
    """Mouth gape (mm) of a larva of standard length `length` (mm)."""
    ln_l = math.log(max(length, 1e-3))
    return math.exp(-3.720 + 1.818 * ln_l - 0.1219 * ln_l ** 2)


def capture_success(prey_length: float, prey_width: float,
                    length: float) -> float:
    """Probability of capture after encounter; zero above the gape."""
    if prey_width > gape_size(length):
        return 0.0
    ratio = prey_length / max(length, 1e-3)
    return min(max(1.1 - 3.3 * ratio, 0.0), 1.0)


def handling_time(prey_length: float, length: float) -> float:
    """Handling time (s) as a function of prey/larva length ratio."""
    ratio = prey_length / max(length, 1e-3)
    exponent = 0.264 * 10.0 ** min(7.0151 * ratio, 3.0)
    return math.exp(min(exponent, 700.0))


def folkvord_growth(temperature: float, weight: float) -> float:
    """Maximum specific growth rate (%/d) for dry weight `weight` (g)."""
    T = clamp_temperature(temperature)
    lnw = math.log(max(weight * 1e3, 1e-6))  # mg
    g = (1.08 + 1.79 * T - 0.074 * T * lnw - 0.0965 * T * lnw ** 2
         + 0.0112 * T * lnw ** 3)
    return max(g, 0.0)


def assimilation_efficiency(weight: float) -> float:
    """Assimilation efficiency for dry weight `weight` (g)."""
    w_ug = weight * 1e6
    eff = 0.8 * (1.0 - 0.4 * math.exp(-0.002 * (w_ug - 59.29)))
    return min(max(eff, 0.05), 0.8)


# ═══════════════════════════════════════════════════════════════════════
# GROWTH FUNCTION
# ═══════════════════════════════════════════════════════════════════════

class BioenergeticGrowthDW(BehaviorFunction):
    """Bioenergetic dry-weight growth of feeding larvae.

    `compute` returns the terms of the mass balance; the calling stage
    updates stomach content, weight and maximum weight from them.
    """
    name = 'bioenergetic_growth_dw'
    category = FunctionCategory.GROWTH_DW
    growth_kind = GrowthKind.BIOENERGETIC
    description = 'Bioenergetic dry-weight growth with light-limited feeding.'
    defaults = {
        'gut_size': 0.06,            # stomach capacity, fraction of DW
        'pco2_effect': 0.0,          # fractional growth loss per reference pCO2
        'pco2_reference': 400.0,     # µatm
        'light_threshold': 0.001,    # µE/m^2/s; no feeding below
        'learning_time': 2.0,        # d after first feeding to full capture skill
        'half_saturation_light': 1.0,  # µE/m^2/s
        'contrast': 0.3,
        'eye_sensitivity': 1.0e8,    # scales with length^2 (m)
        'meta_a': 0.002,             # µg/h
        'meta_b': 0.088,
        'meta_c': 0.9,
        'daylight_activity': 1.4,
    }

    def metabolism(self, temperature: float, weight: float, dt: float,
                   daylight: bool) -> float:
        """Routine metabolic loss (g) over `dt` seconds."""
        p = self.params
        T = clamp_temperature(temperature)
        rate_ug_h = p['meta_a'] * math.exp(p['meta_b'] * T) * \
            max(weight * 1e6, 0.0) ** p['meta_c']
        if daylight:
            rate_ug_h *= p['daylight_activity']
        return rate_ug_h * abs(dt) / 3600.0 * 1e-6

    def max_growth(self, temperature: float, weight: float,
                   dt_days: float, pco2: float) -> float:
        """Gross growth (g) at unlimited ration over `dt_days`."""
        p = self.params
        g = folkvord_growth(temperature, weight) / 100.0
        if p['pco2_effect'] != 0.0:
            loss = p['pco2_effect'] * (pco2 - p['pco2_reference']) / \
                p['pco2_reference']
            g *= max(0.0, 1.0 - loss)
        return weight * (math.exp(g * dt_days) - 1.0)

    def compute(self, temperature: float, weight: float, dt: float,
                dt_days: float, length: float, light: float,
                wind_x: float, wind_y: float, depth: float, stomach: float,
                attenuation: float, prey: Sequence[float], pco2: float,
                age_from_ysl: float, max_weight: float
                ) -> BioenergeticsResult:
        """Mass-balance terms for one time step.

        Args:
            temperature: In situ temperature (°C).
            weight: Dry weight at the start of the step (g).
            dt: Time step (s).
            dt_days: Time step (d).
            length: Standard length (mm).
            light: PAR at depth (µE/m^2/s).
            wind_x, wind_y: Wind speed components (m/s).
            depth: Depth (m).
            stomach: Stomach content (g).
            attenuation: Light attenuation coefficient K (1/m).
            prey: Prey biomass densities in PREY_NAMES order (mg/m^3).
            pco2: Partial pressure of CO2 (µatm).
            age_from_ysl: Days since yolk-sac absorption.
            max_weight: Dry weight of a never-starved larva (g).

        Returns:
            BioenergeticsResult.
        """
        p = self.params
        daylight = light > p['light_threshold']
        assim = assimilation_efficiency(weight)
        meta = self.metabolism(temperature, weight, dt, daylight)
        gross = self.max_growth(temperature, weight, dt_days, pco2)
        meta_max = self.metabolism(temperature, max_weight, dt, daylight)
        growth_max = self.max_growth(temperature, max_weight, dt_days, pco2)

        epsilon = turbulent_dissipation(math.hypot(wind_x, wind_y), depth)

        capacity = p['gut_size'] * weight
        ingestion = 0.0
        avg_rank = 0.0
        avg_size = 0.0
        if daylight and dt != 0:
            length_m = length * 1e-3
            eye = p['eye_sensitivity'] * length_m ** 2
            swim = 0.5 * length_m   # search speed, body lengths/s
            if p['learning_time'] > 0:
                skill = min(1.0, max(age_from_ysl, 0.0) / p['learning_time'])
            else:
                skill = 1.0
            densities = np.maximum(np.asarray(prey, dtype=np.float64), 0.0) \
                * 1e3 / PREY_WEIGHT_UG   # individuals/m^3
            numer = 0.0
            denom = 1.0
            contrib = np.zeros(len(PREY_NAMES))
            profit = np.zeros(len(PREY_NAMES))
            for i in range(len(PREY_NAMES)):
                area = 0.75 * PREY_LENGTH_MM[i] * PREY_WIDTH_MM[i] * 1e-6
                r = visual_range(p['contrast'], area, eye, light,
                                 p['half_saturation_light'], attenuation)
                turb = 1.9 * (epsilon * r) ** (1.0 / 3.0) if r > 0 else 0.0
                enc = math.pi * r * r * (swim + turb) * densities[i]
                cap = skill * capture_success(
                    PREY_LENGTH_MM[i], PREY_WIDTH_MM[i], length)
                h = handling_time(PREY_LENGTH_MM[i], length)
                numer += enc * cap * PREY_WEIGHT_UG[i]
                denom += enc * cap * h
                contrib[i] = enc * cap * PREY_WEIGHT_UG[i]
                profit[i] = PREY_WEIGHT_UG[i] / h
            rate_ug_s = numer / denom
            ingestion = min(rate_ug_s * abs(dt) * 1e-6,
                            max(capacity - stomach, 0.0))
            total = contrib.sum()
            if total > 0:
                ranks = np.empty(len(PREY_NAMES))
                ranks[np.argsort(-profit)] = np.arange(1, len(PREY_NAMES) + 1)
                avg_rank = float((contrib * ranks).sum() / total)
                avg_size = float((contrib * PREY_LENGTH_MM).sum() / total)

        if capacity > 0:
            fullness = min(max((stomach + ingestion) / capacity, 0.0), 1.0)
        else:
            fullness = 0.0

        return BioenergeticsResult(
            gross_growth=gross,
            metabolic_cost=meta,
            ingestion=ingestion,
            assimilation_efficiency=assim,
            stomach_fullness=fullness,
            avg_prey_rank=avg_rank,
            avg_prey_size=avg_size,
            epsilon=epsilon,
            max_metabolic_cost=meta_max,
            max_growth=growth_max,
        )


# ═══════════════════════════════════════════════════════════════════════
# MORTALITY
# ═══════════════════════════════════════════════════════════════════════

def total_mortality(length: float, light: float, attenuation: float,
                    weight: float, stomach_fullness: float,
                    max_weight: float,
                    predator_density: float = 1.0e-6,
                    predator_speed: float = 0.1,
                    starvation_rate: float = 0.3) -> MortalityRates:
    """Fish, invertebrate and starvation mortality of a feeding larva.

    Args:
        length: Standard length (mm).
        light: PAR at depth (µE/m^2/s).
        attenuation: Light attenuation coefficient K (1/m).
        weight: Dry weight (g).
        stomach_fullness: Stomach fullness (0..1).
        max_weight: Dry weight of a never-starved larva (g).
        predator_density: Planktivorous fish density (1/m^3).
        predator_speed: Fish cruising speed (m/s).
        starvation_rate: Starvation mortality at zero condition (1/d).

    Returns:
        MortalityRates; rates per second.
    """
    length_m = max(length, 1e-3) * 1e-3
    # Visual predators detect the larva as a prey of its own body size.
    larva_area = 0.75 * length_m * 0.2 * length_m
    r = visual_range(0.3, larva_area, 1.0e8 * 0.15 ** 2, light, 1.0,
                     attenuation)
    fish = math.pi * r * r * predator_speed * predator_density

    invertebrate = 0.2 * max(length, 1e-3) ** -1.3 / SECONDS_PER_DAY

    condition = weight / max_weight if max_weight > 0 else 1.0
    starvation = 0.0
    if condition < STARVATION_CONDITION:
        starvation = starvation_rate * \
            (STARVATION_CONDITION - condition) / STARVATION_CONDITION * \
            (1.0 - min(max(stomach_fullness, 0.0), 1.0)) / SECONDS_PER_DAY
    index = max(0.0, 1000.0 * (1.0 - condition) / (1.0 - LETHAL_CONDITION))

    return MortalityRates(
        total=fish + invertebrate + starvation,
        index=index,
        fish=fish,
        invertebrate=invertebrate,
        starvation=starvation,
    )
