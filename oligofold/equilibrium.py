"""
Equilibrium binding efficiency of a primer pair.

Pythia-style model (Mann et al. 2009, Nucleic Acids Res 37:e95): each primer
partitions between competing states with Boltzmann weights

  Q = 1 + K_hairpin + K_homodimer * P0 + K_target * T0 + K_off_target * T0 + K_hetero * P_partner

where K = exp(-dG / RT) and template / partner concentrations are held
constant (mean-field). The fraction of primer in state s is w_s / Q, and the
binding efficiency is the target-bound fraction. The pair efficiency is the
weaker of the two primers.

The partition function is evaluated in log space, so arbitrarily stable
species never overflow.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple, Union

import numpy as np
from scipy.special import logsumexp

from .duplex import SpeciesDG
from .params import KELVIN_OFFSET

LOGGER = logging.getLogger(__name__)

GAS_CONSTANT: float = 1.987e-3          # kcal/(mol*K)
DEFAULT_TEMPERATURE: float = 55.0       # annealing temperature (C)
DEFAULT_PRIMER_CONC: float = 0.5e-6     # 500 nM
DEFAULT_TEMPLATE_CONC: float = 1e-9     # 1 nM, late-stage PCR
NEGLIGIBLE_K: float = 1e-10

STATES = ("free", "hairpin", "homodimer", "target", "off_target", "heterodimer")

QUALITY_TIERS = (
    (0.95, "excellent"),
    (0.85, "good"),
    (0.70, "acceptable"),
    (0.50, "marginal"),
)

_LOG_NEGLIGIBLE_K = math.log(NEGLIGIBLE_K)
_LOG_FLOAT_MAX = math.log(np.finfo(float).max) - 1e-9


@dataclass
class PrimerEquilibrium:
    """Solved partition of one primer over its competing states."""
    log_q: float                                                  # ln of the partition function
    constants: Dict[str, float] = field(default_factory=dict)     # K per state
    fractions: Dict[str, float] = field(default_factory=dict)     # strand fraction per state, sums to 1
    concentrations: Dict[str, float] = field(default_factory=dict)  # complex concentration per state (M)
    efficiency: float = 0.0                                       # target-bound fraction


@dataclass
class EquilibriumResult:
    """Equilibrium efficiency of a primer pair."""
    efficiency: float                 # min(efficiency_fwd, efficiency_rev)
    efficiency_fwd: float
    efficiency_rev: float
    bottleneck: str                   # "forward" / "reverse"
    quality: str                      # "excellent" / "good" / "acceptable" / "marginal" / "poor"
    species: SpeciesDG
    constants: Dict[str, float]
    concentrations: Dict[str, float]
    losses: Dict[str, Dict[str, float]]
    template_free: float
    forward: PrimerEquilibrium
    reverse: PrimerEquilibrium


# ----- Constants -----

def log_equilibrium_constant(delta_g: Optional[float],
                             temperature: float = DEFAULT_TEMPERATURE) -> float:
    """
    ln K = -dG / RT, clipped to the log of the largest finite float.

    Missing or non-finite dG gives a negligible constant.
    """
    if delta_g is None or not math.isfinite(delta_g):
        return _LOG_NEGLIGIBLE_K
    log_k = -delta_g / (GAS_CONSTANT * (temperature + KELVIN_OFFSET))
    return min(max(log_k, -_LOG_FLOAT_MAX), _LOG_FLOAT_MAX)


def equilibrium_constant(delta_g: Optional[float],
                         temperature: float = DEFAULT_TEMPERATURE) -> float:
    """K = exp(-dG / RT), clipped to the largest finite float."""
    return math.exp(log_equilibrium_constant(delta_g, temperature))


def _log_conc(conc: float, name: str) -> float:
    if conc < 0:
        raise ValueError(f"{name} concentration must be non-negative: {conc}")
    if conc == 0:
        return -math.inf
    return math.log(conc)


# ----- Solver -----

def solve_primer(hairpin: Optional[float] = None,
                 homodimer: Optional[float] = None,
                 target: Optional[float] = None,
                 off_target: Optional[float] = None,
                 heterodimer: Optional[float] = None,
                 temperature: float = DEFAULT_TEMPERATURE,
                 primer_conc: float = DEFAULT_PRIMER_CONC,
                 template_conc: float = DEFAULT_TEMPLATE_CONC,
                 partner_conc: Optional[float] = None) -> PrimerEquilibrium:
    """
    Partition one primer over its competing states.

    Args:
        hairpin ... heterodimer: dG (kcal/mol) of each state; None = negligible
        temperature:   Temperature (C)
        primer_conc:   Total primer concentration P0 (M)
        template_conc: Template concentration T0 (M)
        partner_conc:  Partner primer concentration (M, default P0)

    Returns:
        PrimerEquilibrium with strand fractions summing to 1.
    """
    if partner_conc is None:
        partner_conc = primer_conc
    log_p = _log_conc(primer_conc, "primer")
    log_t = _log_conc(template_conc, "template")
    log_partner = _log_conc(partner_conc, "partner")

    log_k = {
        "free": 0.0,
        "hairpin": log_equilibrium_constant(hairpin, temperature),
        "homodimer": log_equilibrium_constant(homodimer, temperature),
        "target": log_equilibrium_constant(target, temperature),
        "off_target": log_equilibrium_constant(off_target, temperature),
        "heterodimer": log_equilibrium_constant(heterodimer, temperature),
    }
    log_weights = np.array([
        log_k["free"],
        log_k["hairpin"],
        log_k["homodimer"] + log_p,
        log_k["target"] + log_t,
        log_k["off_target"] + log_t,
        log_k["heterodimer"] + log_partner,
    ])

    log_q = float(logsumexp(log_weights))
    weights = np.exp(log_weights - log_q)
    weights = weights / weights.sum()
    fractions = {state: float(w) for state, w in zip(STATES, weights)}

    concentrations = {state: primer_conc * frac for state, frac in fractions.items()}
    # one complex holds two primer strands
    concentrations["homodimer"] /= 2.0
    concentrations["heterodimer"] /= 2.0

    constants = {state: math.exp(value) for state, value in log_k.items()}

    return PrimerEquilibrium(
        log_q=log_q,
        constants=constants,
        fractions=fractions,
        concentrations=concentrations,
        efficiency=min(1.0, max(0.0, fractions["target"])),
    )


def solve_equilibrium(species: SpeciesDG,
                      temperature: float = DEFAULT_TEMPERATURE,
                      primer_conc: float = DEFAULT_PRIMER_CONC,
                      template_conc: float = DEFAULT_TEMPLATE_CONC,
                      partner_conc: Optional[float] = None) -> Tuple[PrimerEquilibrium, PrimerEquilibrium]:
    """Solve the forward and reverse primer partitions of a pair."""
    forward = solve_primer(
        hairpin=species.fwd_hairpin,
        homodimer=species.fwd_homodimer,
        target=species.fwd_target,
        off_target=species.fwd_off_target,
        heterodimer=species.heterodimer,
        temperature=temperature,
        primer_conc=primer_conc,
        template_conc=template_conc,
        partner_conc=partner_conc,
    )
    reverse = solve_primer(
        hairpin=species.rev_hairpin,
        homodimer=species.rev_homodimer,
        target=species.rev_target,
        off_target=species.rev_off_target,
        heterodimer=species.heterodimer,
        temperature=temperature,
        primer_conc=primer_conc,
        template_conc=template_conc,
        partner_conc=partner_conc,
    )
    return forward, reverse


def classify_efficiency(efficiency: float) -> str:
    """Quality tier of an equilibrium efficiency."""
    for threshold, tier in QUALITY_TIERS:
        if efficiency >= threshold:
            return tier
    return "poor"


def efficiency_to_score(efficiency: float,
                        optimal: float = 0.95,
                        acceptable: float = 0.70,
                        steepness: float = 10.0) -> float:
    """
    Map an efficiency (0-1) to a 0-100 score.

    100 at or above optimal, linear from 70 to 100 between acceptable and
    optimal, logistic decay below acceptable.
    """
    if efficiency >= optimal:
        return 100.0
    if efficiency >= acceptable:
        return 70.0 + 30.0 * (efficiency - acceptable) / (optimal - acceptable)
    excess = acceptable - efficiency
    return 70.0 / (1.0 + math.exp(steepness * excess))


def _losses(primer: PrimerEquilibrium) -> Dict[str, float]:
    return {state: primer.fractions[state] for state in STATES if state != "target"}


def calculate_equilibrium_efficiency(species: Union[SpeciesDG, Mapping[str, Optional[float]]],
                                     temperature: float = DEFAULT_TEMPERATURE,
                                     primer_conc: float = DEFAULT_PRIMER_CONC,
                                     template_conc: float = DEFAULT_TEMPLATE_CONC,
                                     partner_conc: Optional[float] = None) -> EquilibriumResult:
    """
    Equilibrium efficiency of a primer pair from its species dG bundle.

    Args:
        species:       SpeciesDG (or a mapping with the same field names)
        temperature:   Annealing temperature (C, default 55.0)
        primer_conc:   Concentration of each primer (M, default 500 nM)
        template_conc: Template concentration (M, default 1 nM)
        partner_conc:  Partner primer concentration seen by the heterodimer
                       term (M, default primer_conc)

    Returns:
        EquilibriumResult; efficiency = min(efficiency_fwd, efficiency_rev)
    """
    if not isinstance(species, SpeciesDG):
        species = SpeciesDG(**dict(species))

    forward, reverse = solve_equilibrium(species, temperature, primer_conc,
                                         template_conc, partner_conc)

    eff_fwd = forward.efficiency
    eff_rev = reverse.efficiency
    efficiency = min(eff_fwd, eff_rev)
    bottleneck = "forward" if eff_fwd < eff_rev else "reverse"

    constants = {}
    for prefix, primer in (("fwd", forward), ("rev", reverse)):
        for state in STATES[1:-1]:
            constants[f"{prefix}_{state}"] = primer.constants[state]
    constants["heterodimer"] = forward.constants["heterodimer"]

    fwd_c = forward.concentrations
    rev_c = reverse.concentrations
    template_free = max(0.0, template_conc - fwd_c["target"] - rev_c["target"])
    concentrations = {
        "fwd_free": fwd_c["free"],
        "fwd_hairpin": fwd_c["hairpin"],
        "fwd_homodimer": fwd_c["homodimer"],
        "fwd_bound_target": fwd_c["target"],
        "fwd_off_target": fwd_c["off_target"],
        "rev_free": rev_c["free"],
        "rev_hairpin": rev_c["hairpin"],
        "rev_homodimer": rev_c["homodimer"],
        "rev_bound_target": rev_c["target"],
        "rev_off_target": rev_c["off_target"],
        "heterodimer": (fwd_c["heterodimer"] + rev_c["heterodimer"]) / 2.0,
        "template_free": template_free,
    }

    LOGGER.debug("equilibrium at %.1f C: fwd=%.4f rev=%.4f", temperature, eff_fwd, eff_rev)

    return EquilibriumResult(
        efficiency=efficiency,
        efficiency_fwd=eff_fwd,
        efficiency_rev=eff_rev,
        bottleneck=bottleneck,
        quality=classify_efficiency(efficiency),
        species=species,
        constants=constants,
        concentrations=concentrations,
        losses={"fwd": _losses(forward), "rev": _losses(reverse)},
        template_free=template_free,
        forward=forward,
        reverse=reverse,
    )
