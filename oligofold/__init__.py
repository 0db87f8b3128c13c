"""
oligofold - DNA secondary structure and primer equilibrium thermodynamics.

  fold / dg                        Zuker MFE folding
  duplex_dg, hairpin_dg,
  homodimer_dg, heterodimer_dg     species free energies
  calculate_equilibrium_efficiency Pythia-style binding efficiency
  set_parameter_set                switch between santalucia2004 / breslauer1986
"""

from .batch import ThermoCache, evaluate_primer_pair, parallel_map, score_primer_pairs
from .duplex import (
    DimerResult,
    SpeciesDG,
    duplex_dg,
    find_dimers,
    hairpin_dg,
    heterodimer_dg,
    homodimer_dg,
    primer_pair_species,
)
from .equilibrium import (
    EquilibriumResult,
    PrimerEquilibrium,
    calculate_equilibrium_efficiency,
    classify_efficiency,
    efficiency_to_score,
    equilibrium_constant,
    solve_equilibrium,
)
from .fold import FoldStructure, FoldSummary, dg, dg_matrix, dot_bracket, fold, fold_summary
from .params import (
    BRESLAUER_1986,
    SANTALUCIA_2004,
    EnergyParameterSet,
    get_parameter_set,
    parameter_set_names,
    set_parameter_set,
)
from .sequence import complement, reverse_complement

__version__ = "0.1.0"

__all__ = [
    "BRESLAUER_1986",
    "DimerResult",
    "EnergyParameterSet",
    "EquilibriumResult",
    "FoldStructure",
    "FoldSummary",
    "PrimerEquilibrium",
    "SANTALUCIA_2004",
    "SpeciesDG",
    "ThermoCache",
    "calculate_equilibrium_efficiency",
    "classify_efficiency",
    "complement",
    "dg",
    "dg_matrix",
    "dot_bracket",
    "duplex_dg",
    "efficiency_to_score",
    "equilibrium_constant",
    "evaluate_primer_pair",
    "find_dimers",
    "fold",
    "fold_summary",
    "get_parameter_set",
    "hairpin_dg",
    "heterodimer_dg",
    "homodimer_dg",
    "parallel_map",
    "parameter_set_names",
    "primer_pair_species",
    "reverse_complement",
    "score_primer_pairs",
    "set_parameter_set",
    "solve_equilibrium",
]
