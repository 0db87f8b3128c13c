"""
Caller-side memoization and batch scoring.

Primer search scores the same oligos many times over, so ThermoCache keeps
hairpin / homodimer / heterodimer dG keyed on (sequence(s), temperature,
parameter-set name, parameter-set version). parallel_map fans independent
calls out over a concurrent.futures executor.
"""

import logging
import threading
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from . import duplex
from .equilibrium import (
    DEFAULT_PRIMER_CONC,
    DEFAULT_TEMPERATURE,
    DEFAULT_TEMPLATE_CONC,
    EquilibriumResult,
    calculate_equilibrium_efficiency,
)
from .params import EnergyParameterSet, resolve
from .sequence import clean_sequence

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_KINDS = ("hairpin", "homodimer", "heterodimer")


class ThermoCache:
    """Thread-safe memo of the dG derivation functions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[tuple, float]] = {kind: {} for kind in _KINDS}
        self._hits = {kind: 0 for kind in _KINDS}
        self._misses = {kind: 0 for kind in _KINDS}

    def _lookup(self, kind: str, key: tuple, compute: Callable[[], float]) -> float:
        with self._lock:
            table = self._tables[kind]
            if key in table:
                self._hits[kind] += 1
                return table[key]
            self._misses[kind] += 1
        value = compute()
        with self._lock:
            self._tables[kind][key] = value
        return value

    def hairpin_dg(self, sequence: str, temperature: float = DEFAULT_TEMPERATURE,
                   params: Optional[EnergyParameterSet] = None) -> float:
        p = resolve(params)
        key = (clean_sequence(sequence), temperature) + p.cache_key
        return self._lookup("hairpin", key, lambda: duplex.hairpin_dg(sequence, temperature, p))

    def homodimer_dg(self, sequence: str, temperature: float = DEFAULT_TEMPERATURE,
                     params: Optional[EnergyParameterSet] = None) -> float:
        p = resolve(params)
        key = (clean_sequence(sequence), temperature) + p.cache_key
        return self._lookup("homodimer", key, lambda: duplex.homodimer_dg(sequence, temperature, p))

    def heterodimer_dg(self, seq_a: str, seq_b: str, temperature: float = DEFAULT_TEMPERATURE,
                       params: Optional[EnergyParameterSet] = None) -> float:
        p = resolve(params)
        a, b = sorted((clean_sequence(seq_a), clean_sequence(seq_b)))
        key = (a, b, temperature) + p.cache_key
        return self._lookup("heterodimer", key, lambda: duplex.heterodimer_dg(a, b, temperature, p))

    def primer_pair_species(self, fwd: str, rev: str,
                            template: Optional[str] = None,
                            temperature: float = DEFAULT_TEMPERATURE,
                            off_target: Optional[Tuple[Optional[float], Optional[float]]] = None,
                            params: Optional[EnergyParameterSet] = None) -> duplex.SpeciesDG:
        """duplex.primer_pair_species with the expensive terms memoized."""
        p = resolve(params)
        fwd_site, rev_site = duplex.target_sites(fwd, rev, template)
        fwd_off, rev_off = off_target if off_target is not None else (None, None)
        return duplex.SpeciesDG(
            fwd_hairpin=self.hairpin_dg(fwd, temperature, p),
            rev_hairpin=self.hairpin_dg(rev, temperature, p),
            fwd_homodimer=self.homodimer_dg(fwd, temperature, p),
            rev_homodimer=self.homodimer_dg(rev, temperature, p),
            fwd_target=duplex.duplex_dg(fwd, fwd_site, temperature, p) if fwd_site else None,
            rev_target=duplex.duplex_dg(rev, rev_site, temperature, p) if rev_site else None,
            fwd_off_target=fwd_off,
            rev_off_target=rev_off,
            heterodimer=self.heterodimer_dg(fwd, rev, temperature, p),
        )

    def stats(self) -> Dict[str, int]:
        with self._lock:
            out: Dict[str, int] = {}
            for kind in _KINDS:
                out[f"{kind}_hits"] = self._hits[kind]
                out[f"{kind}_misses"] = self._misses[kind]
                out[f"{kind}_size"] = len(self._tables[kind])
            out["total_size"] = sum(len(t) for t in self._tables.values())
            return out

    def clear(self) -> None:
        with self._lock:
            for kind in _KINDS:
                self._tables[kind].clear()
                self._hits[kind] = 0
                self._misses[kind] = 0
        LOGGER.debug("thermo cache cleared")


def parallel_map(func: Callable[[T], R],
                 items: Iterable[T],
                 max_workers: Optional[int] = None,
                 processes: bool = False) -> List[R]:
    """
    Map func over items on a thread or process pool, preserving order.

    With processes=True, func and the items must be picklable (module-level
    functions). A single worker or a single item runs inline.
    """
    items = list(items)
    if max_workers == 1 or len(items) <= 1:
        return [func(item) for item in items]

    executor_cls = ProcessPoolExecutor if processes else ThreadPoolExecutor
    with executor_cls(max_workers=max_workers) as executor:
        return list(executor.map(func, items))


def evaluate_primer_pair(fwd: str, rev: str,
                         template: Optional[str] = None,
                         temperature: float = DEFAULT_TEMPERATURE,
                         primer_conc: float = DEFAULT_PRIMER_CONC,
                         template_conc: float = DEFAULT_TEMPLATE_CONC,
                         off_target: Optional[Tuple[Optional[float], Optional[float]]] = None,
                         params: Optional[EnergyParameterSet] = None,
                         cache: Optional[ThermoCache] = None,
                         partner_conc: Optional[float] = None) -> EquilibriumResult:
    """Derive the species dG of a primer pair and solve its equilibrium."""
    if cache is not None:
        species = cache.primer_pair_species(fwd, rev, template, temperature, off_target, params)
    else:
        species = duplex.primer_pair_species(fwd, rev, template, temperature, off_target, params)
    return calculate_equilibrium_efficiency(species, temperature, primer_conc,
                                            template_conc, partner_conc)


def score_primer_pairs(pairs: Sequence[Tuple[str, str]],
                       template: Optional[str] = None,
                       temperature: float = DEFAULT_TEMPERATURE,
                       params: Optional[EnergyParameterSet] = None,
                       cache: Optional[ThermoCache] = None,
                       max_workers: Optional[int] = None) -> List[EquilibriumResult]:
    """Evaluate many (fwd, rev) pairs on a thread pool, sharing one cache."""
    p = resolve(params)
    if cache is None:
        cache = ThermoCache()

    def _evaluate(pair: Tuple[str, str]) -> EquilibriumResult:
        return evaluate_primer_pair(pair[0], pair[1], template, temperature,
                                    params=p, cache=cache)

    results = parallel_map(_evaluate, pairs, max_workers=max_workers)
    LOGGER.debug("scored %d primer pairs with %s: %s", len(results), p.name, cache.stats())
    return results
