"""
Free energies of primer duplexes, hairpins and dimers.

  - duplex_dg:      NN sum over a known antiparallel alignment
  - hairpin_dg:     MFE fold, clamped to <= 0
  - homodimer_dg:   best antiparallel alignment of a sequence with itself
  - heterodimer_dg: best antiparallel alignment of two sequences

Dimer search:
  The second strand is reversed (not complemented) so that it reads 3'->5'
  under the first. For every offset with at least 4 nt of overlap, NN terms
  are accumulated over each unbroken complementary run. An offset counts only
  when its longest run has >= 3 pairs and the summed enthalpy is negative.

All functions are pure; memoization is left to the caller (see batch.ThermoCache).
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from .fold import MIN_FOLD_LENGTH, dg
from .params import KELVIN_OFFSET, EnergyParameterSet, calc_dg, resolve
from .sequence import is_complement, prepare, reverse_complement

LOGGER = logging.getLogger(__name__)

MIN_OVERLAP: int = 4
MIN_RUN: int = 3
MIN_HETERODIMER_LENGTH: int = 4


@dataclass
class DimerResult:
    """Dimer alignment candidate"""
    delta_g: float                    # dG (kcal/mol)
    strength: str                     # "Strong" / "Moderate" / "Weak" / "Very Weak"
    num_pairs: int                    # Paired positions at this offset
    longest_run: int                  # Longest run of consecutive pairs
    offset: int                       # Alignment offset of the reversed second strand
    involves_3prime: bool             # Whether either 3' end is paired
    alignment: str                    # Text display


@dataclass
class SpeciesDG:
    """dG (kcal/mol) of every competing state of a primer pair. None = not computed."""
    fwd_hairpin: Optional[float] = None
    rev_hairpin: Optional[float] = None
    fwd_homodimer: Optional[float] = None
    rev_homodimer: Optional[float] = None
    fwd_target: Optional[float] = None
    rev_target: Optional[float] = None
    fwd_off_target: Optional[float] = None
    rev_off_target: Optional[float] = None
    heterodimer: Optional[float] = None


# ----- Alignment scan -----

def _scan(top: str, bottom: str,
          params: EnergyParameterSet) -> Iterator[Tuple[int, float, float, int, List[int]]]:
    """
    Yield (offset, dH, dS, longest_run, paired) for every antiparallel offset.

    top[i] faces bottom_rev[i + offset]; paired lists the top indices whose
    facing base is complementary.
    """
    bottom_rev = bottom[::-1]
    n, m = len(top), len(bottom_rev)

    for offset in range(-(n - MIN_OVERLAP), m - MIN_OVERLAP + 1):
        dh = ds = 0.0
        run = longest = 0
        paired: List[int] = []
        for i in range(max(0, -offset), min(n, m - offset)):
            j = i + offset
            if not is_complement(top[i], bottom_rev[j]):
                run = 0
                continue
            run += 1
            longest = max(longest, run)
            paired.append(i)
            if run >= 2:
                value = params.stack(top[i - 1] + top[i] + "/" + bottom_rev[j - 1] + bottom_rev[j])
                if value:
                    dh += value[0]
                    ds += value[1]
        yield offset, dh, ds, longest, paired


def _dimer_dg(dh: float, ds: float, temp_k: float,
              params: EnergyParameterSet, symmetric: bool) -> float:
    dh += params.duplex_init[0]
    ds += params.duplex_init[1]
    if symmetric:
        dh += params.symmetry[0]
        ds += params.symmetry[1]
    return calc_dg(dh, ds, temp_k)


def _best_dimer(top: str, bottom: str, temperature: float,
                params: EnergyParameterSet, symmetric: bool) -> float:
    temp_k = temperature + KELVIN_OFFSET
    best = 0.0
    for _, dh, ds, longest, _ in _scan(top, bottom, params):
        if longest < MIN_RUN or dh >= 0:
            continue
        best = min(best, _dimer_dg(dh, ds, temp_k, params, symmetric))
    return best


# =================================================================
#  Public API
# =================================================================

def duplex_dg(primer: str, target: str,
              temperature: float = 55.0,
              params: Optional[EnergyParameterSet] = None) -> float:
    """
    dG of a primer hybridized to its antiparallel partner strand.

    Args:
        primer:      Primer sequence 5'->3'
        target:      Partner strand 5'->3' (reverse_complement(primer) for a perfect match)
        temperature: Temperature (C, default 55.0)
        params:      Parameter set; None uses the selected one

    Returns:
        dG (kcal/mol). Inputs of different length are truncated to the shorter.
    """
    p = resolve(params)
    primer = prepare(primer, caller="duplex_dg")
    target = prepare(target, caller="duplex_dg")
    if not primer or not target:
        return 0.0

    n = min(len(primer), len(target))
    primer = primer[:n]
    target_rev = target[:n][::-1]

    dh, ds = p.duplex_init
    for end in (primer[0], primer[-1]):
        if end in "AT":
            dh += p.terminal_at[0]
            ds += p.terminal_at[1]

    for i in range(n - 1):
        key = primer[i:i + 2] + "/" + target_rev[i:i + 2]
        value = p.stack(key) or p.internal_mismatch(key)
        if value:
            dh += value[0]
            ds += value[1]

    return calc_dg(dh, ds, temperature + KELVIN_OFFSET)


def hairpin_dg(sequence: str,
               temperature: float = 55.0,
               params: Optional[EnergyParameterSet] = None) -> float:
    """MFE of the folded sequence, 0.0 when no stable structure forms."""
    seq = prepare(sequence, caller="hairpin_dg")
    if len(seq) < MIN_FOLD_LENGTH:
        return 0.0
    return min(0.0, dg(seq, temperature, params))


def homodimer_dg(sequence: str,
                 temperature: float = 55.0,
                 params: Optional[EnergyParameterSet] = None) -> float:
    """Most stable self-dimer dG (kcal/mol), 0.0 if no alignment qualifies."""
    seq = prepare(sequence, caller="homodimer_dg")
    if len(seq) < MIN_FOLD_LENGTH:
        return 0.0
    return _best_dimer(seq, seq, temperature, resolve(params), symmetric=True)


def heterodimer_dg(seq_a: str, seq_b: str,
                   temperature: float = 55.0,
                   params: Optional[EnergyParameterSet] = None) -> float:
    """Most stable cross-dimer dG (kcal/mol); symmetric in its arguments."""
    a = prepare(seq_a, caller="heterodimer_dg")
    b = prepare(seq_b, caller="heterodimer_dg")
    if len(a) < MIN_HETERODIMER_LENGTH or len(b) < MIN_HETERODIMER_LENGTH:
        return 0.0
    a, b = sorted((a, b))
    return _best_dimer(a, b, temperature, resolve(params), symmetric=False)


# ----- Classification / alignment display -----

def classify_dimer_strength(delta_g: float) -> str:
    """Dimer strength classification (dG thresholds follow IDT/Primer3)"""
    if delta_g <= -6.0:
        return "Strong"
    if delta_g <= -4.0:
        return "Moderate"
    if delta_g <= -2.0:
        return "Weak"
    return "Very Weak"


def format_dimer_alignment(top: str, bottom: str, offset: int, paired: List[int]) -> str:
    """Generate text alignment for a dimer at the given offset."""
    pad_top = max(0, offset)
    pad_bottom = max(0, -offset)

    line1 = ' ' * pad_top + "5' " + top + " 3'"

    indicators = [' '] * (3 + pad_top + len(top))
    for i in paired:
        indicators[3 + pad_top + i] = '|'
    line2 = ''.join(indicators).rstrip()

    line3 = ' ' * pad_bottom + "3' " + bottom[::-1] + " 5'"

    return line1 + '\n' + line2 + '\n' + line3


def find_dimers(seq_a: str,
                seq_b: Optional[str] = None,
                temperature: float = 55.0,
                min_pairs: int = MIN_RUN,
                max_results: int = 10,
                params: Optional[EnergyParameterSet] = None) -> List[DimerResult]:
    """
    List dimer alignments between two oligos (or an oligo and itself).

    Uses the same offset scan as homodimer_dg / heterodimer_dg, so the first
    result's delta_g equals their return value whenever any offset qualifies.

    Args:
        seq_a:       First oligo 5'->3'
        seq_b:       Second oligo 5'->3'; None searches self-dimers of seq_a
        temperature: Temperature (C, default 55.0)
        min_pairs:   Minimum consecutive base pairs (default 3)
        max_results: Maximum number of results to return
        params:      Parameter set; None uses the selected one

    Returns:
        List of DimerResult (sorted by dG ascending = most stable first)
    """
    p = resolve(params)
    symmetric = seq_b is None
    top = prepare(seq_a, caller="find_dimers")
    bottom = top if symmetric else prepare(seq_b, caller="find_dimers")
    if not top or not bottom:
        return []
    if not symmetric:
        top, bottom = sorted((top, bottom))

    temp_k = temperature + KELVIN_OFFSET
    n = len(top)
    results: List[DimerResult] = []

    for offset, dh, ds, longest, paired in _scan(top, bottom, p):
        if longest < min_pairs or dh >= 0:
            continue
        delta_g = _dimer_dg(dh, ds, temp_k, p, symmetric)
        results.append(DimerResult(
            delta_g=delta_g,
            strength=classify_dimer_strength(delta_g),
            num_pairs=len(paired),
            longest_run=longest,
            offset=offset,
            involves_3prime=any(i >= n - 2 or i + offset <= 1 for i in paired),
            alignment=format_dimer_alignment(top, bottom, offset, paired),
        ))

    results.sort(key=lambda x: x.delta_g)
    return results[:max_results]


# ----- Primer pair bundle -----

def target_sites(fwd: str, rev: str, template: Optional[str] = None) -> Tuple[str, str]:
    """
    Partner strands (5'->3') that the forward and reverse primers hybridize to.

    The forward primer matches the start of the template top strand and binds
    its complement; the reverse primer matches the complement of the template
    end and binds the top strand. Without a template the perfect complements
    are used.
    """
    fwd = prepare(fwd, caller="target_sites")
    rev = prepare(rev, caller="target_sites")
    template = prepare(template, caller="target_sites") if template else ""
    if not fwd or not rev:
        return "", ""
    if not template:
        return reverse_complement(fwd), reverse_complement(rev)
    return reverse_complement(template[:len(fwd)]), template[-len(rev):]


def primer_pair_species(fwd: str, rev: str,
                        template: Optional[str] = None,
                        temperature: float = 55.0,
                        off_target: Optional[Tuple[Optional[float], Optional[float]]] = None,
                        params: Optional[EnergyParameterSet] = None) -> SpeciesDG:
    """
    dG of every competing state of a primer pair.

    Args:
        fwd, rev:    Primer sequences 5'->3'
        template:    Template top strand 5'->3' (None assumes perfect targets)
        temperature: Temperature (C, default 55.0)
        off_target:  (fwd, rev) off-target dG from an external site search
        params:      Parameter set; None uses the selected one
    """
    p = resolve(params)
    fwd_site, rev_site = target_sites(fwd, rev, template)
    fwd_off, rev_off = off_target if off_target is not None else (None, None)
    return SpeciesDG(
        fwd_hairpin=hairpin_dg(fwd, temperature, p),
        rev_hairpin=hairpin_dg(rev, temperature, p),
        fwd_homodimer=homodimer_dg(fwd, temperature, p),
        rev_homodimer=homodimer_dg(rev, temperature, p),
        fwd_target=duplex_dg(fwd, fwd_site, temperature, p) if fwd_site else None,
        rev_target=duplex_dg(rev, rev_site, temperature, p) if rev_site else None,
        fwd_off_target=fwd_off,
        rev_off_target=rev_off,
        heterodimer=heterodimer_dg(fwd, rev, temperature, p),
    )
