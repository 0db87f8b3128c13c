"""
Minimum free energy secondary structure prediction for DNA oligos.

Zuker & Stiegler (1981) dynamic programming over two tables:
  V[i][j] - MFE of seq[i..j] when i and j form a base pair
  W[i][j] - MFE of seq[i..j] with no pairing requirement on the ends

Both tables are filled bottom-up by increasing span, so every cell is
computed exactly once and no recursion is needed. Each cell also keeps a
traceback record naming the candidate that achieved its minimum. Candidates
are evaluated in a fixed order and the first strictly smaller one wins:

  W(i, j): W(i+1, j), W(i, j-1), V(i, j), splits W(i, k) + W(k+1, j) by increasing k
  V(i, j): hairpin, interior pairs (i', j') by increasing i' then j',
           multibranch splits W(i+1, k) + W(k+1, j-1) by increasing k

Energy model:
  NN stacking, hairpin loops (with tri/tetraloop bonuses and closing
  mismatches), bulges, interior loops (length + asymmetry + flanking
  mismatches) and multibranch loops (a + b * helices + c * unpaired).

Time: O(n^4) worst case (every interior pair is searched; loop penalties
past the 30 nt tables are extrapolated),  Space: O(n^2)

References:
  1. Zuker M, Stiegler P (1981) Nucleic Acids Res 9:133-148
  2. SantaLucia J Jr, Hicks D (2004) Annu Rev Biophys Biomol Struct 33:415-440
"""

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .params import KELVIN_OFFSET, EnergyParameterSet, calc_dg, loop_dg, resolve
from .sequence import is_complement, prepare

LOGGER = logging.getLogger(__name__)

Pair = Tuple[int, int]

HAIRPIN = "HAIRPIN"
STACK = "STACK"
BULGE = "BULGE"
INTERIOR_LOOP = "INTERIOR_LOOP"
MULTIBRANCH = "MULTIBRANCH"

MIN_PAIR_SPAN: int = 4              # j - i of a pair; hairpin loops have >= 3 nt
MIN_FOLD_LENGTH: int = 6
ISOLATED_PAIR_PENALTY: float = 1600.0
MAX_RECOMMENDED_LENGTH: int = 120

INF = math.inf

# traceback operations for W cells
_SHRINK_LEFT = "L"
_SHRINK_RIGHT = "R"
_PAIRED = "P"
_SPLIT = "M"


@dataclass
class FoldStructure:
    """One motif of a folded structure."""
    energy: float                     # dG contribution (kcal/mol)
    kind: str                         # HAIRPIN / STACK / BULGE / INTERIOR_LOOP / MULTIBRANCH
    pairs: List[Pair] = field(default_factory=list)   # base pairs closed by this motif
    desc: str = ""                    # e.g. "STACK:GG/CC", "BULGE:2"


@dataclass
class FoldSummary:
    """Consolidated view of a folding result."""
    energy: float                     # total dG (kcal/mol), rounded to 0.01
    pairs: List[Pair]
    desc: str                         # kind of the outermost motif
    structure: str                    # dot-bracket


class _Folder:
    """DP tables and energy functions for one sequence at one temperature."""

    def __init__(self, seq: str, temp_k: float, params: EnergyParameterSet):
        self.seq = seq
        self.n = len(seq)
        self.temp_k = temp_k
        self.params = params

        n = self.n
        self.V = np.full((n, n), INF)
        self.W = np.full((n, n), INF)
        self.v_trace: List[List[Optional[tuple]]] = [[None] * n for _ in range(n)]
        self.w_trace: List[List[Optional[tuple]]] = [[None] * n for _ in range(n)]
        # top-level helices of the structure chosen for W[i][j]
        self.w_branches: List[List[Tuple[Pair, ...]]] = [[()] * n for _ in range(n)]

    # ----- Energy helpers -----

    def _energy(self, value: Optional[Tuple[float, float]]) -> float:
        if value is None:
            return 0.0
        return calc_dg(value[0], value[1], self.temp_k)

    def _key(self, i: int, i1: int, j: int, j1: int) -> str:
        s = self.seq
        return s[i] + s[i1] + "/" + s[j] + s[j1]

    def _stack(self, i: int, i1: int, j: int, j1: int) -> float:
        """
        dG of the stack (i, j) -> (i1, j1).

        Internal stacks fall back from NN to internal mismatch parameters.
        Stacks touching a sequence end use terminal mismatches and add the
        dangling end of the overhanging base.
        """
        seq, n, p = self.seq, self.n, self.params
        key = self._key(i, i1, j, j1)

        if i > 0 and j < n - 1:
            return self._energy(p.stack(key) or p.internal_mismatch(key))

        dg = self._energy(p.stack(key) or p.terminal_mismatch(key))
        if i > 0 and j == n - 1:
            dg += self._energy(p.dangle(seq[i - 1] + seq[i] + "/." + seq[j]))
        elif i == 0 and j < n - 1:
            dg += self._energy(p.dangle("." + seq[i] + "/" + seq[j + 1] + seq[j]))
        return dg

    def _hairpin(self, i: int, j: int) -> float:
        """Hairpin loop closed by (i, j)."""
        if j - i < MIN_PAIR_SPAN:
            return INF
        seq, p = self.seq, self.params
        if not is_complement(seq[i], seq[j]):
            raise ValueError(f"Hairpin closed by non-complementary pair ({i}, {j})")

        loop_len = j - i - 1
        dg = self._energy(p.special_loop(seq[i:j + 1]))
        dg += loop_dg(p.hairpin_loops, loop_len, self.temp_k)

        if loop_len > 3:
            dg += self._energy(p.hairpin_mismatch(self._key(i, i + 1, j, j - 1)))
        elif seq[i] in "AT":
            # triloop closed by an A-T pair
            dg += 0.5
        return dg

    def _bulge(self, i: int, i1: int, j: int, j1: int) -> float:
        """Bulge between the pairs (i, j) and (i1, j1)."""
        loop_len = max(i1 - i - 1, j - j1 - 1)
        if loop_len <= 0:
            raise ValueError(f"Invalid bulge between ({i}, {j}) and ({i1}, {j1})")

        dg = loop_dg(self.params.bulge_loops, loop_len, self.temp_k)
        if loop_len == 1:
            # a single bulged base keeps the stack across it
            dg += self._stack(i, i1, j, j1)
        if any(self.seq[k] == "A" for k in (i, i1, j, j1)):
            dg += 0.5
        return dg

    def _internal_loop(self, i: int, i1: int, j: int, j1: int) -> float:
        """Interior loop between the pairs (i, j) and (i1, j1)."""
        left = i1 - i - 1
        right = j - j1 - 1
        if left < 1 or right < 1:
            raise ValueError(f"Invalid internal loop between ({i}, {j}) and ({i1}, {j1})")

        if left == 1 and right == 1:
            # single mismatch: two mismatch stacks
            return self._stack(i, i + 1, j, j - 1) + self._stack(i1 - 1, i1, j1 + 1, j1)

        p = self.params
        dg = loop_dg(p.internal_loops, left + right, self.temp_k)
        dg += 0.3 * abs(left - right)
        dg += self._energy(p.terminal_mismatch(self._key(i, i + 1, j, j - 1)))
        dg += self._energy(p.terminal_mismatch(self._key(i1 - 1, i1, j1 + 1, j1)))
        return dg

    def _branch_dangle(self, bi: int, bj: int, left_free: bool, right_free: bool) -> float:
        seq, p = self.seq, self.params
        if left_free and right_free:
            return self._energy(p.terminal_mismatch(seq[bi - 1] + seq[bi] + "/" + seq[bj + 1] + seq[bj]))
        if right_free:
            return self._energy(p.dangle("." + seq[bi] + "/" + seq[bj + 1] + seq[bj]))
        if left_free:
            return self._energy(p.dangle(seq[bi - 1] + seq[bi] + "/." + seq[bj]))
        return 0.0

    def _multibranch(self, branches: Sequence[Pair], lo: int, hi: int,
                     closing: Optional[Pair] = None) -> Tuple[float, str]:
        """
        Loop energy of a multibranch junction, excluding its helices.

        branches are the enclosed helices, ordered 5'->3', inside [lo, hi].
        With a closing pair the loop is bounded by it and every unpaired base
        in [lo, hi] counts; without one (exterior split) only the gaps between
        branches count.
        """
        a, b, c, d = self.params.multibranch
        helices = len(branches) + (1 if closing is not None else 0)

        unpaired = 0
        dangles = 0.0
        prev_end = lo - 1
        for idx, (bi, bj) in enumerate(branches):
            next_start = branches[idx + 1][0] if idx + 1 < len(branches) else hi + 1
            gap_left = bi - prev_end - 1
            gap_right = next_start - bj - 1
            if closing is not None or idx > 0:
                unpaired += gap_left
            dangles += self._branch_dangle(bi, bj, gap_left > 0, gap_right > 0)
            prev_end = bj

        if closing is not None:
            unpaired += hi - prev_end
            i, j = closing
            if branches[0][0] > i + 1 and branches[-1][1] < j - 1:
                dangles += self._energy(self.params.terminal_mismatch(self._key(i, i + 1, j, j - 1)))

        if unpaired == 0:
            penalty = a + d
        else:
            penalty = a + b * helices + c * unpaired
        return penalty + dangles, f"BIFURCATION:{unpaired}n/{helices}h"

    # ----- DP fill -----

    def fill(self) -> None:
        n = self.n
        for span in range(MIN_PAIR_SPAN, n):
            for i in range(n - span):
                j = i + span
                self._fill_v(i, j)
                self._fill_w(i, j)

    def _fill_v(self, i: int, j: int) -> None:
        seq, n, V, W = self.seq, self.n, self.V, self.W
        if not is_complement(seq[i], seq[j]):
            return

        best = self._hairpin(i, j)
        trace: tuple = (HAIRPIN, best, "HAIRPIN:" + self._key(i, i + 1, j, j - 1), ())

        isolated_outer = not (i > 0 and j < n - 1 and is_complement(seq[i - 1], seq[j + 1]))
        isolated_inner = not is_complement(seq[i + 1], seq[j - 1])
        if isolated_outer and isolated_inner:
            best += ISOLATED_PAIR_PENALTY
            V[i, j] = best
            self.v_trace[i][j] = (HAIRPIN, best, "ISOLATED:" + seq[i] + seq[j], ())
            return

        # stacks, bulges and interior loops
        for i1 in range(i + 1, j - MIN_PAIR_SPAN):
            left = i1 - i - 1
            for j1 in range(i1 + MIN_PAIR_SPAN, j):
                inner = V[i1, j1]
                if inner == INF:
                    continue
                right = j - j1 - 1
                if left == 0 and right == 0:
                    local = self._stack(i, i1, j, j1)
                    kind, desc = STACK, "STACK:" + self._key(i, i1, j, j1)
                elif left and right:
                    local = self._internal_loop(i, i1, j, j1)
                    kind, desc = INTERIOR_LOOP, f"INTERIOR_LOOP:{left}/{right}"
                else:
                    local = self._bulge(i, i1, j, j1)
                    kind, desc = BULGE, f"BULGE:{max(left, right)}"
                total = local + inner
                if total < best:
                    best = total
                    trace = (kind, local, desc, ((i1, j1),))

        # multibranch closed by (i, j)
        for k in range(i + 1 + MIN_PAIR_SPAN, j - 1 - MIN_PAIR_SPAN):
            if W[i + 1, k] == INF or W[k + 1, j - 1] == INF:
                continue
            branches = self.w_branches[i + 1][k] + self.w_branches[k + 1][j - 1]
            if len(branches) < 2:
                continue
            local, desc = self._multibranch(branches, i + 1, j - 1, closing=(i, j))
            total = local + sum(V[b] for b in branches)
            if total < best:
                best = total
                trace = (MULTIBRANCH, local, desc, branches)

        V[i, j] = best
        self.v_trace[i][j] = trace

    def _fill_w(self, i: int, j: int) -> None:
        V, W = self.V, self.W

        best = W[i + 1, j]
        trace: tuple = (_SHRINK_LEFT,)
        branches = self.w_branches[i + 1][j]

        if W[i, j - 1] < best:
            best = W[i, j - 1]
            trace = (_SHRINK_RIGHT,)
            branches = self.w_branches[i][j - 1]

        if V[i, j] < best:
            best = V[i, j]
            trace = (_PAIRED,)
            branches = ((i, j),)

        for k in range(i + MIN_PAIR_SPAN, j - MIN_PAIR_SPAN):
            if W[i, k] == INF or W[k + 1, j] == INF:
                continue
            split = self.w_branches[i][k] + self.w_branches[k + 1][j]
            if len(split) < 2:
                continue
            local, desc = self._multibranch(split, i, j)
            total = local + sum(V[b] for b in split)
            if total < best:
                best = total
                trace = (_SPLIT, local, desc, split)
                branches = split

        if best == INF:
            return
        W[i, j] = best
        self.w_trace[i][j] = trace
        self.w_branches[i][j] = branches

    # ----- Traceback -----

    def traceback(self) -> List[FoldStructure]:
        """Walk the traceback records from W(0, n-1), motifs in pre-order."""
        if self.n == 0 or not math.isfinite(self.W[0, self.n - 1]):
            return []

        structs: List[FoldStructure] = []
        todo: List[Tuple[str, int, int]] = [("W", 0, self.n - 1)]
        while todo:
            table, i, j = todo.pop()
            if table == "W":
                op = self.w_trace[i][j]
                if op is None:
                    raise RuntimeError(f"No traceback record for W({i}, {j})")
                if op[0] == _SHRINK_LEFT:
                    todo.append(("W", i + 1, j))
                elif op[0] == _SHRINK_RIGHT:
                    todo.append(("W", i, j - 1))
                elif op[0] == _PAIRED:
                    todo.append(("V", i, j))
                else:
                    _, local, desc, branches = op
                    structs.append(FoldStructure(float(local), MULTIBRANCH, [], desc))
                    todo.extend(("V", bi, bj) for bi, bj in reversed(branches))
            else:
                op = self.v_trace[i][j]
                if op is None:
                    raise RuntimeError(f"No traceback record for V({i}, {j})")
                kind, local, desc, children = op
                structs.append(FoldStructure(float(local), kind, [(i, j)], desc))
                todo.extend(("V", ci, cj) for ci, cj in reversed(children))
        return structs


def _build(sequence: str, temperature: float,
           params: Optional[EnergyParameterSet]) -> Optional[_Folder]:
    seq = prepare(sequence, caller="fold")
    if len(seq) < MIN_FOLD_LENGTH:
        return None
    if len(seq) > MAX_RECOMMENDED_LENGTH:
        warnings.warn(
            f"Sequence length {len(seq)} exceeds {MAX_RECOMMENDED_LENGTH} nt; "
            "folding time grows with the fourth power of length.",
            stacklevel=3,
        )
    folder = _Folder(seq, temperature + KELVIN_OFFSET, resolve(params))
    folder.fill()
    LOGGER.debug("folded %d nt at %.1f C with %s: W(0,n-1)=%.3f",
                 folder.n, temperature, folder.params.name, folder.W[0, folder.n - 1])
    return folder


# =================================================================
#  Public API
# =================================================================

def fold(sequence: str,
         temperature: float = 37.0,
         params: Optional[EnergyParameterSet] = None) -> List[FoldStructure]:
    """
    Fold a DNA sequence and return its minimum free energy structure.

    Args:
        sequence:    DNA sequence (case-insensitive; non-ACGT input has no structure)
        temperature: Temperature (C, default 37.0)
        params:      Parameter set; None uses the selected one

    Returns:
        List of FoldStructure motifs whose energies sum to the MFE.
        Empty for sequences shorter than 6 nt, invalid sequences and
        sequences without any feasible base pair.
    """
    folder = _build(sequence, temperature, params)
    if folder is None:
        return []
    return folder.traceback()


def total_energy(structs: Sequence[FoldStructure]) -> float:
    """Sum of motif energies, 0.0 when empty or not finite."""
    total = sum(s.energy for s in structs)
    if not math.isfinite(total):
        return 0.0
    return total


def dg(sequence: str,
       temperature: float = 37.0,
       params: Optional[EnergyParameterSet] = None) -> float:
    """Minimum free energy (kcal/mol) of the folded sequence."""
    return total_energy(fold(sequence, temperature, params))


def dg_matrix(sequence: str,
              temperature: float = 37.0,
              params: Optional[EnergyParameterSet] = None) -> np.ndarray:
    """
    MFE of every subsequence seq[i..j] as an n x n array (W table).

    Cells without a feasible structure hold 0.0.
    """
    folder = _build(sequence, temperature, params)
    if folder is None:
        n = len(prepare(sequence, caller="dg_matrix"))
        return np.zeros((n, n))
    W = folder.W
    return np.where(np.isfinite(W), W, 0.0)


def dot_bracket(sequence: str, pairs: Sequence[Pair]) -> str:
    """Dot-bracket notation of a list of (i, j) base pairs."""
    n = len(sequence)
    structure = ['.'] * n
    for i, j in sorted(pairs):
        if 0 <= i < j < n:
            structure[i] = '('
            structure[j] = ')'
    return ''.join(structure)


def fold_summary(sequence: str,
                 temperature: float = 37.0,
                 params: Optional[EnergyParameterSet] = None) -> FoldSummary:
    """Fold and consolidate the motifs into one energy, pair list and structure."""
    seq = prepare(sequence, caller="fold_summary")
    structs = fold(seq, temperature, params) if seq else []
    if not structs:
        return FoldSummary(energy=0.0, pairs=[], desc="", structure='.' * len(seq))

    pairs = [pair for s in structs for pair in s.pairs]
    return FoldSummary(
        energy=round(total_energy(structs), 2),
        pairs=pairs,
        desc=structs[0].kind,
        structure=dot_bracket(seq, pairs),
    )
