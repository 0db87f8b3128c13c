"""
Thermodynamic parameter tables for DNA secondary structure.

Two parameter sets are bundled:

  - santalucia2004 (default): SantaLucia & Hicks (2004) nearest-neighbor
    stacks and loop penalties, Allawi & SantaLucia / Peyret internal
    mismatches, Bommarito (2000) terminal mismatches and dangling ends.
  - breslauer1986: Breslauer et al. (1986) nearest-neighbor stacks with
    simplified loop penalties and no mismatch/dangle corrections.

Every table maps a context key to (dH [kcal/mol], dS [cal/(mol*K)]).
Stack-like keys follow the "XY/ZW" convention: XY is the top strand read
5'->3', ZW the bottom strand read 3'->5', so X pairs (or mismatches) with Z
and Y with W. A '.' marks the missing base of a dangling end. Each table
also holds the 180-degree rotation of every key ("XY/ZW" == "WZ/YX").

References:
  1. SantaLucia J Jr, Hicks D (2004) Annu Rev Biophys Biomol Struct 33:415-440
  2. Breslauer KJ et al. (1986) PNAS 83:3746-3750
  3. Allawi HT, SantaLucia J Jr (1997-1998) Biochemistry
  4. Peyret N et al. (1999) Biochemistry 38:3468-3477
  5. Bommarito S et al. (2000) Nucleic Acids Res 28:1929-1934
"""

import logging
import math
import os
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

Energy = Tuple[float, float]

KELVIN_OFFSET: float = 273.15
REFERENCE_TEMP_K: float = 310.15          # 37 C, temperature of the loop tables
GAS_CONSTANT_JS: float = 1.9872e-3       # kcal/(K*mol), Jacobson-Stockmayer term
JS_COEFFICIENT: float = 2.44
MAX_TABLE_LOOP: int = 30

PARAMETER_SET_ENV = "OLIGOFOLD_PARAMETER_SET"


def calc_dg(dh: float, ds: float, temp_k: float) -> float:
    """dG = dH - T * dS, with dS given in cal/(mol*K)."""
    return dh - temp_k * (ds / 1000.0)


def js_extrapolation(query_len: int, known_len: int, dg_known: float, temp_k: float) -> float:
    """Jacobson-Stockmayer extrapolation of a loop penalty beyond the table."""
    return dg_known + JS_COEFFICIENT * GAS_CONSTANT_JS * temp_k * math.log(query_len / known_len)


def rotate_key(key: str) -> str:
    """Rotate a "XY/ZW" context by 180 degrees: "WZ/YX"."""
    top, bottom = key.split("/")
    return bottom[::-1] + "/" + top[::-1]


def _with_rotations(table: Dict[str, Energy]) -> Dict[str, Energy]:
    full = dict(table)
    for key, value in table.items():
        full.setdefault(rotate_key(key), value)
    return full


def _loop_table(anchors_37: Dict[int, float], growth: float = 0.0) -> Dict[int, Energy]:
    """
    Expand dG37 loop penalties at anchor lengths into a 1..30 table.

    Lengths between anchors are interpolated linearly, lengths below the
    first anchor take its value and lengths past the last anchor grow
    logarithmically with the given Jacobson-Stockmayer coefficient. Loop
    penalties are entropic, so each entry is stored as (0, dS).
    """
    lengths = sorted(anchors_37)
    table: Dict[int, Energy] = {}
    for n in range(1, MAX_TABLE_LOOP + 1):
        if n in anchors_37:
            dg = anchors_37[n]
        elif n < lengths[0]:
            dg = anchors_37[lengths[0]]
        elif n > lengths[-1]:
            last = lengths[-1]
            dg = anchors_37[last] + growth * 1.987 * REFERENCE_TEMP_K * math.log(n / last) / 1000.0
        else:
            lo = max(k for k in lengths if k < n)
            hi = min(k for k in lengths if k > n)
            frac = (n - lo) / (hi - lo)
            dg = anchors_37[lo] + frac * (anchors_37[hi] - anchors_37[lo])
        table[n] = (0.0, round(-dg * 1000.0 / REFERENCE_TEMP_K, 2))
    return table


@dataclass(frozen=True)
class EnergyParameterSet:
    """
    One complete nearest-neighbor parameter set.

    multibranch holds (a, b, c, d): a multibranch loop costs
    a + b * helices + c * unpaired, or a + d when no base is unpaired.
    """

    name: str
    version: str
    nn: Dict[str, Energy]
    internal_mm: Dict[str, Energy] = field(default_factory=dict)
    terminal_mm: Dict[str, Energy] = field(default_factory=dict)
    hairpin_mm: Dict[str, Energy] = field(default_factory=dict)
    dangles: Dict[str, Energy] = field(default_factory=dict)
    tri_tetra_loops: Dict[str, Energy] = field(default_factory=dict)
    hairpin_loops: Dict[int, Energy] = field(default_factory=dict)
    bulge_loops: Dict[int, Energy] = field(default_factory=dict)
    internal_loops: Dict[int, Energy] = field(default_factory=dict)
    multibranch: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    duplex_init: Energy = (0.0, 0.0)
    terminal_at: Energy = (0.0, 0.0)
    symmetry: Energy = (0.0, 0.0)

    @property
    def cache_key(self) -> Tuple[str, str]:
        return (self.name, self.version)

    def stack(self, key: str) -> Optional[Energy]:
        return self.nn.get(key)

    def internal_mismatch(self, key: str) -> Optional[Energy]:
        return self.internal_mm.get(key)

    def terminal_mismatch(self, key: str) -> Optional[Energy]:
        return self.terminal_mm.get(key)

    def hairpin_mismatch(self, key: str) -> Optional[Energy]:
        """Hairpin-closing mismatch, falling back to the terminal mismatch table."""
        value = self.hairpin_mm.get(key)
        if value is None:
            value = self.terminal_mm.get(key)
        return value

    def dangle(self, key: str) -> Optional[Energy]:
        return self.dangles.get(key)

    def special_loop(self, loop_seq: str) -> Optional[Energy]:
        return self.tri_tetra_loops.get(loop_seq)


def loop_dg(table: Dict[int, Energy], length: int, temp_k: float) -> float:
    """Length penalty of a loop, extrapolated past the end of the table."""
    if length <= 0:
        raise ValueError(f"Loop length must be positive: {length}")
    if length in table:
        dh, ds = table[length]
        return calc_dg(dh, ds, temp_k)
    known = max(table)
    dh, ds = table[known]
    return js_extrapolation(length, known, calc_dg(dh, ds, temp_k), temp_k)


# =================================================================
#  SantaLucia & Hicks (2004)
# =================================================================

_SL04_NN: Dict[str, Energy] = {
    "AA/TT": (-7.6, -21.3),
    "AT/TA": (-7.2, -20.4),
    "TA/AT": (-7.2, -21.3),
    "CA/GT": (-8.5, -22.7),
    "GT/CA": (-8.4, -22.4),
    "CT/GA": (-7.8, -21.0),
    "GA/CT": (-8.2, -22.2),
    "CG/GC": (-10.6, -27.2),
    "GC/CG": (-9.8, -24.4),
    "GG/CC": (-8.0, -19.9),
}

# Single internal mismatches (Allawi & SantaLucia 1997-1998, Peyret 1999)
_SL04_INTERNAL_MM: Dict[str, Energy] = {
    # G.T
    "AG/TT": (1.0, 0.9), "AT/TG": (-2.5, -8.3), "CG/GT": (-4.1, -11.7),
    "CT/GG": (-2.8, -8.0), "GG/CT": (3.3, 10.4), "GG/TT": (5.8, 16.3),
    "GT/CG": (-4.4, -12.3), "GT/TG": (4.1, 9.5), "TG/AT": (-0.1, -1.7),
    "TG/GT": (-1.4, -6.2), "TT/AG": (-1.3, -5.3),
    # G.A
    "AA/TG": (-0.6, -2.3), "AG/TA": (-0.7, -2.3), "CA/GG": (-0.7, -2.3),
    "CG/GA": (-4.0, -13.2), "GA/CG": (-0.6, -1.0), "GG/CA": (0.5, 3.2),
    "TA/AG": (0.7, 0.7), "TG/AA": (3.0, 7.4),
    # C.T
    "AC/TT": (0.7, 0.2), "AT/TC": (-1.2, -6.2), "CC/GT": (-0.8, -4.5),
    "CT/GC": (-1.5, -6.1), "GC/CT": (2.3, 5.4), "GT/CC": (5.2, 13.5),
    "TC/AT": (1.2, 0.7), "TT/AC": (1.0, 0.7),
    # A.C
    "AA/TC": (2.3, 4.6), "AC/TA": (5.3, 14.6), "CA/GC": (1.9, 3.7),
    "CC/GA": (0.6, -0.6), "GA/CC": (5.2, 14.2), "GC/CA": (-0.7, -3.8),
    "TA/AC": (3.4, 8.0), "TC/AA": (7.6, 20.2),
    # A.A, C.C, G.G, T.T
    "AA/TA": (1.2, 1.7), "CA/GA": (-0.9, -4.2), "GA/CA": (-2.9, -9.8),
    "TA/AA": (4.7, 12.9), "AC/TC": (0.0, -4.4), "CC/GC": (-1.5, -7.2),
    "GC/CC": (3.6, 8.9), "TC/AC": (6.1, 16.4), "AG/TG": (-3.1, -9.5),
    "CG/GG": (-4.9, -15.3), "GG/CG": (-6.0, -15.8), "TG/AG": (1.6, 3.6),
    "AT/TT": (-2.7, -10.8), "CT/GT": (-5.0, -15.8), "GT/CT": (-2.2, -8.4),
    "TT/AT": (0.2, -1.5),
}

# Terminal mismatches (Bommarito 2000)
_SL04_TERMINAL_MM: Dict[str, Energy] = {
    "AA/TA": (-3.1, -7.8), "TA/AA": (-2.5, -6.3), "CA/GA": (-4.3, -10.7),
    "GA/CA": (-8.0, -22.5), "AC/TC": (-0.1, 0.5), "TC/AC": (-0.7, -1.3),
    "CC/GC": (-2.1, -5.1), "GC/CC": (-3.9, -10.6), "AG/TG": (-1.1, -2.1),
    "TG/AG": (-1.1, -2.7), "CG/GG": (-3.8, -9.5), "GG/CG": (-0.7, -19.2),
    "AT/TT": (-2.4, -6.5), "TT/AT": (-3.2, -8.9), "CT/GT": (-6.1, -16.9),
    "GT/CT": (-7.4, -21.2), "AA/TC": (-1.6, -4.0), "AC/TA": (-1.8, -3.8),
    "CA/GC": (-2.6, -5.9), "CC/GA": (-2.7, -6.0), "GA/CC": (-5.0, -13.8),
    "GC/CA": (-3.2, -7.1), "TA/AC": (-2.3, -5.9), "TC/AA": (-2.7, -7.0),
    "AC/TT": (-0.9, -1.7), "AT/TC": (-2.3, -6.3), "CC/GT": (-3.2, -8.0),
    "CT/GC": (-3.9, -10.6), "GC/CT": (-4.9, -13.5), "GT/CC": (-3.0, -7.8),
    "TC/AT": (-2.5, -6.3), "TT/AC": (-0.7, -1.2), "AA/TG": (-1.9, -4.4),
    "AG/TA": (-2.5, -5.9), "CA/GG": (-3.9, -9.6), "CG/GA": (-6.0, -15.5),
    "GA/CG": (-4.3, -11.1), "GG/CA": (-4.6, -11.4), "TA/AG": (-2.0, -4.7),
    "TG/AA": (-2.4, -5.8), "AG/TT": (-3.2, -8.7), "AT/TG": (-3.5, -9.4),
    "CG/GT": (-3.8, -9.0), "CT/GG": (-6.6, -18.7), "GG/CT": (-5.7, -15.9),
    "GT/CG": (-5.9, -16.1), "TG/AT": (-3.9, -10.5), "TT/AG": (-3.6, -9.8),
}

# Dangling ends (Bommarito 2000). "XY/.Z": X overhangs next to the pair Y-Z
# on the top strand; ".X/YZ": Y overhangs next to the pair X-Z on the bottom.
_SL04_DANGLES: Dict[str, Energy] = {
    "AA/.T": (0.2, 2.3), "AC/.G": (-6.3, -17.1), "AG/.C": (-3.7, -10.0),
    "AT/.A": (-2.9, -7.6), "CA/.T": (0.6, 3.3), "CC/.G": (-4.4, -12.6),
    "CG/.C": (-4.0, -11.9), "CT/.A": (-4.1, -13.0), "GA/.T": (-1.1, -1.6),
    "GC/.G": (-5.1, -14.0), "GG/.C": (-3.9, -10.9), "GT/.A": (-4.2, -15.0),
    "TA/.T": (-6.9, -20.0), "TC/.G": (-4.0, -10.9), "TG/.C": (-4.9, -13.8),
    "TT/.A": (-0.2, -0.5),
    ".A/AT": (-0.7, -0.8), ".C/AG": (-2.1, -3.9), ".G/AC": (-5.9, -16.5),
    ".T/AA": (-0.5, -1.1), ".A/CT": (4.4, 14.9), ".C/CG": (-0.2, -0.1),
    ".G/CC": (-2.6, -7.4), ".T/CA": (4.7, 14.2), ".A/GT": (-1.6, -3.6),
    ".C/GG": (-3.9, -11.2), ".G/GC": (-3.2, -10.4), ".T/GA": (-4.1, -13.1),
    ".A/TT": (2.9, 10.4), ".C/TG": (-4.4, -13.1), ".G/TC": (-5.2, -15.0),
    ".T/TA": (-3.8, -12.6),
}

# Hairpin triloop and tetraloop bonuses, keyed by the loop plus its closing pair
_SL04_TRI_TETRA_LOOPS: Dict[str, Energy] = {
    "AGAAT": (-1.5, 0.0), "AGCAT": (-1.5, 0.0), "AGGAT": (-1.5, 0.0),
    "AGTAT": (-1.5, 0.0), "CGAAG": (-2.0, 0.0), "CGCAG": (-2.0, 0.0),
    "CGGAG": (-2.0, 0.0), "CGTAG": (-2.0, 0.0), "GGAAC": (-2.0, 0.0),
    "GGCAC": (-2.0, 0.0), "GGGAC": (-2.0, 0.0), "GGTAC": (-2.0, 0.0),
    "TGAAA": (-1.5, 0.0), "TGCAA": (-1.5, 0.0), "TGGAA": (-1.5, 0.0),
    "TGTAA": (-1.5, 0.0),
    "AAAAAT": (0.5, 0.6), "AAAACT": (0.7, -1.6), "AAACAT": (1.0, -1.6),
    "ACTTGT": (0.0, -4.2), "AGAAAT": (-1.1, -1.6), "AGAGAT": (-1.1, -1.6),
    "AGATAT": (-1.5, -1.6), "AGCAAT": (-1.6, -1.6), "AGCGAT": (-1.1, -1.6),
    "AGCTTT": (0.2, -1.6), "AGGAAT": (-1.1, -1.6), "AGGGAT": (-1.1, -1.6),
    "AGTAAT": (-1.6, -1.6), "AGTGAT": (-1.1, -1.6), "ATTCGT": (-0.2, -1.6),
    "ATTTGT": (0.0, -1.6), "ATTTTT": (-0.5, -1.6), "CAAAAG": (0.5, 1.3),
    "CAAACG": (0.7, 0.0), "CAACAG": (1.0, 0.0), "CCTTGG": (0.0, -2.6),
    "CGAAAG": (-1.1, 0.0), "CGAGAG": (-1.1, 0.0), "CGATAG": (-1.5, 0.0),
    "CGCAAG": (-1.6, 0.0), "CGCGAG": (-1.1, 0.0), "CGCTTG": (0.2, 0.0),
    "CGGAAG": (-1.1, 0.0), "CGGGAG": (-1.0, 0.0), "CGTAAG": (-1.6, 0.0),
    "CGTGAG": (-1.1, 0.0), "CTTCGG": (-0.2, 0.0), "CTTTGG": (0.0, 0.0),
    "CTTTTG": (-0.5, 0.0), "GAAAAC": (0.5, 3.2), "GAAACC": (0.7, 0.0),
    "GAACAC": (1.0, 0.0), "GCTTGC": (0.0, -3.1), "GGAAAC": (-1.1, 0.0),
    "GGAGAC": (-1.1, 0.0), "GGATAC": (-1.6, 0.0), "GGCAAC": (-1.6, 0.0),
    "GGCGAC": (-1.1, 0.0), "GGGAAC": (-1.1, 0.0), "GGTAAC": (-1.6, 0.0),
    "GTTCGC": (-0.2, 0.0), "TAAAAA": (0.5, -0.3), "TGAAAA": (-1.1, -1.6),
    "TGCAAA": (-1.6, -1.6), "TGGAAA": (-1.1, -1.6), "TGTAAA": (-1.6, -1.6),
    "TTTCGA": (-0.2, -1.6),
}

# dG37 loop penalties (kcal/mol) at the published lengths
_SL04_HAIRPIN_37 = {3: 3.5, 4: 3.5, 5: 3.3, 6: 4.0, 7: 4.2, 8: 4.3, 9: 4.5, 10: 4.6,
                    12: 5.0, 14: 5.1, 16: 5.3, 18: 5.5, 20: 5.7, 25: 6.1, 30: 6.3}
_SL04_BULGE_37 = {1: 4.0, 2: 2.9, 3: 3.1, 4: 3.2, 5: 3.3, 6: 3.5, 7: 3.7, 8: 3.9, 9: 4.1,
                  10: 4.3, 12: 4.5, 14: 4.8, 16: 5.0, 18: 5.2, 20: 5.3, 25: 5.6, 30: 5.9}
_SL04_INTERNAL_37 = {3: 3.2, 4: 3.6, 5: 4.0, 6: 4.4, 7: 4.6, 8: 4.8, 9: 4.9, 10: 4.9,
                     12: 5.2, 14: 5.4, 16: 5.6, 18: 5.8, 20: 5.9, 25: 6.3, 30: 6.6}

SANTALUCIA_2004 = EnergyParameterSet(
    name="santalucia2004",
    version="2004.1",
    nn=_with_rotations(_SL04_NN),
    internal_mm=_with_rotations(_SL04_INTERNAL_MM),
    terminal_mm=_with_rotations(_SL04_TERMINAL_MM),
    dangles=_with_rotations(_SL04_DANGLES),
    tri_tetra_loops=dict(_SL04_TRI_TETRA_LOOPS),
    hairpin_loops=_loop_table(_SL04_HAIRPIN_37),
    bulge_loops=_loop_table(_SL04_BULGE_37),
    internal_loops=_loop_table(_SL04_INTERNAL_37),
    multibranch=(2.6, 0.2, 0.2, 2.0),
    duplex_init=(0.2, -5.7),
    terminal_at=(2.2, 6.9),
    symmetry=(0.0, -1.4),
)


# =================================================================
#  Breslauer et al. (1986)
# =================================================================

# Key: 5'->3' dinucleotide, value: (dH [kcal/mol], dS [cal/(mol*K)])
_BR86_NN_DINUCLEOTIDE: Dict[str, Energy] = {
    'AA': (-9.1, -24.0),   # AA/TT
    'AT': (-8.6, -23.9),   # AT/TA
    'TA': (-6.0, -16.9),   # TA/AT
    'CA': (-5.8, -12.9),   # CA/GT
    'GT': (-6.5, -17.3),   # GT/CA
    'CT': (-7.8, -20.8),   # CT/GA
    'GA': (-5.6, -13.5),   # GA/CT
    'CG': (-11.9, -27.8),  # CG/GC
    'GC': (-11.1, -26.7),  # GC/CG
    'GG': (-11.0, -26.6),  # GG/CC
}

_PAIR = {'A': 'T', 'T': 'A', 'G': 'C', 'C': 'G'}


def _dinucleotide_keys(table: Dict[str, Energy]) -> Dict[str, Energy]:
    return {dn + "/" + _PAIR[dn[0]] + _PAIR[dn[1]]: value for dn, value in table.items()}


# Loop penalties at 37 C, approximated from SantaLucia (1998) / Zuker (2003)
_BR86_HAIRPIN_37 = {3: 5.4, 4: 4.5, 5: 5.0, 6: 5.0, 7: 5.2, 8: 5.2, 9: 5.3, 10: 5.3}
_BR86_BULGE_37 = {1: 3.8, 2: 2.8, 3: 3.2, 4: 3.6, 5: 4.0}
_BR86_INTERNAL_37 = {2: 1.0, 3: 1.5, 4: 1.7, 5: 2.0, 6: 2.2}

BRESLAUER_1986 = EnergyParameterSet(
    name="breslauer1986",
    version="1986.1",
    nn=_with_rotations(_dinucleotide_keys(_BR86_NN_DINUCLEOTIDE)),
    hairpin_loops=_loop_table(_BR86_HAIRPIN_37, growth=1.75),
    bulge_loops=_loop_table(_BR86_BULGE_37, growth=1.75),
    internal_loops=_loop_table(_BR86_INTERNAL_37, growth=1.75),
    multibranch=(3.4, 0.0, 0.0, 0.0),
    duplex_init=(0.0, -10.8),
    symmetry=(0.0, -1.4),
)


# =================================================================
#  Parameter set selection
# =================================================================

PARAMETER_SETS: Dict[str, EnergyParameterSet] = {
    SANTALUCIA_2004.name: SANTALUCIA_2004,
    BRESLAUER_1986.name: BRESLAUER_1986,
}
DEFAULT_PARAMETER_SET = SANTALUCIA_2004.name

_selector_lock = threading.Lock()


def _initial_selection() -> str:
    requested = os.getenv(PARAMETER_SET_ENV)
    if not requested:
        return DEFAULT_PARAMETER_SET
    requested = requested.strip().lower()
    if requested not in PARAMETER_SETS:
        LOGGER.warning("%s=%r is not a known parameter set, using %s",
                       PARAMETER_SET_ENV, requested, DEFAULT_PARAMETER_SET)
        return DEFAULT_PARAMETER_SET
    return requested


_selected = _initial_selection()


def parameter_set_names() -> List[str]:
    return sorted(PARAMETER_SETS)


def set_parameter_set(name: str) -> EnergyParameterSet:
    """
    Select the process-wide parameter set used when no explicit set is passed.

    Affects only subsequent calls. Do not toggle while other threads are
    folding; pass ``params=`` explicitly instead.
    """
    global _selected
    key = name.strip().lower()
    if key not in PARAMETER_SETS:
        raise ValueError(f"Unknown parameter set {name!r}; expected one of {parameter_set_names()}")
    with _selector_lock:
        _selected = key
    LOGGER.debug("parameter set switched to %s", key)
    return PARAMETER_SETS[key]


def get_parameter_set(name: Optional[str] = None) -> EnergyParameterSet:
    """Return the named parameter set, or the currently selected one."""
    if name is None:
        with _selector_lock:
            return PARAMETER_SETS[_selected]
    key = name.strip().lower()
    if key not in PARAMETER_SETS:
        raise ValueError(f"Unknown parameter set {name!r}; expected one of {parameter_set_names()}")
    return PARAMETER_SETS[key]


def resolve(params: Optional[EnergyParameterSet]) -> EnergyParameterSet:
    return params if params is not None else get_parameter_set()
