import pytest

from oligofold.duplex import (
    SpeciesDG,
    classify_dimer_strength,
    duplex_dg,
    find_dimers,
    format_dimer_alignment,
    hairpin_dg,
    heterodimer_dg,
    homodimer_dg,
    primer_pair_species,
    target_sites,
)
from oligofold.fold import dg
from oligofold.params import BRESLAUER_1986, SANTALUCIA_2004, calc_dg
from oligofold.sequence import reverse_complement

FWD = "ATGACCATGATTACGCCAAG"
REV = "GTTGTAAAACGACGGCCAGT"
PALINDROME = "GCGAATTCGC"


# ----- duplex_dg -----

def test_duplex_dg_gc_step() -> None:
    # init (0.2, -5.7) + CG/GC (-10.6, -27.2), no terminal A/T
    assert duplex_dg("CG", "CG", 37) == pytest.approx(calc_dg(-10.4, -32.9, 310.15))


def test_duplex_dg_terminal_at_penalty() -> None:
    # init + AT/TA (-7.2, -20.4) + two A/T ends (2 x (2.2, 6.9))
    assert duplex_dg("AT", "AT", 37) == pytest.approx(calc_dg(-2.6, -12.3, 310.15))


def test_duplex_dg_perfect_match_is_stable() -> None:
    assert duplex_dg(FWD, reverse_complement(FWD), 55) < -10.0


def test_duplex_dg_mismatch_is_less_stable() -> None:
    perfect = reverse_complement(FWD)
    mismatched = perfect[:10] + ("A" if perfect[10] != "A" else "C") + perfect[11:]
    assert duplex_dg(FWD, mismatched, 55) > duplex_dg(FWD, perfect, 55)


def test_duplex_dg_truncates_to_shorter() -> None:
    target = reverse_complement(FWD)
    assert duplex_dg(FWD, target + "GGGG") == pytest.approx(duplex_dg(FWD, target))


def test_duplex_dg_degenerate_input() -> None:
    assert duplex_dg("", "ACGT") == 0.0
    assert duplex_dg("ACNT", "ACGT") == 0.0


def test_duplex_dg_uses_parameter_set() -> None:
    target = reverse_complement(FWD)
    assert duplex_dg(FWD, target, params=SANTALUCIA_2004) != duplex_dg(FWD, target, params=BRESLAUER_1986)


# ----- hairpin_dg -----

def test_hairpin_dg_matches_fold() -> None:
    assert hairpin_dg("GGGGAAAACCCC", 37) == pytest.approx(dg("GGGGAAAACCCC", 37))
    assert hairpin_dg("GGGGAAAACCCC", 37) < 0


@pytest.mark.parametrize("seq", ["ACACACACAC", "ACGTA", "", "GGGGAANACCCC"])
def test_hairpin_dg_without_structure(seq: str) -> None:
    assert hairpin_dg(seq) == 0.0


@pytest.mark.parametrize("seq", [FWD, REV, PALINDROME])
def test_hairpin_dg_never_positive(seq: str) -> None:
    assert hairpin_dg(seq) <= 0.0


# ----- homodimer_dg -----

def test_homodimer_poly_a_is_zero() -> None:
    assert homodimer_dg("AAAAAAAAAA", 37) == 0.0


def test_homodimer_palindrome_is_stable() -> None:
    assert homodimer_dg(PALINDROME, 37) < -5.0


def test_homodimer_short_sequence_is_zero() -> None:
    assert homodimer_dg("GAATTC") <= 0.0
    assert homodimer_dg("GATC") == 0.0


def test_homodimer_includes_symmetry_correction() -> None:
    # same alignment, the self-dimer carries the extra symmetry entropy penalty
    assert homodimer_dg(PALINDROME, 37) > heterodimer_dg(PALINDROME, PALINDROME, 37)


# ----- heterodimer_dg -----

@pytest.mark.parametrize("a,b", [
    (FWD, REV),
    (FWD, reverse_complement(FWD)),
    ("GGGGCCCC", "AAAAGGGGCCCCTTTT"),
    ("ACGTACGTAC", "TTGCA"),
])
def test_heterodimer_is_symmetric(a: str, b: str) -> None:
    assert heterodimer_dg(a, b) == heterodimer_dg(b, a)


def test_heterodimer_of_complements_is_stable() -> None:
    assert heterodimer_dg(FWD, reverse_complement(FWD), 55) < -12.0


def test_heterodimer_short_input_is_zero() -> None:
    assert heterodimer_dg("ACG", "CGT") == 0.0
    assert heterodimer_dg("AAAAAAAA", "CCCCCCCC") == 0.0


# ----- find_dimers -----

def test_find_dimers_best_matches_homodimer_dg() -> None:
    results = find_dimers(PALINDROME, temperature=37)
    assert results
    assert results[0].delta_g == pytest.approx(homodimer_dg(PALINDROME, 37))
    assert results[0].offset == 0
    assert results[0].num_pairs == len(PALINDROME)
    assert results[0].involves_3prime
    assert [r.delta_g for r in results] == sorted(r.delta_g for r in results)


def test_find_dimers_pair_matches_heterodimer_dg() -> None:
    a, b = FWD, reverse_complement(FWD)
    results = find_dimers(a, b)
    assert results[0].delta_g == pytest.approx(heterodimer_dg(a, b))
    assert results[0].strength == "Strong"


def test_find_dimers_respects_limits() -> None:
    assert len(find_dimers(PALINDROME, max_results=2)) <= 2
    assert find_dimers("AAAAAAAAAA") == []
    assert find_dimers("ACGN") == []


def test_classify_dimer_strength() -> None:
    assert classify_dimer_strength(-7.0) == "Strong"
    assert classify_dimer_strength(-6.0) == "Strong"
    assert classify_dimer_strength(-5.0) == "Moderate"
    assert classify_dimer_strength(-2.5) == "Weak"
    assert classify_dimer_strength(-1.0) == "Very Weak"


def test_format_dimer_alignment() -> None:
    text = format_dimer_alignment("GAATTC", "GAATTC", 0, list(range(6)))
    assert text.splitlines() == [
        "5' GAATTC 3'",
        "   ||||||",
        "3' CTTAAG 5'",
    ]


def test_format_dimer_alignment_negative_offset() -> None:
    lines = format_dimer_alignment("ACGTAC", "GTAC", -2, [2, 3, 4, 5]).splitlines()
    assert lines[0] == "5' ACGTAC 3'"
    assert lines[2] == "  3' CATG 5'"


# ----- Species bundle -----

def test_target_sites_from_template() -> None:
    template = FWD + "ACGT" * 10 + reverse_complement(REV)
    fwd_site, rev_site = target_sites(FWD, REV, template)
    assert fwd_site == reverse_complement(FWD)
    assert rev_site == reverse_complement(REV)


def test_target_sites_without_template() -> None:
    assert target_sites(FWD, REV) == (reverse_complement(FWD), reverse_complement(REV))


def test_primer_pair_species() -> None:
    template = FWD + "ACGT" * 10 + reverse_complement(REV)
    species = primer_pair_species(FWD, REV, template, temperature=55, off_target=(-3.0, None))

    assert isinstance(species, SpeciesDG)
    assert species.fwd_target == pytest.approx(duplex_dg(FWD, reverse_complement(FWD), 55))
    assert species.rev_target == pytest.approx(duplex_dg(REV, reverse_complement(REV), 55))
    assert species.fwd_hairpin == hairpin_dg(FWD, 55)
    assert species.heterodimer == heterodimer_dg(FWD, REV, 55)
    assert species.fwd_off_target == -3.0
    assert species.rev_off_target is None
