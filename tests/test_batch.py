import threading

import pytest

from oligofold import duplex
from oligofold.batch import ThermoCache, evaluate_primer_pair, parallel_map, score_primer_pairs
from oligofold.equilibrium import calculate_equilibrium_efficiency
from oligofold.params import BRESLAUER_1986, SANTALUCIA_2004, set_parameter_set
from oligofold.sequence import reverse_complement

FWD = "ATGACCATGATTACGCCAAG"
REV = "GTTGTAAAACGACGGCCAGT"
TEMPLATE = FWD + "ACGT" * 10 + reverse_complement(REV)


# ----- ThermoCache -----

def test_hairpin_cache_hits_and_misses() -> None:
    cache = ThermoCache()
    first = cache.hairpin_dg(FWD, 55)
    second = cache.hairpin_dg(FWD.lower(), 55)
    assert first == second == duplex.hairpin_dg(FWD, 55)

    stats = cache.stats()
    assert stats["hairpin_misses"] == 1
    assert stats["hairpin_hits"] == 1
    assert stats["hairpin_size"] == 1


def test_heterodimer_cache_key_is_order_independent() -> None:
    cache = ThermoCache()
    assert cache.heterodimer_dg(FWD, REV) == cache.heterodimer_dg(REV, FWD)
    stats = cache.stats()
    assert stats["heterodimer_misses"] == 1
    assert stats["heterodimer_hits"] == 1


def test_cache_key_includes_temperature_and_parameter_set() -> None:
    cache = ThermoCache()
    cache.homodimer_dg(FWD, 55)
    cache.homodimer_dg(FWD, 60)
    cache.homodimer_dg(FWD, 55, params=BRESLAUER_1986)
    assert cache.stats()["homodimer_size"] == 3
    assert cache.stats()["homodimer_hits"] == 0


def test_cache_follows_selected_parameter_set() -> None:
    cache = ThermoCache()
    default = cache.homodimer_dg("GCGAATTCGC", 37)
    set_parameter_set("breslauer1986")
    switched = cache.homodimer_dg("GCGAATTCGC", 37)
    assert switched == duplex.homodimer_dg("GCGAATTCGC", 37, BRESLAUER_1986)
    assert default == duplex.homodimer_dg("GCGAATTCGC", 37, SANTALUCIA_2004)
    assert cache.stats()["homodimer_misses"] == 2


def test_cache_clear() -> None:
    cache = ThermoCache()
    cache.hairpin_dg(FWD)
    cache.homodimer_dg(FWD)
    cache.heterodimer_dg(FWD, REV)
    assert cache.stats()["total_size"] == 3

    cache.clear()
    stats = cache.stats()
    assert stats["total_size"] == 0
    assert stats["hairpin_misses"] == 0


def test_cache_is_thread_safe() -> None:
    cache = ThermoCache()
    errors = []

    def worker() -> None:
        try:
            for _ in range(20):
                cache.homodimer_dg(FWD)
                cache.heterodimer_dg(FWD, REV)
        except Exception as exc:  # pragma: no cover
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    stats = cache.stats()
    assert stats["homodimer_hits"] + stats["homodimer_misses"] == 80
    assert stats["homodimer_size"] == 1


def test_cached_species_match_direct_species() -> None:
    cache = ThermoCache()
    cached = cache.primer_pair_species(FWD, REV, TEMPLATE, 55)
    direct = duplex.primer_pair_species(FWD, REV, TEMPLATE, 55)
    assert cached == direct


# ----- parallel_map -----

def test_parallel_map_preserves_order() -> None:
    items = list(range(50))
    assert parallel_map(lambda x: x * x, items, max_workers=4) == [x * x for x in items]


def test_parallel_map_inline() -> None:
    assert parallel_map(str, [1, 2, 3], max_workers=1) == ["1", "2", "3"]
    assert parallel_map(str, []) == []


def test_parallel_map_processes() -> None:
    seqs = ["GGGGAAAACCCC", "ACACACACAC", "GCGAATTCGC"]
    expected = [duplex.hairpin_dg(s) for s in seqs]
    assert parallel_map(duplex.hairpin_dg, seqs, max_workers=2, processes=True) == expected


# ----- Pair scoring -----

def test_evaluate_primer_pair_with_and_without_cache() -> None:
    direct = evaluate_primer_pair(FWD, REV, TEMPLATE)
    cached = evaluate_primer_pair(FWD, REV, TEMPLATE, cache=ThermoCache())
    assert cached.efficiency == direct.efficiency
    assert 0.0 <= direct.efficiency <= 1.0
    assert direct.species.fwd_target < 0


def test_score_primer_pairs_matches_single_evaluation() -> None:
    pairs = [(FWD, REV), (REV, FWD), (FWD, FWD)]
    cache = ThermoCache()
    results = score_primer_pairs(pairs, TEMPLATE, cache=cache, max_workers=3)
    assert len(results) == 3
    for (fwd, rev), result in zip(pairs, results):
        assert result.efficiency == pytest.approx(evaluate_primer_pair(fwd, rev, TEMPLATE).efficiency)
    assert cache.stats()["hairpin_hits"] > 0


def test_evaluate_primer_pair_forwards_partner_concentration() -> None:
    species = duplex.primer_pair_species(FWD, REV, TEMPLATE, 55)
    dilute = evaluate_primer_pair(FWD, REV, TEMPLATE, partner_conc=1e-8)
    crowded = evaluate_primer_pair(FWD, REV, TEMPLATE)

    expected = calculate_equilibrium_efficiency(species, partner_conc=1e-8)
    assert dilute.efficiency == pytest.approx(expected.efficiency)
    assert dilute.losses["fwd"]["heterodimer"] < crowded.losses["fwd"]["heterodimer"]
    assert dilute.efficiency >= crowded.efficiency
