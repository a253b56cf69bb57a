import pytest

from taxon_resolver.schemas import ResolvedTaxon
from taxon_resolver.services.codes import (
    CodeAssignment,
    CodeCollisionError,
    assign_codes,
    base_code,
    check_unique,
    is_valid_code,
)


def taxon(name, rank="species", freq=1, accepted=None):
    return ResolvedTaxon(taxon_clean=name, taxon_name=name, rank=rank,
                         accepted_name=accepted or name, frequency=freq)


@pytest.mark.parametrize("name,rank,code", [
    ("Acanthurus nigricans", "species", "AC.NIGR"),
    ("Naso lituratus", "species", "NA.LITU"),
    ("Chromis", "genus", "CHRO.SP"),
    ("Pomacentridae", "family", "POMA.SPP"),
    ("Labriformes", "order", "LABR.SPP"),
    ("Acanthurus achilles x nigricans", "species", "AC.ACxNI"),
    ("Chromis viridis viridis", "subspecies", "CH.VIRI"),
])
def test_base_code(name, rank, code):
    assert base_code(name, rank) == code
    assert is_valid_code(code)


def test_species_rank_with_single_word_uses_genus_scheme():
    assert base_code("Chromis", "species") == "CHRO.SP"


def test_collision_more_frequent_keeps_base():
    out = assign_codes([taxon("Apogon tristis", freq=3), taxon("Aplodactylus tristis")])
    assert out["Apogon tristis"] == CodeAssignment("AP.TRIS", "rule")
    assert out["Aplodactylus tristis"].code == "APL.TRIS"
    assert out["Aplodactylus tristis"].source == "extended"
    assert "collides with Apogon tristis" in out["Aplodactylus tristis"].note


def test_collision_tie_breaks_alphabetically():
    out = assign_codes([taxon("Apogon tristis"), taxon("Aplodactylus tristis")])
    assert out["Aplodactylus tristis"].code == "AP.TRIS"
    assert out["Apogon tristis"].code == "APO.TRIS"


def test_same_genus_extends_species_part():
    out = assign_codes([taxon("Chromis tristrum"), taxon("Chromis tristis")])
    assert out["Chromis tristis"].code == "CH.TRIS"
    assert out["Chromis tristrum"].code == "CH.TRIST"


def test_synonym_and_accepted_share_code():
    a = taxon("Chlorurus spilurus")
    s = ResolvedTaxon(taxon_clean="Chlorurus sordidus", taxon_name="Chlorurus sordidus",
                      rank="species", status="synonym", accepted_name="Chlorurus spilurus")
    out = assign_codes([a, s])
    assert list(out) == ["Chlorurus spilurus"]
    assert out["Chlorurus spilurus"].code == "CH.SPIL"


def test_override_wins():
    out = assign_codes([taxon("Cephalopholis urodeta")], {"Cephalopholis urodeta": "CE.URO"})
    assert out["Cephalopholis urodeta"] == CodeAssignment("CE.URO", "override", "manual code override")


def test_override_takes_base_code_of_another_name():
    out = assign_codes(
        [taxon("Chromis tristis", freq=9), taxon("Chromis tristrum")],
        {"Chromis tristrum": "CH.TRIS"},
    )
    assert out["Chromis tristrum"].code == "CH.TRIS"
    assert out["Chromis tristis"].code == "CH.TRIST"


def test_override_for_absent_name_is_ignored():
    out = assign_codes([taxon("Naso lituratus")], {"Naso unicornis": "NA.UNI"})
    assert set(out) == {"Naso lituratus"}


def test_duplicate_override_raises():
    with pytest.raises(CodeCollisionError):
        assign_codes([taxon("Naso lituratus"), taxon("Naso unicornis")],
                     {"Naso lituratus": "NA.X", "Naso unicornis": "NA.X"})


def test_residual_collision_raises_and_override_fixes_it():
    names = [taxon("Aa bb"), taxon("Aa bb-")]
    with pytest.raises(CodeCollisionError):
        assign_codes(names)
    out = assign_codes(names, {"Aa bb-": "AA.BBX"})
    assert out["Aa bb"].code == "AA.BB"
    assert out["Aa bb-"].code == "AA.BBX"


def test_many_names_get_unique_valid_codes():
    names = [
        "Acanthurus nigricans", "Acanthurus nigrofuscus", "Acanthurus nigricauda",
        "Acanthurus nigroris", "Acanthopagrus nigricans", "Acanthochromis nigrum",
        "Chromis", "Chromileptes", "Chrysiptera",
    ]
    taxa = [taxon(n, rank="genus" if " " not in n else "species") for n in names]
    out = assign_codes(taxa)
    codes = [a.code for a in out.values()]
    assert len(codes) == len(set(codes)) == len(names)
    assert all(is_valid_code(c) for c in codes)


def test_assignment_is_independent_of_input_order():
    names = ["Apogon tristis", "Aplodactylus tristis", "Chromis tristis", "Chromis tristrum"]
    a = assign_codes([taxon(n) for n in names])
    b = assign_codes([taxon(n) for n in reversed(names)])
    assert a == b


def test_check_unique():
    check_unique({"a": CodeAssignment("X.Y", "rule"), "b": CodeAssignment("X.Z", "rule")})
    with pytest.raises(CodeCollisionError):
        check_unique({"a": CodeAssignment("X.Y", "rule"), "b": CodeAssignment("X.Y", "rule")})
