import pytest

from taxon_resolver.config import DEFAULT_PATCHES_DIR
from taxon_resolver.services.patches import load_patches


def write(path, text):
    path.write_text(text, encoding="utf-8")


def test_missing_files_give_empty_patches(tmp_path):
    p = load_patches(tmp_path)
    assert p.corrections == {} and p.blocklist == set()
    assert p.manual_records == {} and p.code_overrides == {}


def test_tables_are_cleaned_on_load(tmp_path):
    write(tmp_path / "corrections.csv", "raw,corrected\n# comentario\nnaso  literatus,Naso lituratus\n")
    write(tmp_path / "blocklist.csv", "taxon,reason\nUNKNOWN,no id\n")
    write(tmp_path / "code_overrides.csv", "accepted_name,taxon_code\nCephalopholis urodeta,CE.URO\n")
    write(tmp_path / "manual_records.csv",
          "taxon_name,rank,status,accepted_name,registry_id,family\n"
          "Acanthurus achilles × nigricans,,hybrid,,,Acanthuridae\n"
          "Trimma yanoi,species,accepted,,1234,Gobiidae\n")

    p = load_patches(tmp_path)

    assert p.corrections == {"Naso literatus": "Naso lituratus"}
    assert p.blocklist == {"Unknown"}
    assert p.code_overrides == {"Cephalopholis urodeta": "CE.URO"}

    hyb = p.manual_records["Acanthurus achilles x nigricans"]
    assert hyb.status == "hybrid"
    assert hyb.rank == "species"
    assert hyb.accepted_name == "Acanthurus achilles x nigricans"
    assert hyb.resolution_source == "manual"
    assert hyb.registry_id is None

    nov = p.manual_records["Trimma yanoi"]
    assert nov.registry_id == 1234
    assert nov.family == "Gobiidae"


def test_missing_column_is_an_error(tmp_path):
    write(tmp_path / "code_overrides.csv", "name,code\nNaso lituratus,NA.LIT\n")
    with pytest.raises(ValueError):
        load_patches(tmp_path)


def test_bundled_tables_load():
    p = load_patches(DEFAULT_PATCHES_DIR)
    assert p.corrections["Acanthurus achilis"] == "Acanthurus achilles"
    assert "Unknown" in p.blocklist
    assert p.manual_records["Acanthurus achilles x nigricans"].status == "hybrid"
    assert p.code_overrides["Cephalopholis urodeta"] == "CE.URO"
