# taxon_resolver/services/patches.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

import pandas as pd

from ..schemas import ResolvedTaxon
from .normalize import clean_name, match_key, rank_from_form

log = logging.getLogger(__name__)

CORRECTIONS_FILE = "corrections.csv"
BLOCKLIST_FILE = "blocklist.csv"
MANUAL_RECORDS_FILE = "manual_records.csv"
CODE_OVERRIDES_FILE = "code_overrides.csv"


@dataclass
class Patches:
    """Tablas curadas a mano; se aplican después de la resolución automática y siempre ganan."""

    corrections: Dict[str, str] = field(default_factory=dict)
    blocklist: Set[str] = field(default_factory=set)
    manual_records: Dict[str, ResolvedTaxon] = field(default_factory=dict)
    code_overrides: Dict[str, str] = field(default_factory=dict)


# ---------- Lectores ----------

def _read_table(path: Path, required: Iterable[str]) -> pd.DataFrame:
    """CSV → DataFrame de strings. Archivo ausente → tabla vacía con las columnas requeridas."""
    required = list(required)
    if not path.exists():
        if log.isEnabledFor(logging.DEBUG):
            log.debug("Tabla de parches ausente: %s", path)
        return pd.DataFrame(columns=required)
    df = pd.read_csv(path, dtype=str, keep_default_na=False, comment="#")
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name}: faltan columnas {', '.join(missing)}")
    return df


def _int_or_none(v: str) -> Optional[int]:
    v = (v or "").strip()
    return int(float(v)) if v else None


def _opt(v: str) -> Optional[str]:
    v = (v or "").strip()
    return v or None


def load_corrections(path: Path) -> Dict[str, str]:
    df = _read_table(path, ("raw", "corrected"))
    out: Dict[str, str] = {}
    for raw, corrected in zip(df["raw"], df["corrected"]):
        k, v = clean_name(raw), clean_name(corrected)
        if k and v:
            out[k] = v
    return out


def load_blocklist(path: Path) -> Set[str]:
    df = _read_table(path, ("taxon",))
    return {n for n in (clean_name(t) for t in df["taxon"]) if n}


def load_manual_records(path: Path) -> Dict[str, ResolvedTaxon]:
    """
    Registros manuales (híbridos, taxones ausentes del registro).
    Clave: nombre limpio sin tildes, igual que NormalizedName.taxon_clean.
    """
    df = _read_table(path, ("taxon_name", "rank", "status", "accepted_name"))
    out: Dict[str, ResolvedTaxon] = {}
    for row in df.to_dict(orient="records"):
        name = clean_name(row.get("taxon_name"))
        if not name:
            continue
        notes = [n for n in [_opt(row.get("notes", ""))] if n]
        out[match_key(name)] = ResolvedTaxon(
            taxon_clean=match_key(name),
            taxon_name=name,
            rank=(_opt(row.get("rank", "")) or rank_from_form(name)).lower(),
            status=(_opt(row.get("status", "")) or "accepted").lower(),
            accepted_name=_opt(row.get("accepted_name", "")) or name,
            registry_id=_int_or_none(row.get("registry_id", "")),
            accepted_registry_id=_int_or_none(row.get("accepted_registry_id", "")),
            family=_opt(row.get("family", "")),
            genus=_opt(row.get("genus", "")),
            notes=notes,
            resolution_source="manual",
        )
    return out


def load_code_overrides(path: Path) -> Dict[str, str]:
    df = _read_table(path, ("accepted_name", "taxon_code"))
    out: Dict[str, str] = {}
    for name, code in zip(df["accepted_name"], df["taxon_code"]):
        name, code = (name or "").strip(), (code or "").strip()
        if name and code:
            out[name] = code
    return out


def load_patches(patches_dir: str | os.PathLike) -> Patches:
    d = Path(patches_dir)
    p = Patches(
        corrections=load_corrections(d / CORRECTIONS_FILE),
        blocklist=load_blocklist(d / BLOCKLIST_FILE),
        manual_records=load_manual_records(d / MANUAL_RECORDS_FILE),
        code_overrides=load_code_overrides(d / CODE_OVERRIDES_FILE),
    )
    log.info(
        "Parches cargados de %s: %d correcciones, %d bloqueados, %d registros manuales, %d códigos fijos",
        d, len(p.corrections), len(p.blocklist), len(p.manual_records), len(p.code_overrides),
    )
    return p


__all__ = ["Patches", "load_patches"]
