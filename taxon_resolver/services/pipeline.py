# taxon_resolver/services/pipeline.py
from __future__ import annotations

import asyncio
import logging
import os
from collections import Counter
from functools import partial
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from ..clients import worms
from ..clients._http import make_client
from ..config import Settings
from ..schemas import OUTPUT_COLUMNS, NormalizedName, RawTaxonEntry, ResolvedTaxon, TaxonCodeRow
from .codes import assign_codes
from .duplicates import pick_candidate, to_resolved
from .matcher import FetchRecord, Lookup, enrich_accepted, match_names
from .normalize import normalize_name
from .patches import Patches, load_patches

log = logging.getLogger(__name__)

Entry = Union[str, RawTaxonEntry]


def _merge_manual(t: ResolvedTaxon, manual: ResolvedTaxon) -> ResolvedTaxon:
    """El registro manual reemplaza al automático; se conserva la traza de lo que había."""
    notes = [n for n in t.notes if n.startswith("corrected from")]
    notes += manual.notes
    if t.registry_id is not None and t.registry_id != manual.registry_id:
        notes.append(f"manual record replaces registry {t.registry_id}")
    else:
        notes.append("manual record")
    return manual.model_copy(update={
        "taxon_clean": t.taxon_clean,
        "taxon_name": t.taxon_name,
        "notes": notes,
        "resolution_source": "manual",
    })


def normalize_entries(entries: Iterable[Entry], patches: Patches) -> tuple[Dict[str, NormalizedName], Counter]:
    """nombre limpio → NormalizedName (primera variante vista) y frecuencia en el corpus."""
    norms: Dict[str, NormalizedName] = {}
    freq: Counter = Counter()
    dropped = 0
    for e in entries:
        raw = e.taxon if isinstance(e, RawTaxonEntry) else e
        n = normalize_name(raw, patches)
        if n is None:
            dropped += 1
            continue
        norms.setdefault(n.taxon_clean, n)
        freq[n.taxon_clean] += 1
    log.info("Normalización: %d nombres distintos, %d entradas descartadas", len(norms), dropped)
    return norms, freq


async def resolve_taxa(
    entries: Iterable[Entry],
    settings: Optional[Settings] = None,
    *,
    lookup: Optional[Lookup] = None,
    fetch_record: Optional[FetchRecord] = None,
    fuzzy_lookup: Optional[Lookup] = None,
    patches: Optional[Patches] = None,
) -> List[TaxonCodeRow]:
    """
    normalizar → consultar registro → resolver duplicados → aceptados de sinónimos
    → parches manuales → códigos. Una fila por nombre normalizado, orden estable.

    Sin lookup inyectado se usa WoRMS (exacto y, si settings.fuzzy, TAXAMATCH).
    Con lookup inyectado la búsqueda aproximada sólo corre si también se pasa fuzzy_lookup.
    """
    settings = settings or Settings()
    if patches is None:
        patches = load_patches(settings.patches_dir)

    norms, freq = normalize_entries(entries, patches)

    cli = None
    if lookup is None or fetch_record is None:
        cli = make_client(settings.timeout)
        if lookup is None:
            lookup = partial(worms.records_by_names, cli, rest=settings.worms_rest_url,
                             marine_only=settings.marine_only, retries=settings.retries)
            if fuzzy_lookup is None and settings.fuzzy:
                fuzzy_lookup = partial(worms.records_by_match_names, cli, rest=settings.worms_rest_url,
                                       marine_only=settings.marine_only, retries=settings.retries)
        if fetch_record is None:
            fetch_record = partial(worms.record_by_id, cli, rest=settings.worms_rest_url,
                                   retries=settings.retries)
    try:
        matches = await match_names(norms.keys(), lookup, settings.batch_size, settings.concurrency,
                                    fuzzy_lookup=fuzzy_lookup, fuzzy_batch_size=settings.fuzzy_batch_size)
        resolved: List[ResolvedTaxon] = []
        for key, norm in norms.items():
            cands = matches.get(key, [])
            resolved.append(to_resolved(norm, pick_candidate(cands), len(cands)))
        resolved = await enrich_accepted(resolved, fetch_record, settings.concurrency)
    finally:
        if cli is not None:
            await cli.aclose()

    merged: List[ResolvedTaxon] = []
    for t in resolved:
        manual = patches.manual_records.get(t.taxon_clean)
        if manual is not None:
            t = _merge_manual(t, manual)
        merged.append(t.model_copy(update={"frequency": freq[t.taxon_clean]}))

    codes = assign_codes(merged, patches.code_overrides)

    rows: List[TaxonCodeRow] = []
    for t in merged:
        a = codes[t.code_key]
        notes = list(t.notes) + ([a.note] if a.note else [])
        rows.append(TaxonCodeRow(
            taxon_code=a.code,
            taxon_name=t.taxon_name,
            registry_id=t.registry_id,
            rank=t.rank,
            status=t.status,
            accepted_name=t.accepted_name,
            accepted_registry_id=t.accepted_registry_id,
            notes="; ".join(notes) if notes else None,
            kingdom=t.kingdom,
            phylum=t.phylum,
            class_name=t.class_name,
            order_name=t.order_name,
            family=t.family,
            genus=t.genus,
            resolution_source=t.resolution_source,
            code_source=a.source,
            frequency=t.frequency,
        ))
    rows.sort(key=lambda r: (r.taxon_code, r.taxon_name))

    by_source = Counter(r.code_source for r in rows)
    log.info(
        "Resolución: %d filas, %d sin registro, %d códigos extendidos, %d manuales",
        len(rows), sum(1 for r in rows if r.registry_id is None),
        by_source.get("extended", 0), by_source.get("override", 0),
    )
    return rows


def run_resolver(entries: Iterable[Entry], settings: Optional[Settings] = None, **kwargs) -> List[TaxonCodeRow]:
    return asyncio.run(resolve_taxa(entries, settings, **kwargs))

# ---------- Salida tabular ----------

def to_dataframe(rows: Iterable[TaxonCodeRow]) -> pd.DataFrame:
    df = pd.DataFrame([r.model_dump() for r in rows], columns=OUTPUT_COLUMNS)
    # enteros anulables: evita "12345.0" en el CSV
    for c in ("registry_id", "accepted_registry_id", "frequency"):
        df[c] = df[c].astype("Int64")
    return df


def write_table(df: pd.DataFrame, path: str) -> str:
    """CSV o XLSX según la extensión."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".xlsx":
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="taxon_codes")
    else:
        df.to_csv(path, index=False)
    return path


__all__ = ["resolve_taxa", "run_resolver", "to_dataframe", "write_table", "normalize_entries"]
