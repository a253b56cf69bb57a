# taxon_resolver/clients/worms.py
from __future__ import annotations

from typing import Any, List, Optional, Sequence

import httpx

from ..schemas import RegistryRecord
from ._http import fetch_json

REST = "https://www.marinespecies.org/rest"

# WoRMS → nuestros nombres de columna
MAP_WRMS = {
    "kingdom": "kingdom", "phylum": "phylum", "class": "class_name",
    "order": "order_name", "family": "family", "genus": "genus",
}

def _as_int(v: Any) -> Optional[int]:
    try:
        return int(v) if v not in (None, "") else None
    except (TypeError, ValueError):
        return None

def record_from_worms(item: dict) -> RegistryRecord:
    """
    Mapea un AphiaRecord a RegistryRecord, tolerando variaciones de clave
    como 'Class'/'Order'.
    """
    src = {(k.lower() if isinstance(k, str) else k): v for k, v in (item or {}).items()}
    lineage = {dst: src.get(k) or None for k, dst in MAP_WRMS.items()}
    rank = src.get("rank")
    return RegistryRecord(
        registry_id=_as_int(src.get("aphiaid")),
        scientific_name=src.get("scientificname"),
        rank=rank.strip().lower() if isinstance(rank, str) and rank.strip() else None,
        registry_status=src.get("status") or None,
        accepted_name=src.get("valid_name") or None,
        accepted_registry_id=_as_int(src.get("valid_aphiaid")),
        match_type=src.get("match_type") or None,
        **lineage,
    )

# ----------------------------- Endpoints -----------------------------
async def _records_batch(
    cli: httpx.AsyncClient,
    url: str,
    names: Sequence[str],
    extra: List[tuple],
    retries: int,
) -> List[List[RegistryRecord]]:
    """
    GET por lote con scientificnames[]; respuesta alineada con `names`.
    Sólo 204 significa "sin datos": cualquier otro 4xx es un fallo del lote.
    """
    if not names:
        return []
    params = [("scientificnames[]", n) for n in names] + extra
    data = await fetch_json(cli, url, params=params, retries=retries, strict=True)

    out: List[List[RegistryRecord]] = [[] for _ in names]
    if not isinstance(data, list):
        return out
    for i, group in enumerate(data[: len(names)]):
        if isinstance(group, list):
            out[i] = [record_from_worms(it) for it in group if isinstance(it, dict)]
    return out

async def records_by_names(
    cli: httpx.AsyncClient,
    names: Sequence[str],
    *,
    rest: str = REST,
    marine_only: bool = False,
    retries: int = 2,
) -> List[List[RegistryRecord]]:
    """Coincidencia exacta por lote: /AphiaRecordsByNames (lista vacía si no hubo match)."""
    extra = [("like", "false"), ("marine_only", "true" if marine_only else "false")]
    return await _records_batch(cli, f"{rest}/AphiaRecordsByNames", names, extra, retries)

async def records_by_match_names(
    cli: httpx.AsyncClient,
    names: Sequence[str],
    *,
    rest: str = REST,
    marine_only: bool = False,
    retries: int = 2,
) -> List[List[RegistryRecord]]:
    """
    Coincidencia aproximada (TAXAMATCH) por lote: /AphiaRecordsByMatchNames.
    WoRMS acepta hasta 50 nombres por llamada; cada registro trae match_type.
    """
    extra = [("marine_only", "true" if marine_only else "false")]
    return await _records_batch(cli, f"{rest}/AphiaRecordsByMatchNames", names, extra, retries)

async def record_by_id(
    cli: httpx.AsyncClient,
    aphia_id: int,
    *,
    rest: str = REST,
    retries: int = 2,
) -> Optional[RegistryRecord]:
    """Ficha del taxón: /AphiaRecordByAphiaID/{id}."""
    if not aphia_id:
        return None
    rec = await fetch_json(cli, f"{rest}/AphiaRecordByAphiaID/{aphia_id}", retries=retries)
    if not isinstance(rec, dict):
        return None
    return record_from_worms(rec)

__all__ = ["records_by_names", "records_by_match_names", "record_by_id", "record_from_worms"]
