# taxon_resolver/services/matcher.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from ..schemas import RegistryRecord, ResolvedTaxon

log = logging.getLogger(__name__)

Lookup = Callable[[List[str]], Awaitable[List[List[RegistryRecord]]]]
FetchRecord = Callable[[int], Awaitable[Optional[RegistryRecord]]]


def chunked(names: Sequence[str], size: int) -> List[List[str]]:
    return [list(names[i:i + size]) for i in range(0, len(names), size)]


async def _lookup_batches(
    names: List[str],
    lookup: Lookup,
    batch_size: int,
    sem: asyncio.Semaphore,
) -> Dict[str, List[RegistryRecord]]:
    batches = chunked(names, batch_size)

    async def _one(batch: List[str]) -> List[List[RegistryRecord]]:
        async with sem:
            res = await lookup(batch)
        if len(res) != len(batch):
            raise ValueError(f"el registro devolvió {len(res)} resultados para {len(batch)} nombres")
        return res

    results = await asyncio.gather(*(_one(b) for b in batches))

    out: Dict[str, List[RegistryRecord]] = {}
    for batch, res in zip(batches, results):
        for name, recs in zip(batch, res):
            out[name] = list(recs or [])
    return out


async def match_names(
    names: Iterable[str],
    lookup: Lookup,
    batch_size: int = 100,
    concurrency: int = 4,
    fuzzy_lookup: Optional[Lookup] = None,
    fuzzy_batch_size: int = 50,
) -> Dict[str, List[RegistryRecord]]:
    """
    Consulta el registro por lotes (límite de tamaño del servicio) con
    concurrencia acotada. Los lotes son independientes: se concatenan en orden.

    Los nombres sin coincidencia exacta pasan, si hay fuzzy_lookup, por una
    segunda consulta aproximada; sus registros quedan con match_type.
    Un nombre sin candidatos en ninguna de las dos queda con lista vacía.
    """
    unique = list(dict.fromkeys(n for n in names if n))
    sem = asyncio.Semaphore(concurrency)
    out = await _lookup_batches(unique, lookup, batch_size, sem)

    missing = [n for n in unique if not out[n]]
    fuzzy_hits = 0
    if fuzzy_lookup is not None and missing:
        fz = await _lookup_batches(missing, fuzzy_lookup, fuzzy_batch_size, sem)
        for name, recs in fz.items():
            if not recs:
                continue
            fuzzy_hits += 1
            out[name] = [r if r.match_type else r.model_copy(update={"match_type": "fuzzy"}) for r in recs]
            if log.isEnabledFor(logging.DEBUG):
                log.debug("Coincidencia aproximada %r → %s", name, [r.scientific_name for r in recs])

    log.info(
        "Registro: %d nombres en %d lotes, %d sin coincidencia exacta, %d resueltos por aproximación",
        len(unique), len(chunked(unique, batch_size)), len(missing), fuzzy_hits,
    )
    return out


async def enrich_accepted(
    taxa: List[ResolvedTaxon],
    fetch_record: FetchRecord,
    concurrency: int = 4,
) -> List[ResolvedTaxon]:
    """
    Para sinónimos trae la ficha del aceptado: rango y jerarquía
    deben ser los del taxón válido, no los del nombre antiguo.
    """
    ids = sorted({t.accepted_registry_id for t in taxa
                  if t.status == "synonym" and t.accepted_registry_id})
    if not ids:
        return taxa
    sem = asyncio.Semaphore(concurrency)

    async def _one(aid: int) -> Optional[RegistryRecord]:
        async with sem:
            return await fetch_record(aid)

    recs = await asyncio.gather(*(_one(i) for i in ids))
    by_id = {aid: rec for aid, rec in zip(ids, recs) if rec is not None}

    out: List[ResolvedTaxon] = []
    for t in taxa:
        acc = by_id.get(t.accepted_registry_id) if t.status == "synonym" else None
        if acc is None:
            out.append(t)
            continue
        out.append(t.model_copy(update={
            "rank": acc.rank or t.rank,
            "accepted_name": acc.scientific_name or t.accepted_name,
            "kingdom": acc.kingdom or t.kingdom,
            "phylum": acc.phylum or t.phylum,
            "class_name": acc.class_name or t.class_name,
            "order_name": acc.order_name or t.order_name,
            "family": acc.family or t.family,
            "genus": acc.genus or t.genus,
        }))
    if log.isEnabledFor(logging.DEBUG):
        log.debug("Aceptados consultados para %d sinónimos", len(by_id))
    return out


__all__ = ["match_names", "enrich_accepted", "chunked"]
