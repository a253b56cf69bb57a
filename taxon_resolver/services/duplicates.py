# taxon_resolver/services/duplicates.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from ..schemas import NormalizedName, RegistryRecord, ResolvedTaxon

ACCEPTED = "accepted"


def _is_accepted(rec: RegistryRecord) -> bool:
    s = (rec.registry_status or "").strip().lower()
    return not s or s == ACCEPTED


def _is_self_accepted(rec: RegistryRecord) -> bool:
    return rec.registry_id is not None and rec.registry_id == rec.accepted_registry_id


def pick_candidate(records: Sequence[RegistryRecord]) -> Optional[RegistryRecord]:
    """
    Elige un único candidato:
      1) status accepted (o ausente) antes que cualquier otro status;
      2) el registro que es su propio aceptado (id == id aceptado);
      3) el primero en el orden de entrada.
    """
    if not records:
        return None
    # min() es estable: ante empate devuelve el primero
    return min(records, key=lambda r: (not _is_accepted(r), not _is_self_accepted(r)))


def resolve_duplicates(matches: Dict[str, List[RegistryRecord]]) -> Dict[str, Optional[RegistryRecord]]:
    """nombre → candidatos  ⇒  nombre → ganador (o None)."""
    return {name: pick_candidate(recs) for name, recs in matches.items()}


def to_resolved(norm: NormalizedName, rec: Optional[RegistryRecord], n_candidates: int = 0) -> ResolvedTaxon:
    """Traduce el ganador del registro a ResolvedTaxon (o 'unresolved' si no hubo match)."""
    notes: List[str] = []
    if norm.corrected_from:
        notes.append(f"corrected from '{norm.corrected_from}'")

    if rec is None:
        notes.append("no registry match")
        return ResolvedTaxon(
            taxon_clean=norm.taxon_clean,
            taxon_name=norm.taxon_name,
            rank=norm.rank_hint,
            status="hybrid" if norm.is_hybrid else "unresolved",
            notes=notes,
        )

    if n_candidates > 1:
        notes.append(f"{n_candidates} registry candidates; picked {rec.registry_id}")
    if rec.match_type and rec.match_type != "exact":
        notes.append(f"fuzzy match ({rec.match_type}): {rec.scientific_name}")

    accepted_id = rec.accepted_registry_id or rec.registry_id
    accepted_name = rec.accepted_name or rec.scientific_name or norm.taxon_name
    points_elsewhere = rec.registry_id is not None and accepted_id != rec.registry_id
    if norm.is_hybrid:
        status = "hybrid"
    elif (rec.registry_status or "").strip().lower() == ACCEPTED or not points_elsewhere:
        status = "accepted"
    else:
        status = "synonym"
        notes.append(f"synonym of {accepted_name} ({accepted_id})")

    return ResolvedTaxon(
        taxon_clean=norm.taxon_clean,
        taxon_name=norm.taxon_name,
        rank=rec.rank or norm.rank_hint,
        registry_id=rec.registry_id,
        status=status,
        accepted_name=accepted_name,
        accepted_registry_id=accepted_id,
        kingdom=rec.kingdom,
        phylum=rec.phylum,
        class_name=rec.class_name,
        order_name=rec.order_name,
        family=rec.family,
        genus=rec.genus,
        notes=notes,
        resolution_source="registry",
    )


__all__ = ["pick_candidate", "resolve_duplicates", "to_resolved"]
