# taxon_resolver/schemas.py
from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field

# ------------------ Entrada ------------------

class RawTaxonEntry(BaseModel):
    taxon: str
    source: Optional[str] = None
    collector: Optional[str] = None

# ------------------ Intermedios del pipeline ------------------

class NormalizedName(BaseModel):
    taxon: str                        # tal cual vino de campo
    taxon_name: str                   # limpio, para mostrar
    taxon_clean: str                  # clave de comparación (sin tildes)
    rank_hint: str = "species"        # species | genus | family (por la forma del nombre)
    is_hybrid: bool = False
    corrected_from: Optional[str] = None

class RegistryRecord(BaseModel):
    registry_id: Optional[int] = None
    scientific_name: Optional[str] = None
    rank: Optional[str] = None
    registry_status: Optional[str] = None
    accepted_name: Optional[str] = None
    accepted_registry_id: Optional[int] = None

    kingdom: Optional[str] = None
    phylum: Optional[str] = None
    class_name: Optional[str] = None
    order_name: Optional[str] = None
    family: Optional[str] = None
    genus: Optional[str] = None
    match_type: Optional[str] = None  # sólo en búsquedas aproximadas (exact, phonetic, near_1...)

class ResolvedTaxon(BaseModel):
    taxon_clean: str
    taxon_name: str
    rank: str
    registry_id: Optional[int] = None
    status: str = "unresolved"        # accepted | synonym | unresolved | hybrid
    accepted_name: Optional[str] = None
    accepted_registry_id: Optional[int] = None

    kingdom: Optional[str] = None
    phylum: Optional[str] = None
    class_name: Optional[str] = None
    order_name: Optional[str] = None
    family: Optional[str] = None
    genus: Optional[str] = None

    notes: List[str] = Field(default_factory=list)
    resolution_source: str = "none"   # registry | manual | none
    frequency: int = 1

    @property
    def code_key(self) -> str:
        """Nombre del que se deriva el código (aceptado o, si falta, el limpio)."""
        return self.accepted_name or self.taxon_name

# ------------------ Salida ------------------

OUTPUT_COLUMNS = [
    "taxon_code", "taxon_name", "registry_id", "rank", "status",
    "accepted_name", "accepted_registry_id", "notes",
    "kingdom", "phylum", "class_name", "order_name", "family", "genus",
    "resolution_source", "code_source", "frequency",
]

class TaxonCodeRow(BaseModel):
    taxon_code: str
    taxon_name: str
    registry_id: Optional[int] = None
    rank: str
    status: str
    accepted_name: Optional[str] = None
    accepted_registry_id: Optional[int] = None
    notes: Optional[str] = None

    kingdom: Optional[str] = None
    phylum: Optional[str] = None
    class_name: Optional[str] = None
    order_name: Optional[str] = None
    family: Optional[str] = None
    genus: Optional[str] = None

    resolution_source: str = "none"
    code_source: str = "rule"
    frequency: int = 1

    model_config = {"from_attributes": True}

# /resolver/bulk
class BulkRequest(BaseModel):
    names: List[str]
    format: str = "json"              # json | csv | xlsx

__all__ = [
    "RawTaxonEntry", "NormalizedName", "RegistryRecord", "ResolvedTaxon",
    "TaxonCodeRow", "BulkRequest", "OUTPUT_COLUMNS",
]
