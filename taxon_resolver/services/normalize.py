# taxon_resolver/services/normalize.py
from __future__ import annotations

import logging
import re
import unicodedata
from typing import TYPE_CHECKING, Optional

from ..schemas import NormalizedName

if TYPE_CHECKING:
    from .patches import Patches

log = logging.getLogger(__name__)

# "sp.", "spp.", "sp", "spp", con número de morfoespecie opcional ("sp. 1", "sp.A", "sp1", "spp2")
_MARKER = re.compile(
    r"\s+spp?\.?(?:\s+[0-9A-Za-z]{1,3}|[0-9][0-9A-Za-z]{0,2}|(?<=\.)[0-9A-Za-z]{1,3})?$", re.IGNORECASE
)
_PARENS = re.compile(r"\s*\([^)]*\)")
_HYBRID = re.compile(r"^([A-Z][a-z-]+) ([a-z-]+) x ([a-z-]+)$")
_FAMILY_SUFFIX = ("idae", "aceae")

# --------------------- Utilidades de normalización ---------------------
def quitar_tildes(s: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFKD", s) if not unicodedata.combining(c))

def clean_name(q: Optional[str]) -> str:
    """
    - elimina grupos entre paréntesis (autores, subgénero)
    - normaliza el signo de híbrido × → x
    - colapsa espacios
    - Género Capitalizado; resto minúsculas
    - elimina marcadores informales "sp." / "spp."
    """
    q = (q or "").strip()
    q = q.replace("×", " x ")
    q = _PARENS.sub("", q)
    q = re.sub(r"\s+", " ", q).strip()
    if not q:
        return q
    q = _MARKER.sub("", q)
    partes = q.split(" ")
    partes = [partes[0].capitalize()] + [p.lower() for p in partes[1:]]
    return " ".join(partes)

def match_key(name: str) -> str:
    """Clave de comparación: nombre limpio sin tildes."""
    return quitar_tildes(name)

def is_hybrid(name: str) -> bool:
    return bool(_HYBRID.match(name or ""))

def hybrid_parts(name: str) -> Optional[tuple[str, str, str]]:
    m = _HYBRID.match(name or "")
    return (m.group(1), m.group(2), m.group(3)) if m else None

def rank_from_form(name: str) -> str:
    """Rango inferido sólo por la forma del nombre (sin consultar el registro)."""
    words = name.split()
    if len(words) >= 2:
        return "species"
    if words and words[0].lower().endswith(_FAMILY_SUFFIX):
        return "family"
    return "genus"

def normalize_name(raw: Optional[str], patches: "Patches | None" = None) -> Optional[NormalizedName]:
    """
    Nombre de campo → NormalizedName, o None si está vacío o en la lista de bloqueo.
    La tabla de correcciones se aplica sobre el nombre ya limpio.
    """
    taxon = re.sub(r"\s+", " ", (raw or "")).strip()
    name = clean_name(taxon)
    if not name:
        return None

    corrected_from = None
    if patches is not None:
        fixed = patches.corrections.get(name)
        if name in patches.blocklist or fixed in patches.blocklist:
            if log.isEnabledFor(logging.DEBUG):
                log.debug("Nombre bloqueado descartado: %r", taxon)
            return None
        if fixed and fixed != name:
            corrected_from = name
            name = fixed

    return NormalizedName(
        taxon=taxon,
        taxon_name=name,
        taxon_clean=match_key(name),
        rank_hint=rank_from_form(name),
        is_hybrid=is_hybrid(name),
        corrected_from=corrected_from,
    )

__all__ = ["clean_name", "match_key", "normalize_name", "quitar_tildes", "is_hybrid", "hybrid_parts"]
