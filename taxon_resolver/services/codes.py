# taxon_resolver/services/codes.py
from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from ..schemas import ResolvedTaxon
from .normalize import hybrid_parts, quitar_tildes

log = logging.getLogger(__name__)

CODE_RE = re.compile(r"^[A-Z]{2,}\.[A-Z]{2,}(?:x[A-Z]{2,})?$")

SPECIES_RANKS = {"species", "subspecies", "variety", "forma", "form", "subvariety", "subforma"}
GENUS_RANKS = {"genus", "subgenus"}

# longitudes por defecto (letras de género, letras de especie)
DEFAULT_LENGTHS = {
    "species": (2, 4),
    "hybrid": (2, 2),
    "genus": (4, 0),
    "family": (4, 0),
}
SUFFIX = {"genus": ".SP", "family": ".SPP"}


class CodeCollisionError(ValueError):
    """Colisión residual tras extender y aplicar los códigos manuales."""


class CodeAssignment(NamedTuple):
    code: str
    source: str                 # rule | extended | override
    note: Optional[str] = None


def is_valid_code(code: str) -> bool:
    return bool(CODE_RE.match(code or ""))


def _letters(word: str) -> str:
    return re.sub(r"[^A-Za-z]", "", quitar_tildes(word or "")).upper()


def code_parts(name: str, rank: Optional[str]) -> Tuple[str, Tuple[str, ...]]:
    """
    (esquema, palabras) para un nombre aceptado.
    Rangos bajo especie usan las dos primeras palabras; sobre familia, el esquema de familia.
    """
    hyb = hybrid_parts(name)
    if hyb:
        return "hybrid", tuple(_letters(p) for p in hyb)
    words = [w for w in (name or "").split() if _letters(w)]
    rank = (rank or "").lower()
    if rank in SPECIES_RANKS and len(words) >= 2:
        return "species", (_letters(words[0]), _letters(words[1]))
    if rank in SPECIES_RANKS or rank in GENUS_RANKS:
        return "genus", (_letters(words[0]) if words else "",)
    return "family", (_letters(words[0]) if words else "",)


def build_code(kind: str, parts: Sequence[str], g: int, s: int) -> str:
    if kind == "species":
        return f"{parts[0][:g]}.{parts[1][:s]}"
    if kind == "hybrid":
        return f"{parts[0][:g]}.{parts[1][:s]}x{parts[2][:s]}"
    return f"{parts[0][:g]}{SUFFIX[kind]}"


def base_code(name: str, rank: Optional[str]) -> str:
    """
    species: GG.SSSS   genus: GGGG.SP   family: FFFF.SPP
    híbrido 'Genus a x b': GG.AAxBB  (p. ej. AC.ACxNI)
    """
    kind, parts = code_parts(name, rank)
    g, s = DEFAULT_LENGTHS[kind]
    return build_code(kind, parts, g, s)


def _extensions(kind: str, parts: Sequence[str], genus_first: bool) -> Iterator[str]:
    """Códigos candidatos con más letras, en orden determinista."""
    g0, s0 = DEFAULT_LENGTHS[kind]
    base = build_code(kind, parts, g0, s0)
    max_dg = max(len(parts[0]) - g0, 0)
    max_ds = max(max((len(p) for p in parts[1:]), default=0) - s0, 0)
    seen = {base}
    # menos letras añadidas primero; a igual total, género o especie según genus_first
    for total in range(1, max_dg + max_ds + 1):
        steps = [(dg, total - dg) for dg in range(total + 1)
                 if dg <= max_dg and total - dg <= max_ds]
        steps.sort(key=lambda st: -st[0] if genus_first else st[0])
        for dg, ds in steps:
            code = build_code(kind, parts, g0 + dg, s0 + ds)
            if code not in seen:
                seen.add(code)
                yield code


def assign_codes(
    taxa: Sequence[ResolvedTaxon],
    overrides: Optional[Dict[str, str]] = None,
) -> Dict[str, CodeAssignment]:
    """
    Código único por taxón aceptado (clave: ResolvedTaxon.code_key).

    1) los códigos manuales ganan siempre y quedan reservados;
    2) en cada grupo que colisiona se queda con el código base el más
       frecuente en el corpus (empate: orden alfabético);
    3) los demás se alargan (género, luego especie, luego ambos) hasta ser únicos;
    4) una colisión que sobrevive a todo eso es un defecto de datos → CodeCollisionError.
    """
    overrides = overrides or {}

    freq: Dict[str, int] = defaultdict(int)
    rank_of: Dict[str, str] = {}
    for t in sorted(taxa, key=lambda t: t.taxon_name):
        freq[t.code_key] += t.frequency
        rank_of.setdefault(t.code_key, t.rank)
    keys = sorted(freq)

    out: Dict[str, CodeAssignment] = {}
    used: Dict[str, str] = {}

    # 1) manuales
    for key in keys:
        code = overrides.get(key)
        if not code:
            continue
        if code in used:
            raise CodeCollisionError(f"código manual {code} repetido: {used[code]!r} y {key!r}")
        if not is_valid_code(code):
            log.warning("Código manual con forma inesperada: %s → %s", key, code)
        used[code] = key
        out[key] = CodeAssignment(code, "override", "manual code override")

    # 2) código base y guardián por grupo
    groups: Dict[str, List[str]] = defaultdict(list)
    for key in keys:
        if key not in out:
            groups[base_code(key, rank_of[key])].append(key)

    pending: List[Tuple[str, str, str]] = []   # (código base, clave, guardián)
    for code in sorted(groups):
        members = sorted(groups[code], key=lambda k: (-freq[k], k))
        keeper = used.get(code)
        if keeper is None:
            keeper = members[0]
            used[code] = keeper
            out[keeper] = CodeAssignment(code, "rule")
            members = members[1:]
        pending.extend((code, k, keeper) for k in members)

    # 3) extensión
    residual: List[str] = []
    for code, key, keeper in pending:
        kind, parts = code_parts(key, rank_of[key])
        keeper_parts = code_parts(keeper, rank_of.get(keeper))[1]
        genus_first = parts[0] != keeper_parts[0]
        new = next((c for c in _extensions(kind, parts, genus_first) if c not in used), None)
        if new is None:
            residual.append(f"{key!r} ({code}, ya usado por {keeper!r})")
            continue
        used[new] = key
        out[key] = CodeAssignment(new, "extended", f"code extended from {code} (collides with {keeper})")
        if log.isEnabledFor(logging.DEBUG):
            log.debug("Código extendido %s → %s para %s", code, new, key)

    if residual:
        raise CodeCollisionError("colisiones sin resolver: " + "; ".join(residual))

    check_unique(out)
    return out


def check_unique(assignments: Dict[str, CodeAssignment]) -> None:
    """Ningún código puede apuntar a dos nombres aceptados distintos."""
    seen: Dict[str, str] = {}
    for key, a in assignments.items():
        other = seen.setdefault(a.code, key)
        if other != key:
            raise CodeCollisionError(f"{a.code} asignado a {other!r} y {key!r}")


__all__ = [
    "CodeAssignment", "CodeCollisionError", "assign_codes", "base_code",
    "build_code", "check_unique", "code_parts", "is_valid_code",
]
