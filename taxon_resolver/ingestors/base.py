# taxon_resolver/ingestors/base.py
from __future__ import annotations
import io
import logging
import os
from typing import Iterable, List, Optional, Union
from urllib.parse import urlparse, unquote

import pandas as pd
from sqlalchemy import delete
from sqlalchemy.orm import Session

from ..models import TaxonCodeRecord
from ..schemas import RawTaxonEntry, TaxonCodeRow

log = logging.getLogger(__name__)

# Cabeceras aceptadas para la columna de nombres
NAME_COLUMNS = ("taxon", "taxon_name", "scientific_name", "scientificname", "species", "nombre_cientifico", "nombre")
SOURCE_COLUMNS = ("source", "expedition", "exp_id")
COLLECTOR_COLUMNS = ("collector", "diver", "observer")

# ---------- Paths ----------

def resolve_local_path(url_or_path: str) -> str:
    """Acepta file:///ruta/archivo.csv o una ruta normal."""
    s = url_or_path.strip()
    if s.lower().startswith("file://"):
        return unquote(urlparse(s).path or "")
    return s

# ---------- Lectores ----------

def load_any_table(src: Union[str, io.BytesIO], filename: Optional[str] = None) -> pd.DataFrame:
    """
    Lee CSV/TSV/XLSX desde una ruta o un buffer (se usa `filename` para la extensión).
    - CSV: separador por la cabecera; UTF-8 y si falla latin-1
    - Excel: toma la primera hoja
    """
    name = filename or (src if isinstance(src, str) else "")
    if isinstance(src, str):
        src = resolve_local_path(src)
    ext = os.path.splitext(str(name))[1].lower()

    if ext == ".xlsx":
        return pd.read_excel(src, engine="openpyxl", dtype=str)
    if ext == ".xls":
        raise ValueError("Formato .xls no soportado; guarda el archivo como .xlsx o .csv.")

    if isinstance(src, str):
        with open(src, "rb") as fh:
            data = fh.read()
    else:
        data = src.getvalue()
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")

    # separador por la cabecera: , ; o tab (sin separador, una sola columna → coma)
    header = text.splitlines()[0] if text else ""
    sep = max((",", ";", "\t"), key=header.count) if header else ","
    return pd.read_csv(io.StringIO(text), sep=sep, dtype=str, keep_default_na=False)

def _pick(cols: Iterable[str], wanted: Iterable[str]) -> Optional[str]:
    norm = {str(c).replace("\ufeff", "").strip().lower(): c for c in cols}
    return next((norm[w] for w in wanted if w in norm), None)

def find_name_column(df: pd.DataFrame) -> str:
    col = _pick(df.columns, NAME_COLUMNS)
    if col is None and len(df.columns) == 1:
        col = df.columns[0]
    if col is None:
        raise ValueError(
            "No encuentro la columna con nombres. Usa 'taxon' (recomendado) o "
            + ", ".join(f"'{c}'" for c in NAME_COLUMNS[1:]) + "."
        )
    return col

def _cell(v) -> Optional[str]:
    if v is None or pd.isna(v):
        return None
    s = str(v).strip()
    return s or None

def entries_from_frame(df: pd.DataFrame) -> List[RawTaxonEntry]:
    """Una RawTaxonEntry por fila con nombre no vacío (el orden se conserva)."""
    name_col = find_name_column(df)
    src_col = _pick(df.columns, SOURCE_COLUMNS)
    col_col = _pick(df.columns, COLLECTOR_COLUMNS)

    out: List[RawTaxonEntry] = []
    for row in df.to_dict(orient="records"):
        taxon = _cell(row.get(name_col))
        if not taxon:
            continue
        out.append(RawTaxonEntry(
            taxon=taxon,
            source=_cell(row.get(src_col)) if src_col else None,
            collector=_cell(row.get(col_col)) if col_col else None,
        ))
    return out

def read_entries(path: str) -> List[RawTaxonEntry]:
    df = load_any_table(path)
    entries = entries_from_frame(df)
    log.info("Leídas %d entradas de %s", len(entries), path)
    return entries

# ---------- Persistencia (se reescribe la tabla completa por corrida) ----------

def persist_rows(db: Session, rows: Iterable[TaxonCodeRow]) -> int:
    rows = list(rows)
    try:
        db.execute(delete(TaxonCodeRecord))
        db.add_all([TaxonCodeRecord(**r.model_dump()) for r in rows])
        db.commit()
    except Exception:
        db.rollback()
        log.exception("No se pudo guardar la tabla taxon_code (%d filas)", len(rows))
        raise
    return len(rows)
