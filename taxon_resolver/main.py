from __future__ import annotations

# ------------------------------------------------------------
# Importaciones estándar y de terceros
# ------------------------------------------------------------
import io, logging, os
from typing import Any, Dict, List

import pandas as pd
import uvicorn
from fastapi import FastAPI, Depends, Query, HTTPException, UploadFile, File, Form, Security, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security.api_key import APIKeyHeader

# ------------------------------------------------------------
# Importaciones internas del proyecto
# ------------------------------------------------------------
from .config import Settings
from .schemas import BulkRequest, TaxonCodeRow
from .clients._http import RegistryError
from .diagnostics import check_worms
from .ingestors.base import load_any_table, entries_from_frame
from .services.codes import CodeCollisionError
from .services.pipeline import resolve_taxa, to_dataframe

log = logging.getLogger(__name__)

TAGS_METADATA = [
    {"name": "Salud", "description": "Verificación del servicio y del registro (WoRMS)."},
    {"name": "Taxonomía", "description": "Resolución de nombres de campo y asignación de códigos."},
    {"name": "Archivos", "description": "Subir CSV/Excel y descargar la tabla de códigos."},
]

app = FastAPI(
    title="Resolvedor de códigos de taxón",
    description="Reconcilia nombres de campo con WoRMS y asigna códigos mnemónicos únicos.",
    version="0.3.0",
    openapi_tags=TAGS_METADATA,
)

# ------------------------------------------------------------
# Configuración y registro inyectables (los tests los reemplazan)
# ------------------------------------------------------------
_SETTINGS = Settings.from_env()

def get_settings() -> Settings:
    return _SETTINGS

def get_registry() -> Dict[str, Any]:
    """kwargs extra para resolve_taxa (lookup / fetch_record). Vacío → WoRMS."""
    return {}

# ------------------------------------------------------------
# Seguridad por API Key (opcional)
# ------------------------------------------------------------
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

async def require_key(
    api_key: str = Security(api_key_header),
    settings: Settings = Depends(get_settings),
):
    if not settings.api_key:
        return True
    if api_key == settings.api_key:
        return True
    raise HTTPException(status_code=401, detail="API key inválida")

# ------------------------------------------------------------
# Errores del pipeline → HTTP
# ------------------------------------------------------------
@app.exception_handler(RegistryError)
async def _registry_error(request: Request, exc: RegistryError):
    log.warning("Registro no disponible: %s", exc)
    return JSONResponse(status_code=502, content={"detail": f"El registro no respondió: {exc}"})

@app.exception_handler(CodeCollisionError)
async def _collision_error(request: Request, exc: CodeCollisionError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})

# ------------------------------------------------------------
# Salida tabular
# ------------------------------------------------------------
def _table_response(rows: List[TaxonCodeRow], out_format: str, safe_base: str):
    out_format = (out_format or "json").lower()
    if out_format == "json":
        return JSONResponse({"taxa": [r.model_dump() for r in rows]})

    df = to_dataframe(rows)
    if out_format == "csv":
        csv_buf = df.to_csv(index=False).encode("utf-8")
        headers = {"Content-Disposition": f'attachment; filename="{safe_base}_codigos.csv"'}
        return StreamingResponse(io.BytesIO(csv_buf), media_type="text/csv", headers=headers)

    if out_format == "xlsx":
        bio_out = io.BytesIO()
        with pd.ExcelWriter(bio_out, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="taxon_codes")
        bio_out.seek(0)
        headers = {"Content-Disposition": f'attachment; filename="{safe_base}_codigos.xlsx"'}
        return StreamingResponse(
            bio_out,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers=headers,
        )

    raise HTTPException(status_code=400, detail="Formato no soportado. Usa json, csv o xlsx.")

# ---------------- Salud ----------------
@app.get("/health", tags=["Salud"])
async def health():
    return {"status": "ok"}

@app.get("/debug/conectores", tags=["Salud"], dependencies=[Depends(require_key)])
async def debug_conectores(settings: Settings = Depends(get_settings)):
    return {"WoRMS": await check_worms(settings)}

# ---------------- Taxonomía ----------------
@app.get("/resolver", response_model=TaxonCodeRow, tags=["Taxonomía"], dependencies=[Depends(require_key)])
async def resolver(
    q: str = Query(..., description="Nombre tal como se anotó en campo"),
    settings: Settings = Depends(get_settings),
    registry: Dict[str, Any] = Depends(get_registry),
):
    rows = await resolve_taxa([q], settings, **registry)
    if not rows:
        raise HTTPException(status_code=404, detail="Nombre vacío o descartado por la lista de bloqueo.")
    return rows[0]

@app.post("/resolver/bulk", tags=["Archivos"], dependencies=[Depends(require_key)])
async def resolver_bulk(
    payload: BulkRequest,
    settings: Settings = Depends(get_settings),
    registry: Dict[str, Any] = Depends(get_registry),
):
    if not payload.names:
        raise HTTPException(status_code=400, detail="Debes enviar 'names' como lista no vacía.")
    rows = await resolve_taxa(payload.names, settings, **registry)
    return _table_response(rows, payload.format, "bulk")

# ---------------- Cargar archivo ----------------
@app.post("/resolver/archivo", tags=["Archivos"], dependencies=[Depends(require_key)])
async def resolver_archivo(
    file: UploadFile = File(...),
    output: str = Form("csv"),
    settings: Settings = Depends(get_settings),
    registry: Dict[str, Any] = Depends(get_registry),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Archivo vacío.")

    filename = (file.filename or "archivo").lower()
    ext = os.path.splitext(filename)[1]
    if ext not in (".csv", ".tsv", ".txt", ".xlsx"):
        raise HTTPException(status_code=400, detail="Formato no soportado. Usa .csv o .xlsx.")

    try:
        df = load_any_table(io.BytesIO(data), filename=filename)
        entries = entries_from_frame(df)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"No se pudo leer el archivo: {e}")

    if not entries:
        raise HTTPException(status_code=400, detail="No se encontraron nombres válidos.")

    rows = await resolve_taxa(entries, settings, **registry)
    safe_base = os.path.splitext(os.path.basename(filename))[0] or "salida"
    return _table_response(rows, output, safe_base)

# ---------------- Main ----------------
if __name__ == "__main__":
    logging.basicConfig(level=_SETTINGS.log_level, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    uvicorn.run("taxon_resolver.main:app", host="0.0.0.0", port=8000, reload=True)
