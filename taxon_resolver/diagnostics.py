from __future__ import annotations

import time
import httpx
from typing import Optional, Dict, Any

from .config import Settings

TIMEOUT = 10.0
DEFAULT_HEADERS = {
    "User-Agent": "taxon-resolver/0.3 (+https://github.com/pristine-seas)",
    "Accept": "application/json",
}

def _safe_text(obj: Any) -> str:
    try:
        s = str(obj)
    except UnicodeError:
        s = repr(obj)
    return s.encode("utf-8", errors="replace").decode("utf-8")

async def _ping(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    t0 = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT, headers=DEFAULT_HEADERS,
                                     follow_redirects=True, transport=transport) as client:
            r = await client.get(url, params=params or {})
            elapsed = round(time.perf_counter() - t0, 3)
            if r.status_code < 400:
                return {"status": "OK", "http": r.status_code, "tiempo_seg": elapsed}
            return {"status": "FALLA", "http": r.status_code, "tiempo_seg": elapsed,
                    "body": _safe_text(r.text)[:300]}
    except httpx.HTTPError as e:
        elapsed = round(time.perf_counter() - t0, 3)
        detalle = f"{e.__class__.__name__}: {_safe_text(e)}"
        return {"status": "FALLA", "detalle": detalle, "tiempo_seg": elapsed}

async def check_worms(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    rest = (settings or Settings()).worms_rest_url
    return await _ping(f"{rest}/AphiaRecordsByName/Acanthurus", {"like": "false", "marine_only": "false"},
                       transport=transport)
