from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

log = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "taxon-resolver/0.3 (+https://github.com/pristine-seas)",
    "Accept": "application/json",
}


class RegistryError(RuntimeError):
    """El registro no respondió tras agotar los reintentos."""


def make_client(timeout: float = 15.0) -> httpx.AsyncClient:
    """Cliente httpx con HTTP/2 y límites de pool; quien lo crea lo cierra."""
    return httpx.AsyncClient(
        http2=True,
        timeout=timeout,
        headers=DEFAULT_HEADERS,
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )


def _retry_after(resp: httpx.Response | None, default: float) -> float:
    """Respeta Retry-After si viene (segundos o HTTP-date)."""
    ra = resp.headers.get("Retry-After") if resp is not None else None
    if not ra:
        return default
    try:
        return float(ra)
    except ValueError:
        pass
    try:
        dt = parsedate_to_datetime(ra)
    except (TypeError, ValueError):
        return default
    if not dt.tzinfo:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


async def fetch_json(
    cli: httpx.AsyncClient,
    url: str,
    params: Any = None,
    retries: int = 2,
    backoff: float = 0.6,
    strict: bool = False,
) -> Any:
    """
    GET con backoff exponencial.
    - 204        -> None (sin datos)
    - otro 4xx   -> None; con strict=True -> RegistryError sin reintentar
    - 429 / 5xx / errores de red -> reintento; agotados -> RegistryError
    """
    last_exc: Exception | None = None
    for i in range(retries + 1):
        resp: httpx.Response | None = None
        try:
            resp = await cli.get(url, params=params)
            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                raise httpx.HTTPStatusError("retryable", request=resp.request, response=resp)
            if resp.status_code == 204:
                return None
            if resp.status_code >= 400:
                if strict:
                    log.warning("GET %s respondió %d", url, resp.status_code)
                    raise RegistryError(f"{url}: HTTP {resp.status_code}")
                return None
            try:
                return resp.json()
            except ValueError:
                # payload no-JSON: se trata como vacío
                return None
        except httpx.HTTPError as e:
            last_exc = e
            if i == retries:
                break
            wait = _retry_after(getattr(e, "response", None), backoff)
            if log.isEnabledFor(logging.DEBUG):
                log.debug("GET %s falló (%s); reintento %d en %.1fs", url, e, i + 1, wait)
            await asyncio.sleep(wait)
            backoff *= 2

    log.warning("GET %s agotó %d reintentos: %s", url, retries, last_exc)
    raise RegistryError(f"{url}: {last_exc}") from last_exc
