# taxon_resolver/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_PATCHES_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseModel):
    """Configuración explícita del resolvedor (se pasa al pipeline, sin globales)."""

    worms_rest_url: str = "https://www.marinespecies.org/rest"
    batch_size: int = Field(100, ge=1)
    fuzzy: bool = True
    fuzzy_batch_size: int = Field(50, ge=1)
    concurrency: int = Field(4, ge=1)
    timeout: float = 15.0
    retries: int = Field(2, ge=0)
    marine_only: bool = False
    patches_dir: Path = DEFAULT_PATCHES_DIR
    database_url: Optional[str] = None
    api_key: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        """Lee .env (si existe) y luego las variables de entorno."""
        load_dotenv(env_file)
        return cls(
            worms_rest_url=os.getenv("WORMS_REST_URL", "https://www.marinespecies.org/rest"),
            batch_size=int(os.getenv("REGISTRY_BATCH_SIZE", "100")),
            fuzzy=os.getenv("REGISTRY_FUZZY", "1") == "1",
            fuzzy_batch_size=int(os.getenv("REGISTRY_FUZZY_BATCH_SIZE", "50")),
            concurrency=int(os.getenv("REGISTRY_CONCURRENCY", "4")),
            timeout=float(os.getenv("REGISTRY_TIMEOUT", "15")),
            retries=int(os.getenv("REGISTRY_RETRIES", "2")),
            marine_only=os.getenv("WORMS_MARINE_ONLY", "0") == "1",
            patches_dir=Path(os.getenv("PATCHES_DIR") or DEFAULT_PATCHES_DIR),
            database_url=os.getenv("DATABASE_URL") or None,
            api_key=os.getenv("API_KEY") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
