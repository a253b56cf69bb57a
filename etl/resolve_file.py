# etl/resolve_file.py
import logging
import sys

from taxon_resolver.config import Settings
from taxon_resolver.db import session_factory
from taxon_resolver.ingestors.base import persist_rows, read_entries
from taxon_resolver.clients._http import RegistryError
from taxon_resolver.services.codes import CodeCollisionError
from taxon_resolver.services.pipeline import run_resolver, to_dataframe, write_table

log = logging.getLogger("etl.resolve_file")


def run(input_path: str, output_path: str, settings: Settings | None = None) -> int:
    settings = settings or Settings.from_env()

    entries = read_entries(input_path)
    rows = run_resolver(entries, settings)
    write_table(to_dataframe(rows), output_path)
    log.info("Exportado: %s (%d filas)", output_path, len(rows))

    if settings.database_url:
        SessionLocal = session_factory(settings.database_url)
        with SessionLocal() as db:
            n = persist_rows(db, rows)
        log.info("Tabla taxon_code reescrita: %d filas", n)
    return len(rows)


def main(argv: list[str]) -> int:
    if len(argv) < 3:
        print("Uso: python etl/resolve_file.py data/taxa_campo.csv data/taxon_codes.csv")
        return 1
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    try:
        run(argv[1], argv[2], settings)
    except (RegistryError, CodeCollisionError, ValueError) as e:
        log.error("%s", e)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
