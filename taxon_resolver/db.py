# taxon_resolver/db.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .models import Base


def session_factory(database_url: str, create: bool = True) -> sessionmaker:
    """
    Engine + sessionmaker para la URL dada (sin estado global).
    - pool_pre_ping para conexiones que el servidor haya cerrado
    - pool_recycle menor que el wait_timeout típico de un proxy
    """
    kwargs = {"future": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_pre_ping=True, pool_recycle=280, pool_size=5, max_overflow=10)
    engine = create_engine(database_url, **kwargs)
    if create:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
