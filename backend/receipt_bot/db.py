from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings

settings = get_settings()

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def init_db(bind: Engine = engine, session_factory: sessionmaker = SessionLocal) -> None:
    """Create tables, apply lightweight migrations and seed system categories."""
    from . import crud, models  # noqa: F401
    from .migrations import run_migrations

    Base.metadata.create_all(bind=bind)
    run_migrations(bind)
    with session_factory() as db:
        crud.seed_default_categories(db)
