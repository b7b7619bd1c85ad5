from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from shared.config import settings


def _normalize_db_url(url: str) -> str:
    """Normalize Heroku-style Postgres URLs to the psycopg2 driver form."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


DB_URL = _normalize_db_url(settings.DATABASE_URL)
is_sqlite = DB_URL.startswith("sqlite")

engine = create_engine(
    DB_URL,
    pool_pre_ping=True,
    connect_args=({"check_same_thread": False} if is_sqlite else {}),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

Base = declarative_base()


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
