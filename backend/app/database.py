# backend/app/database.py

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from supabase import Client, create_client

from . import config


def engine_url(dsn: str) -> str:
    """
    Pin plain Postgres DSNs (as handed out by Supabase) to the psycopg2 driver.

      "postgresql://u:p@host/db" -> "postgresql+psycopg2://u:p@host/db"

    URLs that already name a driver are returned unchanged.
    """
    for scheme in ("postgresql://", "postgres://"):
        if dsn.startswith(scheme):
            return "postgresql+psycopg2://" + dsn[len(scheme):]
    return dsn


# Create SQLAlchemy engine (schema introspection only)
engine = create_engine(
    engine_url(config.DATABASE_URL),
    pool_pre_ping=True,
)

# SessionLocal class for database sessions
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Hosted database client used for all row queries issued by the assistant.
    Created on first use so importing the app never opens a connection.
    """
    return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
