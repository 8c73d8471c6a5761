# backend/core/database.py

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings
from .query_logger import setup_query_logging

settings = get_settings()

DATABASE_URL = settings.database_url


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine with dialect-appropriate pool settings."""
    engine_kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
    }

    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow

    new_engine = create_engine(url, **engine_kwargs)

    if new_engine.dialect.name == "sqlite":
        # Cascading rollback of imports relies on ON DELETE CASCADE
        @event.listens_for(new_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()
            # Let SQLAlchemy emit BEGIN itself so per-row SAVEPOINTs work
            dbapi_conn.isolation_level = None

        @event.listens_for(new_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    setup_query_logging(new_engine)
    return new_engine


engine = build_engine(DATABASE_URL, echo=settings.log_sql_queries)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
