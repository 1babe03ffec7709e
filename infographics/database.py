"""Engine, session factory and declarative base.

The connection URL comes from Settings.database_url, so DATABASE_URL may be
set in the environment or in .env. SQLite is used for local development and
tests, PostgreSQL in deployment.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .core.config import Settings, settings


def build_engine(config: Settings) -> Engine:
    """Create an engine for config.database_url with per-backend tuning."""
    url = config.database_url
    if not url.startswith("sqlite"):
        return create_engine(
            url,
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_timeout=config.db_pool_timeout,
            pool_recycle=config.db_pool_recycle,
            pool_pre_ping=True,
        )

    # Several workers may claim from the same file; wait on locks instead of failing.
    sqlite_engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

    # Foreign keys are off by default in SQLite; page deletes must cascade to
    # queue items and history.
    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


DATABASE_URL = settings.database_url
engine = build_engine(settings)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create any missing tables. Safe to call on every startup."""
    from . import models  # noqa: F401  (registers tables on Base.metadata)
    Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency yielding a session.

    An unhandled exception rolls the transaction back before the session
    returns its connection to the pool.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
