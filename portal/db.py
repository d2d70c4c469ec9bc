from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from .config import get_settings

DATABASE_URL = get_settings().database_url

# For SQLite, enable check_same_thread=False for multithreading in FastAPI
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine_kwargs = {}
if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
    # one shared connection, otherwise every thread gets its own empty database
    engine_kwargs["poolclass"] = StaticPool
engine = create_engine(DATABASE_URL, connect_args=connect_args, future=True, **engine_kwargs)

# Ensure SQLite enforces foreign keys
if DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
    """Per-request ORM session. Overridden in tests."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    # Create tables if not existing. In production, use Alembic.
    from . import models  # noqa: F401  (registers tables on Base.metadata)
    Base.metadata.create_all(bind=bind or engine)
