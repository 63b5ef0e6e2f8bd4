"""Engine, session factory and schema checks for the credential store"""

from contextlib import contextmanager
from typing import Generator, Iterator
import logging

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.get_database_url(),
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    pool_timeout=30,
    pool_recycle=3600,
    pool_pre_ping=True,
    echo=settings.DEBUG
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Models register their tables on Base.metadata
from app import models  # noqa: E402,F401

AUTH_TABLES = ("roles", "permissions", "role_permissions", "users", "security_logs", "audit_logs")


def get_db() -> Generator[Session, None, None]:
    """
    Request-scoped session dependency

    Yields:
        Session: Database session, closed after the response
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request (startup, scripts, health)"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Check or create the auth schema according to DB_INIT_MODE

    DB_INIT_MODE:
      - migrate: Alembic must have run; the auth tables must exist
      - create_all: create missing tables from the ORM metadata (local use)
      - off: skip the check

    Raises:
        RuntimeError: If migrations have not been applied or the mode is unknown
    """
    mode = settings.DB_INIT_MODE.lower().strip()
    if mode == "off":
        logger.info("DB initialization check skipped (DB_INIT_MODE=off)")
        return

    if mode == "create_all":
        Base.metadata.create_all(bind=engine)
        logger.warning("Auth tables created from ORM metadata; use Alembic outside local development")
        return

    if mode != "migrate":
        raise RuntimeError(f"Unknown DB_INIT_MODE: {settings.DB_INIT_MODE}")

    with engine.connect() as conn:
        existing = set(inspect(conn).get_table_names())

    if settings.DB_REQUIRE_HEAD and "alembic_version" not in existing:
        raise RuntimeError("Migration table missing. Run `alembic upgrade head` before starting the API.")

    missing = [name for name in AUTH_TABLES if name not in existing]
    if missing:
        raise RuntimeError(f"Auth tables missing: {', '.join(missing)}")
    logger.info("Auth schema present (%d tables)", len(AUTH_TABLES))


def check_db_connected(db: Session) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database health check failed")
        return False
