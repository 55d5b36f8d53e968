from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.dialects import postgresql, sqlite
from typing import Generator
import logging

from core.config import settings

logger = logging.getLogger(__name__)

# ============================================================
# ✅ Database URL setup (PostgreSQL preferred, SQLite for dev)
# ============================================================
DATABASE_URL = settings.DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    logger.warning("⚠️ Using SQLite database, fine for development and tests only.")
else:
    logger.info("✅ Using database from environment")


def build_engine(url: str):
    """Create an engine; SQLite needs thread sharing and a busy timeout."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    # For PostgreSQL, pool_pre_ping avoids stale connections
    return create_engine(url, echo=False, pool_pre_ping=True)


engine = build_engine(DATABASE_URL)


# ============================================================
# ✅ Create tables (called at startup)
# ============================================================
def create_db_and_tables(bind=None) -> None:
    """
    Create all database tables based on SQLModel models.
    This runs automatically at app startup.
    """
    # models must be imported so their tables are registered on the metadata
    import models.models  # noqa: F401

    try:
        SQLModel.metadata.create_all(bind or engine)
        logger.info("✅ All database tables created successfully.")
    except Exception as e:
        logger.error(f"❌ Failed to create tables: {e}")
        raise


# ============================================================
# ✅ Dependency: FastAPI session generator
# ============================================================
def get_session() -> Generator[Session, None, None]:
    """
    Provides a SQLModel Session to FastAPI dependencies.
    Closes automatically after request completes.
    """
    with Session(engine) as session:
        yield session


# ============================================================
# ✅ Dialect-aware INSERT (ON CONFLICT support)
# ============================================================
def insert_for(session: Session, model):
    """
    Return an INSERT construct for ``model`` that supports
    ``on_conflict_do_nothing`` / ``on_conflict_do_update``.
    Only PostgreSQL and SQLite are supported.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Unsupported database dialect for upserts: {dialect}")
