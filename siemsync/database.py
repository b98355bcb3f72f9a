"""SIEMSYNC — Database Engine & Session Factory."""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlmodel import SQLModel, Session, create_engine

from siemsync.config import settings
from siemsync.core.logging import get_logger

# Registers the table models on SQLModel.metadata
import siemsync.models.siem_models  # noqa: F401

logger = get_logger("database")

db_url = settings.effective_database_url

# The scheduler and FastAPI's threadpool share the SQLite connection
connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)

logger.info(
    f"Sync store: {make_url(db_url).render_as_string(hide_password=True)}"
)


def test_connection() -> bool:
    """Return True when the sync store answers SELECT 1."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Sync store unreachable: {e}")
        return False
    return True


def init_db() -> None:
    """Create the cursor, event and run-log tables."""
    SQLModel.metadata.create_all(engine)
    logger.info("Sync tables ready")


def get_session():
    """Dependency — yields a DB session."""
    with Session(engine) as session:
        yield session
