import logging
from contextlib import contextmanager
from typing import Iterator

from sqlmodel import SQLModel, Session, create_engine
from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread disabled when shared with FastAPI's threadpool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args
)


def create_db_and_tables():
    """Create all database tables."""
    # Import models so every table is registered on the metadata
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    All-or-nothing unit of work.

    Everything done on ``db`` inside the block is committed together when the
    block exits normally. Any exception rolls the whole unit back and is
    re-raised to the caller.
    """
    try:
        yield db
        db.commit()
    except Exception as exc:
        logger.warning("Transaction rolled back: %r", exc)
        db.rollback()
        raise
