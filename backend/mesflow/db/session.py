"""
Database session management
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from mesflow.core.settings import settings
from mesflow.logging_config import get_logger

logger = get_logger(__name__)

_TX_DEPTH_KEY = "mesflow_tx_depth"

connection_string = settings.database_url

# Log connection info (without password)
logger.info(f"Database connection: {settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}")

engine = create_engine(
    connection_string,
    echo=False,  # Set to True for SQL query logging
    pool_pre_ping=True,  # Verify connections before using
    pool_recycle=3600,  # Recycle connections after 1 hour
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """
    Yield a session and always close it.

    Usage:
        for db in get_db():
            create_order(db, item, quantity=10, actor_id=1)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transactional(db: Session) -> Iterator[Session]:
    """
    Run a block as one unit of work.

    Calls nest: only the outermost block commits, and an exception at any
    depth rolls back everything done since the outermost block began.
    Inner blocks flush so generated ids are visible to the caller.
    """
    depth = db.info.get(_TX_DEPTH_KEY, 0)
    db.info[_TX_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
        else:
            db.flush()
    except Exception:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info[_TX_DEPTH_KEY] = depth
