from contextlib import contextmanager
from typing import Optional
from sqlalchemy.orm import Session, sessionmaker
from promo_engine.core.database import SessionLocal, SQLITE_BEGIN_MODE
from promo_engine.core.logging_config import get_logger

logger = get_logger("db_transaction")


@contextmanager
def db_transaction(
    db: Session = None,
    session_factory: Optional[sessionmaker] = None,
    immediate: bool = False,
):
    """
    Run a unit of work and commit it, rolling back on any exception.

    With immediate=True a fresh session opens its SQLite transaction with
    BEGIN IMMEDIATE, so concurrent writers queue on the database lock instead
    of racing between their reads and their writes. Other backends ignore it.
    """
    if db is None:
        db = (session_factory or SessionLocal)()
        should_close = True
    else:
        should_close = False
    try:
        if immediate:
            db.connection(execution_options={SQLITE_BEGIN_MODE: "IMMEDIATE"})
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.debug(f"Transaction rolled back: {type(e).__name__}: {e}")
        raise
    finally:
        if should_close:
            db.close()
