from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from promo_engine.core.config import settings
import os
from promo_engine.core.logging_config import get_logger
logger = get_logger("database")

# Execution option read by the sqlite "begin" hook: "IMMEDIATE" takes the write lock up front
SQLITE_BEGIN_MODE = "sqlite_begin_mode"


def _ensure_sqlite_file_writable(url: str) -> None:
    db_path = make_url(url).database
    if not db_path or db_path == ":memory:":
        return
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
        # Ensure directory is writable
        if not os.access(db_dir, os.W_OK):
            raise PermissionError(f"Database directory is not writable: {db_dir}")

    # Ensure database file is writable if it exists
    if os.path.exists(db_path):
        if not os.access(db_path, os.W_OK):
            raise PermissionError(f"Database file is not writable: {db_path}")


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so a transaction can ask for BEGIN IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        # WAL: open readers do not hold off a writer's commit
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN_MODE)
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


def make_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        _ensure_sqlite_file_writable(url)
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.REDEEM_TIMEOUT_SECONDS,  # wait this long for locks
            },
            echo=echo,
        )
        _install_sqlite_transaction_hooks(engine)
        return engine
    return create_engine(url, pool_pre_ping=True, echo=echo)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)

SessionLocal = make_session_factory(engine)
Base = declarative_base()


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
