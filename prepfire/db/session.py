import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from prepfire.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        db_engine = create_engine(
            database_url,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        event.listen(db_engine, "connect", set_sqlite_pragma)
        return db_engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=20,
        max_overflow=20
    )


def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout = 30000;")
    except Exception as e:
        logger.error(f"Failed to set SQLite PRAGMAs: {e}", exc_info=True)
    finally:
        cursor.close()


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    from prepfire.db import models  # noqa: F401
    from prepfire.db.base_class import Base

    Base.metadata.create_all(bind=bind)
