# handoff_app/utils/db_utils.py

import logging
from contextlib import contextmanager
from typing import Optional, Generator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, scoped_session, Session as SQLAlchemySession
from sqlalchemy.pool import StaticPool

from ..models import Base

logger = logging.getLogger(__name__)

db_session: Optional[scoped_session] = None
_engine = None
_SessionFactory = None


def get_engine():
    return _engine


def init_db(app) -> bool:
    """
    Initialize the SQLAlchemy engine and session factories using app config.
    The engine is created lazily; no connection is attempted until the first query.
    """
    global _engine, _SessionFactory, db_session

    if _engine is not None:
        return True

    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI')
    if not db_uri:
        logger.error("SQLALCHEMY_DATABASE_URI not configured. SQL-backed stores will fail.")
        return False

    try:
        db_uri_parts = db_uri.split('@')
        loggable_db_uri = db_uri_parts[-1] if len(db_uri_parts) > 1 else db_uri
        logger.info(f"Initializing database engine for: {loggable_db_uri}")

        engine_kwargs = {"echo": app.config.get('SQLALCHEMY_ECHO', False)}
        if db_uri.startswith("sqlite"):
            # A single shared connection keeps in-memory SQLite visible across sessions.
            engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        else:
            engine_kwargs.update(pool_pre_ping=True, pool_recycle=3600)

        _engine = create_engine(db_uri, **engine_kwargs)
        _SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
        db_session = scoped_session(_SessionFactory)
        logger.info("SQLAlchemy engine and session factory have been configured successfully.")
        return True

    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        _engine = None; _SessionFactory = None; db_session = None
        return False


@contextmanager
def get_db_session() -> Generator[Optional[SQLAlchemySession], None, None]:
    """
    Yields a SQLAlchemy Session, rolls back on error, and always removes the session.
    Yields None when the database was never initialized.
    """
    if not db_session:
        logger.error("db_session (ScopedSessionFactory) not initialized. Cannot create DB session.")
        yield None
        return

    session: SQLAlchemySession = db_session()
    logger.debug(f"DB Session {id(session)} acquired from ScopedSessionFactory.")
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"DB Session {id(session)} SQLAlchemy error: {e}", exc_info=True)
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"DB Session {id(session)} unexpected error: {e}", exc_info=True)
        session.rollback()
        raise
    finally:
        db_session.remove()
        logger.debug(f"DB Session {id(session)} removed from current scope.")


def create_all_tables() -> bool:
    """Create the mapping and identity tables if they don't already exist."""
    if not _engine:
        logger.error("Database engine not initialized. Cannot create tables.")
        return False
    try:
        logger.info("Creating tables from SQLAlchemy models (if they don't already exist)...")
        Base.metadata.create_all(bind=_engine)
        logger.info("SQLAlchemy Base.metadata.create_all() executed.")
        return True
    except Exception as e:
        logger.error(f"Error during create_all_tables: {e}", exc_info=True)
        return False
