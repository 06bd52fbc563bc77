"""
Database transaction management utilities.

Provides context managers for safe database transactions with automatic
rollback on error. Low-level SQLAlchemy failures surface as
``StoreUnavailable`` so callers never depend on driver exceptions.

Usage:
    with store_transaction(SessionLocal) as db:
        db.add(obj1)
        db.add(obj2)
        # Commits on success, rolls back on error
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from .errors import StoreUnavailable


logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session) -> Generator[Session, None, None]:
    """
    Context manager for database transactions with automatic rollback.

    Ensures that all database operations within the context succeed together
    or all fail together. Automatically commits on success, rolls back on error.

    Args:
        db: SQLAlchemy database session

    Yields:
        The same database session

    Raises:
        StoreUnavailable: if the database rejected the work
        Any other exception raised within the context
    """
    try:
        yield db
        db.commit()
        logger.debug("Transaction committed successfully")
    except SQLAlchemyError as e:
        safe_rollback(db)
        logger.error(f"Transaction rolled back due to database error: {e}")
        raise StoreUnavailable(f"Document store unavailable: {e.__class__.__name__}") from e
    except Exception:
        safe_rollback(db)
        raise


@contextmanager
def store_transaction(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """
    Open a session, run one transaction in it, and close it.

    Session creation failures are reported as ``StoreUnavailable`` too.
    """
    try:
        db = session_factory()
    except SQLAlchemyError as e:
        raise StoreUnavailable(f"Document store unavailable: {e.__class__.__name__}") from e
    try:
        with transaction(db):
            yield db
    finally:
        db.close()


def safe_rollback(db: Session) -> None:
    """
    Safely roll back a database session with error handling.

    Catches and logs any errors during rollback to prevent
    double-exception scenarios.

    Args:
        db: SQLAlchemy database session
    """
    try:
        db.rollback()
    except Exception as e:
        logger.error(f"Rollback failed: {e}")
