"""
Database connection and session management.

Provides the SQLAlchemy engine and session factory. The Document Store
keeps every collection in the tables declared against ``Base``.
"""

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings


# =============================================================================
# SQLAlchemy Base
# =============================================================================

Base = declarative_base()


# =============================================================================
# Engine Configuration
# =============================================================================

def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    PostgreSQL gets a pooled engine with UTC/statement-timeout session
    settings. In-memory SQLite shares a single connection so the database
    survives across sessions; file-backed SQLite uses the default pool.

    Args:
        url: Database connection URL
        echo: Log SQL statements

    Returns:
        Configured SQLAlchemy Engine
    """
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=echo,
            )
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )

    pg_engine = create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        poolclass=QueuePool,
        pool_pre_ping=True,  # Enable connection health checks
        pool_recycle=settings.db_pool_recycle,
        pool_timeout=settings.db_pool_timeout,
        echo=echo,
    )

    @event.listens_for(pg_engine, "connect")
    def set_connection_settings(dbapi_connection, connection_record):
        """
        Configure connection settings when a new connection is created.

        Sets timezone and statement timeout for safety.
        """
        cursor = dbapi_connection.cursor()
        cursor.execute("SET timezone='UTC'")
        cursor.execute("SET statement_timeout = '30s'")  # 30 second query timeout
        cursor.close()

    return pg_engine


engine = build_engine(settings.database_url, echo=settings.debug)


# =============================================================================
# Session Factory
# =============================================================================

def build_session_factory(bind: Engine) -> sessionmaker:
    """Create a session factory bound to ``bind``."""
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


SessionLocal = build_session_factory(engine)


# =============================================================================
# Database Utilities
# =============================================================================

def init_db(bind: Engine = None) -> None:
    """
    Initialize database tables.

    Creates all tables defined in models. Should only be used
    in development, tests, or for initial setup.
    """
    # Import models so their tables are registered on Base.metadata
    from ..models import document  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def check_db_connection(bind: Engine = None) -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
