"""
Core module for the Caseflow backend.

Contains configuration, database setup, error taxonomy, and security utilities.
"""

from .config import settings
from .database import engine, SessionLocal

__all__ = ["settings", "engine", "SessionLocal"]
