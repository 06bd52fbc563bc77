"""
Service dependencies for FastAPI routes.

One Document Store (and its change feed) is shared by the whole process so
that subscriptions see every write made through the API. Services are
cheap wrappers around it and are built per request.
"""

from typing import Optional

from fastapi import Depends

from ..core.database import SessionLocal
from ..services.change_feed import ChangeFeed
from ..services.document_store import SqlDocumentStore
from ..services.case_lifecycle import CaseLifecycleEngine
from ..services.conversion import ConversionPipeline
from ..services.rfq import RfqService


_document_store: Optional[SqlDocumentStore] = None


def get_document_store() -> SqlDocumentStore:
    """
    Get the process-wide Document Store.

    Creates it on first call (lazy initialization).
    """
    global _document_store
    if _document_store is None:
        _document_store = SqlDocumentStore(SessionLocal, ChangeFeed.from_settings())
    return _document_store


def reset_document_store() -> None:
    """Drop the shared store; the next call builds a fresh one."""
    global _document_store
    if _document_store is not None:
        _document_store.change_feed.close()
    _document_store = None


def get_lifecycle_engine(
    store: SqlDocumentStore = Depends(get_document_store),
) -> CaseLifecycleEngine:
    return CaseLifecycleEngine(store)


def get_conversion_pipeline(
    store: SqlDocumentStore = Depends(get_document_store),
    engine: CaseLifecycleEngine = Depends(get_lifecycle_engine),
) -> ConversionPipeline:
    return ConversionPipeline(store, engine)


def get_rfq_service(
    store: SqlDocumentStore = Depends(get_document_store),
) -> RfqService:
    return RfqService(store)
