"""Shared builders for tests."""

import os
import tempfile
from typing import Callable, List, Optional, Tuple

from caseflow.core.database import build_engine, build_session_factory, init_db
from caseflow.core.errors import StoreUnavailable
from caseflow.schemas.case import Actor, CaseCreate
from caseflow.services.case_lifecycle import CaseLifecycleEngine
from caseflow.services.change_feed import ChangeFeed
from caseflow.services.document_store import SqlDocumentStore


SALES = Actor(id="u-sales", name="Priya Sales", role="sales")
MANAGER = Actor(id="u-manager", name="Ravi Manager", role="sales_manager")


def make_store(url: str = "sqlite://", store_class=SqlDocumentStore):
    """Fresh store over its own database; returns ``(store, engine)``."""
    bind = build_engine(url)
    init_db(bind)
    return store_class(build_session_factory(bind), ChangeFeed()), bind


def make_file_store(store_class=SqlDocumentStore):
    """Store over a temporary SQLite file, for tests that write from threads."""
    handle, path = tempfile.mkstemp(suffix=".db")
    os.close(handle)
    store, bind = make_store(f"sqlite:///{path}", store_class=store_class)
    return store, bind, path


class FlakyStore(SqlDocumentStore):
    """
    Store that raises StoreUnavailable on chosen writes.

    ``fail("set", "enquiries")`` fails every ``set`` whose collection equals
    or ends with ``enquiries`` until ``heal()`` is called.
    """

    def __init__(self, session_factory, change_feed=None):
        super().__init__(session_factory, change_feed)
        self.failures: List[Tuple[str, str]] = []

    def fail(self, method: str, collection: str) -> None:
        self.failures.append((method, collection))

    def heal(self) -> None:
        self.failures.clear()

    def _check(self, method: str, collection: str) -> None:
        for failing_method, suffix in self.failures:
            if failing_method == method and (collection == suffix or collection.endswith(suffix)):
                raise StoreUnavailable(f"Simulated outage on {method} {collection}")

    def set(self, collection, doc_id, fields):
        self._check("set", collection)
        return super().set(collection, doc_id, fields)

    def add(self, collection, fields, doc_id=None):
        self._check("add", collection)
        return super().add(collection, fields, doc_id=doc_id)


def new_case(engine: CaseLifecycleEngine, actor: Optional[Actor] = None, **fields) -> str:
    data = {"client_name": "Asha Menon", "client_email": "asha@example.com", **fields}
    return engine.create_case(CaseCreate(**data), actor or SALES)


class Recorder:
    """Subscription callback that keeps every delivered snapshot."""

    def __init__(self, transform: Optional[Callable] = None):
        self.calls = []
        self._transform = transform

    def __call__(self, value):
        self.calls.append(self._transform(value) if self._transform else value)

    @property
    def last(self):
        return self.calls[-1] if self.calls else None
