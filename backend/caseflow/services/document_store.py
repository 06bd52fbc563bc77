"""
SQL-backed Document Store.

Collections of JSON documents with field-level merge writes, server-side
timestamps, and live subscriptions. Every collection lives in the single
``documents`` table; child collections are addressed by path, e.g.
``cases/<case_id>/activities``.

Contract:
- ``get`` / ``query`` return plain dicts with the document id under ``id``
- ``set`` merges the given fields into the document (creating it when
  missing); dotted keys address nested maps
- ``add`` creates a document and returns its id
- ``subscribe`` delivers the current result immediately and the full
  re-queried result after every committed write to the collection
- ``SERVER_TIMESTAMP`` and ``ArrayUnion`` markers are resolved inside the
  write transaction
- collections ending in ``/activities`` are append-only; there is no delete
- ``seq`` (the database insert sequence) is the insertion order shared by
  every process; ``SERVER_TIMESTAMP`` comes from this process's clock and
  is only strictly increasing within one store instance

There are no cross-document transactions. Any SQLAlchemy failure surfaces
as ``StoreUnavailable``.
"""

import copy
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..core.errors import AppendOnlyViolation, StoreUnavailable, ValidationError
from ..core.transactions import store_transaction
from ..models.document import StoredDocument
from .change_feed import ChangeFeed


logger = logging.getLogger(__name__)

APPEND_ONLY_SUFFIX = "/activities"
DOC_LOCK_STRIPES = 64


# =============================================================================
# Write Markers
# =============================================================================

class _ServerTimestamp:
    """Replaced by the store clock at write time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class ArrayUnion:
    """
    Add each value to a list field unless already present.

    Applied under the row lock, so concurrent unions of the same value
    leave exactly one copy.
    """

    def __init__(self, values: Iterable[Any]):
        self.values = list(values)

    def __repr__(self) -> str:
        return f"ArrayUnion({self.values!r})"


# =============================================================================
# Subscriptions
# =============================================================================

class Subscription:
    """Handle returned by ``subscribe``; ``close()`` stops delivery."""

    def __init__(self, deliver: Callable[[], None]):
        self._deliver = deliver
        self._remove: Optional[Callable[[], None]] = None
        self._closed = False
        self._lock = threading.RLock()

    @property
    def closed(self) -> bool:
        return self._closed

    def _attach(self, remove: Callable[[], None]) -> None:
        self._remove = remove

    def _on_change(self, collection: str, doc_id: Optional[str]) -> None:
        with self._lock:
            if self._closed:
                return
            self._deliver()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._remove is not None:
            self._remove()


# =============================================================================
# Store
# =============================================================================

class SqlDocumentStore:
    """
    Document Store over SQLAlchemy.

    Args:
        session_factory: ``sessionmaker`` bound to the target database
        change_feed: Notification hub shared with other store users
    """

    def __init__(self, session_factory: sessionmaker, change_feed: Optional[ChangeFeed] = None):
        self._session_factory = session_factory
        self._feed = change_feed or ChangeFeed()
        self._clock_lock = threading.Lock()
        self._last_timestamp: Optional[datetime] = None
        # Row locks are not available on SQLite; merges are also serialized in-process.
        self._doc_locks = [threading.RLock() for _ in range(DOC_LOCK_STRIPES)]

    @property
    def change_feed(self) -> ChangeFeed:
        return self._feed

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document or None if it does not exist."""
        with store_transaction(self._session_factory) as db:
            row = db.execute(
                select(StoredDocument).where(
                    StoredDocument.collection == collection,
                    StoredDocument.doc_id == doc_id,
                )
            ).scalar_one_or_none()
            return _to_dict(row) if row is not None else None

    def query(
        self,
        collection: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return documents in ``collection`` matching every equality in ``where``.

        Args:
            collection: Collection path
            where: Field path -> required value (dotted paths allowed)
            order_by: Field path to sort on; insertion order breaks ties
            descending: Sort newest/largest first
            limit: Maximum number of documents

        Returns:
            List of document dicts
        """
        with store_transaction(self._session_factory) as db:
            rows = db.execute(
                select(StoredDocument)
                .where(StoredDocument.collection == collection)
                .order_by(StoredDocument.seq)
            ).scalars().all()
            entries = [(row.seq, _to_dict(row)) for row in rows]

        if where:
            entries = [
                (seq, doc) for seq, doc in entries
                if all(_get_path(doc, path) == value for path, value in where.items())
            ]

        if order_by:
            entries.sort(
                key=lambda entry: (_sort_key(_get_path(entry[1], order_by)), entry[0]),
                reverse=descending,
            )
        elif descending:
            entries.reverse()

        docs = [doc for _, doc in entries]
        return docs[:limit] if limit is not None else docs

    # =========================================================================
    # Writes
    # =========================================================================

    def set(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """
        Merge ``fields`` into a document, creating it when missing.

        Raises:
            AppendOnlyViolation: the document exists in an append-only collection
            StoreUnavailable: the database rejected the write
        """
        if not fields:
            raise ValidationError("No fields to write")

        with self._doc_lock(collection, doc_id):
            with store_transaction(self._session_factory) as db:
                row = db.execute(
                    select(StoredDocument)
                    .where(
                        StoredDocument.collection == collection,
                        StoredDocument.doc_id == doc_id,
                    )
                    .with_for_update()
                ).scalar_one_or_none()

                if row is None:
                    row = StoredDocument(collection=collection, doc_id=doc_id, data={})
                    db.add(row)
                elif collection.endswith(APPEND_ONLY_SUFFIX):
                    raise AppendOnlyViolation(
                        f"Records in {collection} are append-only; {doc_id} cannot be changed"
                    )

                data = copy.deepcopy(row.data or {})
                _apply_fields(data, fields, self._now())
                row.data = data

        logger.debug(f"Document written: {collection}/{doc_id}")
        self._feed.notify(collection, doc_id)

    def add(
        self,
        collection: str,
        fields: Mapping[str, Any],
        doc_id: Optional[str] = None,
    ) -> str:
        """
        Create a new document and return its id.

        Raises:
            ValidationError: ``doc_id`` was given and already exists
            StoreUnavailable: the database rejected the write
        """
        doc_id = doc_id or uuid.uuid4().hex

        with self._doc_lock(collection, doc_id):
            try:
                with store_transaction(self._session_factory) as db:
                    exists = db.execute(
                        select(StoredDocument.seq).where(
                            StoredDocument.collection == collection,
                            StoredDocument.doc_id == doc_id,
                        )
                    ).first()
                    if exists is not None:
                        raise ValidationError(f"Document already exists: {collection}/{doc_id}")

                    data: Dict[str, Any] = {}
                    _apply_fields(data, fields, self._now())
                    db.add(StoredDocument(collection=collection, doc_id=doc_id, data=data))
            except StoreUnavailable as e:
                # Another process inserted the same id after the existence check
                if isinstance(e.__cause__, IntegrityError):
                    raise ValidationError(f"Document already exists: {collection}/{doc_id}") from e
                raise

        logger.debug(f"Document added: {collection}/{doc_id}")
        self._feed.notify(collection, doc_id)
        return doc_id

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(
        self,
        collection: str,
        callback: Callable[[Any], None],
        doc_id: Optional[str] = None,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Watch a document or a query.

        With ``doc_id`` the callback receives the document dict (or None);
        otherwise it receives the full list returned by ``query``. The
        current result is delivered before this method returns.
        """
        if doc_id is not None:
            def deliver() -> None:
                callback(self.get(collection, doc_id))
        else:
            def deliver() -> None:
                callback(self.query(collection, where=where, order_by=order_by, descending=descending))

        subscription = Subscription(deliver)

        def on_change(changed_collection: str, changed_id: Optional[str]) -> None:
            if doc_id is not None and changed_id is not None and changed_id != doc_id:
                return
            subscription._on_change(changed_collection, changed_id)

        subscription._attach(self._feed.listen(collection, on_change))
        deliver()
        return subscription

    # =========================================================================
    # Internals
    # =========================================================================

    def _now(self) -> str:
        """Store clock: UTC, strictly increasing within this store."""
        with self._clock_lock:
            now = datetime.now(timezone.utc)
            if self._last_timestamp is not None and now <= self._last_timestamp:
                now = self._last_timestamp + timedelta(microseconds=1)
            self._last_timestamp = now
        return now.isoformat(timespec="microseconds")

    def _doc_lock(self, collection: str, doc_id: str) -> threading.RLock:
        """Lock stripe for a document; unrelated documents may share one."""
        return self._doc_locks[hash((collection, doc_id)) % DOC_LOCK_STRIPES]


# =============================================================================
# Helpers
# =============================================================================

def _to_dict(row: StoredDocument) -> Dict[str, Any]:
    doc = copy.deepcopy(row.data or {})
    doc["id"] = row.doc_id
    return doc


def _get_path(doc: Mapping[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _sort_key(value: Any) -> Tuple[int, Any]:
    if value is None:
        return (2, 0)
    if isinstance(value, str):
        return (1, value)
    return (0, value)


def _resolve_value(value: Any, current: Any, now: str) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, ArrayUnion):
        merged = list(current) if isinstance(current, list) else []
        for item in value.values:
            if item not in merged:
                merged.append(item)
        return merged
    if isinstance(value, Mapping):
        return {k: _resolve_value(v, None, now) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_resolve_value(v, None, now) for v in value]
    return value


def _apply_fields(data: Dict[str, Any], fields: Mapping[str, Any], now: str) -> None:
    """Merge ``fields`` into ``data`` in place, resolving write markers."""
    for key, value in fields.items():
        if key == "id":
            continue
        parts = key.split(".")
        target = data
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = target[part] = {}
            target = child
        leaf = parts[-1]
        target[leaf] = _resolve_value(value, target.get(leaf), now)
