"""
Activity Ledger.

Append-only, per-case history stored in the ``cases/<case_id>/activities``
child collection. Records are never edited or deleted: the ledger has no
update path and the store rejects overwrites in that collection.

The ledger never writes the case document itself, so audit writes and
lifecycle writes can be retried independently. The ledger is the source of
truth for what happened to a case; the case ``status`` field is a cache.

Example usage:
    ledger = ActivityLedger(store)
    ledger.record(case_id, ActivityType.NOTE, "Note added", actor, notes="Client called")
    for record in ledger.list(case_id):
        ...
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .document_store import SERVER_TIMESTAMP, SqlDocumentStore, Subscription
from ..models.enums import ActivityType
from ..schemas.activity import ActivityCreate, ActivityRecord
from ..schemas.case import Actor


logger = logging.getLogger(__name__)


def activities_collection(case_id: str) -> str:
    return f"cases/{case_id}/activities"


class ActivityLedger:
    """
    Append and read ActivityRecords for cases.
    """

    def __init__(self, store: SqlDocumentStore):
        """
        Args:
            store: Document Store the ledger collections live in
        """
        self.store = store

    def append(self, case_id: str, record: ActivityCreate) -> str:
        """
        Append one record and return its id.

        The timestamp is assigned by the store.

        Raises:
            StoreUnavailable: the write was not accepted
        """
        fields = record.to_document()
        fields["caseId"] = case_id
        fields["timestamp"] = SERVER_TIMESTAMP

        record_id = self.store.add(activities_collection(case_id), fields)
        logger.info(
            f"Activity appended: case={case_id} type={record.type.value} "
            f"record={record_id} by={record.user_id}"
        )
        return record_id

    def record(
        self,
        case_id: str,
        activity_type: ActivityType,
        action: str,
        actor: Actor,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Append a record with the actor snapshot taken from ``actor``."""
        return self.append(
            case_id,
            ActivityCreate(
                type=activity_type,
                action=action,
                user_id=actor.id,
                user_name=actor.name,
                notes=notes,
                metadata=metadata,
            ),
        )

    def list(self, case_id: str, newest_first: bool = True) -> List[ActivityRecord]:
        """
        All records for a case in insertion order.

        Newest first for display; ``newest_first=False`` gives causal order.
        Order comes from the database insert sequence, not ``timestamp``:
        timestamps are stamped by the writing process, so records written by
        different API or worker processes may carry skewed clocks.
        """
        docs = self.store.query(activities_collection(case_id), descending=newest_first)
        return [ActivityRecord.model_validate(doc) for doc in docs]

    def subscribe(
        self,
        case_id: str,
        callback: Callable[[List[ActivityRecord]], None],
        newest_first: bool = True,
    ) -> Subscription:
        """
        Live ordered snapshots of a case's ledger.

        The full list is delivered immediately and again after every append.
        """
        def deliver(docs: List[Dict[str, Any]]) -> None:
            callback([ActivityRecord.model_validate(doc) for doc in docs])

        return self.store.subscribe(
            activities_collection(case_id),
            deliver,
            descending=newest_first,
        )
