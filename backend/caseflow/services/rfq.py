"""
RFQ / bidding sub-flow.

Opens a procurement request for a case, fanned out to a set of invited
vendors with a bidding deadline. Closing at the deadline is a convention of
the procurement team; ``close_rfq`` is an explicit action.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .activity_ledger import ActivityLedger
from .case_lifecycle import CASES
from .document_store import SERVER_TIMESTAMP, SqlDocumentStore
from ..core.errors import CaseNotFound, RfqNotFound, StoreUnavailable, ValidationError
from ..models.enums import ActivityType, RfqStatus
from ..schemas.case import Actor
from ..schemas.rfq import RfqItem, RfqRecord


logger = logging.getLogger(__name__)

RFQS = "rfqs"


class RfqService:
    """Create, read and close RFQs."""

    def __init__(self, store: SqlDocumentStore, ledger: Optional[ActivityLedger] = None):
        self.store = store
        self.ledger = ledger or ActivityLedger(store)

    def open_rfq(
        self,
        case_id: str,
        items: Sequence[RfqItem],
        vendor_ids: Sequence[str],
        bidding_deadline: datetime,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> str:
        """
        Open an RFQ on a case.

        Items are stored as a snapshot. Vendor ids are de-duplicated in the
        order given.

        Returns:
            The RFQ id

        Raises:
            ValidationError: no items, no vendors, or no deadline
            CaseNotFound: no such case
        """
        if not items:
            raise ValidationError("At least one item is required")
        vendors = list(dict.fromkeys(v.strip() for v in vendor_ids if v and v.strip()))
        if not vendors:
            raise ValidationError("Please select at least one vendor")
        if bidding_deadline is None:
            raise ValidationError("A bidding deadline is required")
        if bidding_deadline.tzinfo is None:
            bidding_deadline = bidding_deadline.replace(tzinfo=timezone.utc)

        if self.store.get(CASES, case_id) is None:
            raise CaseNotFound(case_id)

        rfq_id = self.store.add(RFQS, {
            "caseId": case_id,
            "items": [item.to_document() for item in items],
            "invitedVendorIds": vendors,
            "biddingDeadline": bidding_deadline.isoformat(),
            "status": RfqStatus.OPEN.value,
            "notes": notes,
            "createdBy": actor.id,
            "createdAt": SERVER_TIMESTAMP,
        })
        logger.info(
            f"RFQ {rfq_id} opened on case {case_id} items={len(items)} "
            f"vendors={len(vendors)} by={actor.id}"
        )

        try:
            self.ledger.record(
                case_id,
                ActivityType.OTHER,
                f"RFQ opened for {len(vendors)} vendor(s)",
                actor,
                notes=notes,
                metadata={"rfqId": rfq_id, "biddingDeadline": bidding_deadline.isoformat()},
            )
        except StoreUnavailable as e:
            logger.warning(f"RFQ {rfq_id} opened but not logged on case {case_id}: {e}")

        return rfq_id

    def get_rfq(self, rfq_id: str) -> RfqRecord:
        doc = self.store.get(RFQS, rfq_id)
        if doc is None:
            raise RfqNotFound(rfq_id)
        return RfqRecord.model_validate(doc)

    def list_rfqs(self, case_id: str) -> List[RfqRecord]:
        docs = self.store.query(RFQS, where={"caseId": case_id}, order_by="createdAt", descending=True)
        return [RfqRecord.model_validate(doc) for doc in docs]

    def close_rfq(self, rfq_id: str, actor: Actor) -> RfqRecord:
        """Close an open RFQ. Closing a closed RFQ is a no-op."""
        rfq = self.get_rfq(rfq_id)
        if rfq.status == RfqStatus.CLOSED:
            return rfq

        self.store.set(RFQS, rfq_id, {"status": RfqStatus.CLOSED.value, "closedAt": SERVER_TIMESTAMP})
        logger.info(f"RFQ {rfq_id} closed by={actor.id}")
        return self.get_rfq(rfq_id)
