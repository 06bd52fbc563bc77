import unittest
from datetime import datetime, timedelta, timezone

from caseflow.core.errors import CaseNotFound, RfqNotFound, ValidationError
from caseflow.models.enums import ActivityType, RfqStatus
from caseflow.schemas.rfq import RfqItem
from caseflow.services.case_lifecycle import CaseLifecycleEngine
from caseflow.services.rfq import RfqService

from .support import MANAGER, FlakyStore, make_store, new_case


ITEMS = [
    RfqItem(id="i1", name="BWP plywood 18mm", quantity=40, unit="sheets", price=3200),
    RfqItem(id="i2", name="Soft-close hinges", quantity=120),
]


class RfqServiceTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store(store_class=FlakyStore)
        self.engine = CaseLifecycleEngine(self.store)
        self.service = RfqService(self.store, self.engine.ledger)
        self.case_id = new_case(self.engine)
        self.deadline = datetime.now(timezone.utc) + timedelta(days=7)

    def tearDown(self):
        self.bind.dispose()

    def test_open_rfq_snapshots_items_and_dedupes_vendors(self):
        rfq_id = self.service.open_rfq(
            self.case_id, ITEMS, ["v1", "v2", "v1", " ", "v3"], self.deadline, MANAGER, notes="Urgent",
        )

        rfq = self.service.get_rfq(rfq_id)
        self.assertEqual(rfq.case_id, self.case_id)
        self.assertEqual(rfq.status, RfqStatus.OPEN)
        self.assertEqual(rfq.invited_vendor_ids, ["v1", "v2", "v3"])
        self.assertEqual([item.name for item in rfq.items], ["BWP plywood 18mm", "Soft-close hinges"])
        self.assertEqual(rfq.items[1].unit, "nos")
        self.assertEqual(rfq.bidding_deadline, self.deadline)
        self.assertEqual(rfq.created_by, MANAGER.id)

        record = self.engine.ledger.list(self.case_id)[0]
        self.assertEqual(record.type, ActivityType.OTHER)
        self.assertEqual(record.metadata["rfqId"], rfq_id)

    def test_naive_deadline_is_taken_as_utc(self):
        rfq_id = self.service.open_rfq(self.case_id, ITEMS, ["v1"], datetime(2030, 1, 15, 17, 0), MANAGER)
        self.assertEqual(
            self.service.get_rfq(rfq_id).bidding_deadline,
            datetime(2030, 1, 15, 17, 0, tzinfo=timezone.utc),
        )

    def test_validation(self):
        with self.assertRaises(ValidationError):
            self.service.open_rfq(self.case_id, [], ["v1"], self.deadline, MANAGER)
        with self.assertRaises(ValidationError):
            self.service.open_rfq(self.case_id, ITEMS, [], self.deadline, MANAGER)
        with self.assertRaises(ValidationError):
            self.service.open_rfq(self.case_id, ITEMS, ["", "  "], self.deadline, MANAGER)
        with self.assertRaises(ValidationError):
            self.service.open_rfq(self.case_id, ITEMS, ["v1"], None, MANAGER)
        self.assertEqual(self.service.list_rfqs(self.case_id), [])

    def test_unknown_case(self):
        with self.assertRaises(CaseNotFound):
            self.service.open_rfq("missing", ITEMS, ["v1"], self.deadline, MANAGER)

    def test_ledger_failure_does_not_fail_rfq(self):
        self.store.fail("add", "/activities")
        rfq_id = self.service.open_rfq(self.case_id, ITEMS, ["v1"], self.deadline, MANAGER)
        self.assertEqual(self.service.get_rfq(rfq_id).status, RfqStatus.OPEN)

    def test_list_and_close(self):
        first = self.service.open_rfq(self.case_id, ITEMS, ["v1"], self.deadline, MANAGER)
        second = self.service.open_rfq(self.case_id, ITEMS[:1], ["v2"], self.deadline, MANAGER)
        other_case = new_case(self.engine, client_name="Other")
        self.service.open_rfq(other_case, ITEMS, ["v1"], self.deadline, MANAGER)

        self.assertEqual([rfq.id for rfq in self.service.list_rfqs(self.case_id)], [second, first])

        closed = self.service.close_rfq(first, MANAGER)
        self.assertEqual(closed.status, RfqStatus.CLOSED)
        self.assertIsNotNone(closed.closed_at)
        self.assertEqual(self.service.close_rfq(first, MANAGER).closed_at, closed.closed_at)

    def test_unknown_rfq(self):
        with self.assertRaises(RfqNotFound):
            self.service.get_rfq("missing")
        with self.assertRaises(RfqNotFound):
            self.service.close_rfq("missing", MANAGER)


if __name__ == "__main__":
    unittest.main()
