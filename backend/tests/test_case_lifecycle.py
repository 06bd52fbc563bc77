import os
import threading
import unittest
from datetime import datetime, timedelta, timezone

from caseflow.core.errors import (
    AlreadyAProject,
    CaseNotFound,
    PartialPipelineFailure,
    StoreUnavailable,
    ValidationError,
)
from caseflow.models.enums import ActivityType, Stage, TaskStatus, TaskType
from caseflow.schemas.activity import Attachment
from caseflow.schemas.case import ContactUpdate, ReminderCreate, TaskCreate
from caseflow.services.case_lifecycle import CASES, CaseLifecycleEngine, tasks_collection

from .support import MANAGER, SALES, FlakyStore, Recorder, make_file_store, make_store, new_case


def by_type(records, activity_type):
    return [record for record in records if record.type == activity_type]


class CaseCreationTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store()
        self.engine = CaseLifecycleEngine(self.store)

    def tearDown(self):
        self.bind.dispose()

    def test_new_case_is_a_lead_with_creation_record(self):
        case_id = new_case(self.engine, estimated_value=1850000)

        case = self.engine.get_case(case_id)
        self.assertEqual(case.status, Stage.LEAD)
        self.assertFalse(case.is_project)
        self.assertEqual(case.total_budget, 1850000)
        self.assertEqual(case.financial, {"totalBudget": 1850000})
        self.assertEqual(case.organization_id, "default-org")
        self.assertEqual(case.created_by, SALES.id)

        [record] = self.engine.ledger.list(case_id)
        self.assertEqual(record.type, ActivityType.OTHER)
        self.assertEqual(record.action, "Lead created")

    def test_get_unknown_case(self):
        with self.assertRaises(CaseNotFound):
            self.engine.get_case("missing")

    def test_legacy_status_and_budget_are_resolved_on_read(self):
        self.store.set(CASES, "legacy", {
            "clientName": "Old Lead",
            "status": "Quotation Sent",
            "budget": {"totalBudget": 500000},
        })
        case = self.engine.get_case("legacy")
        self.assertEqual(case.status, Stage.QUOTATION)
        self.assertEqual(case.total_budget, 500000)

        self.store.set(CASES, "older", {"clientName": "Older", "status": "execution", "budget": 1200})
        self.assertEqual(self.engine.get_case("older").status, Stage.EXECUTION_ACTIVE)
        self.assertEqual(self.engine.get_case("older").total_budget, 1200)

    def test_list_cases_filters_on_resolved_stage(self):
        new_case(self.engine)
        self.store.set(CASES, "legacy", {"clientName": "Old Lead", "status": "Negotiation"})
        flipped = new_case(self.engine, client_name="Project Client", assigned_sales="u-7")
        self.engine.flip_to_project(flipped, MANAGER)

        quotation = self.engine.list_cases(status=Stage.QUOTATION)
        self.assertEqual([case.id for case in quotation], ["legacy"])
        self.assertEqual([case.id for case in self.engine.list_cases(is_project=True)], [flipped])
        self.assertEqual([case.id for case in self.engine.list_cases(assigned_sales="u-7")], [flipped])
        self.assertEqual(len(self.engine.list_cases()), 3)


class ContactUpdateTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store()
        self.engine = CaseLifecycleEngine(self.store)
        self.case_id = new_case(self.engine, client_phone="+91 90000 00000")

    def tearDown(self):
        self.bind.dispose()

    def test_only_changed_fields_are_written_and_named(self):
        changed = self.engine.update_contact(
            self.case_id,
            ContactUpdate(client_phone="+91 98888 88888", client_name="Asha Menon"),
            MANAGER,
        )
        self.assertEqual(changed, ["clientPhone"])
        self.assertEqual(self.engine.get_case(self.case_id).client_phone, "+91 98888 88888")

        record = self.engine.ledger.list(self.case_id)[0]
        self.assertEqual(record.action, "Contact details updated")
        self.assertEqual(record.metadata, {"fields": ["clientPhone"]})
        self.assertNotIn("98888", str(record.model_dump()))

    def test_no_change_writes_nothing(self):
        changed = self.engine.update_contact(self.case_id, ContactUpdate(client_name="Asha Menon"), MANAGER)
        self.assertEqual(changed, [])
        self.assertEqual(len(self.engine.ledger.list(self.case_id)), 1)

    def test_empty_update_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.engine.update_contact(self.case_id, ContactUpdate(), MANAGER)


class UpdateStatusTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store()
        self.engine = CaseLifecycleEngine(self.store)
        self.case_id = new_case(self.engine)

    def tearDown(self):
        self.bind.dispose()

    def test_status_change_is_logged_with_old_and_new(self):
        stage = self.engine.update_status(self.case_id, "DRAWING", MANAGER, notes="Client approved layout")

        self.assertEqual(stage, Stage.DRAWING)
        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.DRAWING)
        [record] = by_type(self.engine.ledger.list(self.case_id), ActivityType.STATUS_CHANGE)
        self.assertEqual(record.metadata, {"oldStatus": "LEAD", "newStatus": "DRAWING"})
        self.assertEqual(record.notes, "Client approved layout")
        self.assertEqual(record.user_name, MANAGER.name)

    def test_old_status_is_resolved_from_legacy_label(self):
        self.store.set(CASES, self.case_id, {"status": "Site Visit Scheduled"})
        self.engine.update_status(self.case_id, Stage.DRAWING, MANAGER)
        record = self.engine.ledger.list(self.case_id)[0]
        self.assertEqual(record.metadata["oldStatus"], "SITE_VISIT")

    def test_invalid_stage_writes_nothing(self):
        for bad in ("Won", "nonsense", "", None, "planning", "execution", "site_visit"):
            with self.subTest(bad=bad):
                with self.assertRaises(ValidationError):
                    self.engine.update_status(self.case_id, bad, MANAGER)
        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.LEAD)
        self.assertEqual(len(self.engine.ledger.list(self.case_id)), 1)

    def test_unknown_case(self):
        with self.assertRaises(CaseNotFound):
            self.engine.update_status("missing", Stage.BOQ, MANAGER)

    def test_subscribers_see_each_transition(self):
        recorder = Recorder(lambda case: case.status)
        subscription = self.engine.subscribe_case(self.case_id, recorder)
        self.engine.update_status(self.case_id, Stage.SITE_VISIT, MANAGER)
        self.engine.update_status(self.case_id, Stage.DRAWING, MANAGER)
        subscription.close()

        self.assertEqual(recorder.calls, [Stage.LEAD, Stage.SITE_VISIT, Stage.DRAWING])


class ConcurrentStatusUpdateTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind, self.path = make_file_store()
        self.engine = CaseLifecycleEngine(self.store)
        self.case_id = new_case(self.engine)

    def tearDown(self):
        self.bind.dispose()
        os.remove(self.path)

    def test_last_write_wins_and_both_transitions_are_logged(self):
        barrier = threading.Barrier(2)
        errors = []

        def move(stage, actor):
            barrier.wait()
            try:
                self.engine.update_status(self.case_id, stage, actor)
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=move, args=(Stage.DRAWING, SALES)),
            threading.Thread(target=move, args=(Stage.BOQ, MANAGER)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        changes = by_type(self.engine.ledger.list(self.case_id), ActivityType.STATUS_CHANGE)
        self.assertEqual(
            sorted(record.metadata["newStatus"] for record in changes),
            ["BOQ", "DRAWING"],
        )
        self.assertIn(self.engine.get_case(self.case_id).status, (Stage.DRAWING, Stage.BOQ))


class AssignTaskTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store()
        self.engine = CaseLifecycleEngine(self.store)
        self.case_id = new_case(self.engine)
        self.deadline = datetime.now(timezone.utc) + timedelta(days=3)

    def tearDown(self):
        self.bind.dispose()

    def test_site_inspection_moves_lead_to_site_visit(self):
        task_id = self.engine.assign_task(
            self.case_id,
            TaskCreate(title="Site Inspection", assigned_to="u-eng", deadline=self.deadline),
            MANAGER,
        )

        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.SITE_VISIT)
        self.assertEqual(self.engine.get_case(self.case_id).assigned_sales, "u-eng")
        records = self.engine.ledger.list(self.case_id, newest_first=False)
        [change] = by_type(records, ActivityType.STATUS_CHANGE)
        [created] = by_type(records, ActivityType.TASK_CREATED)
        self.assertEqual(change.metadata["oldStatus"], "LEAD")
        self.assertEqual(change.metadata["newStatus"], "SITE_VISIT")
        self.assertEqual(created.metadata["taskId"], task_id)
        self.assertEqual(created.metadata["taskType"], "SITE_VISIT")
        self.assertLess(records.index(change), records.index(created))

        [task] = self.engine.list_tasks(self.case_id)
        self.assertEqual(task.id, task_id)
        self.assertEqual(task.type, TaskType.SITE_VISIT)
        self.assertEqual(task.status, TaskStatus.PENDING)
        self.assertEqual(task.assigned_by, MANAGER.id)

    def test_quotation_task_regresses_execution_case_to_boq(self):
        self.engine.update_status(self.case_id, Stage.EXECUTION_ACTIVE, MANAGER)
        self.engine.assign_task(self.case_id, TaskCreate(title="Make Quotation", assigned_to="u-qs"), MANAGER)

        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.BOQ)
        change = by_type(self.engine.ledger.list(self.case_id), ActivityType.STATUS_CHANGE)[0]
        self.assertEqual(change.metadata, {"oldStatus": "EXECUTION_ACTIVE", "newStatus": "BOQ"})

    def test_declared_type_is_used_when_title_matches_nothing(self):
        self.engine.assign_task(
            self.case_id,
            TaskCreate(title="Kitchen layout", type=TaskType.DRAWING_TASK, assigned_to="u-des"),
            MANAGER,
        )
        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.DRAWING)

    def test_unmatched_task_falls_back_to_lead(self):
        self.engine.update_status(self.case_id, Stage.DRAWING, MANAGER)
        self.engine.assign_task(self.case_id, TaskCreate(title="Call client", assigned_to="u-sales"), MANAGER)

        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.LEAD)
        [task] = self.engine.list_tasks(self.case_id)
        self.assertEqual(task.type, TaskType.SALES_CONTACT)

    def test_unknown_case_creates_no_task(self):
        with self.assertRaises(CaseNotFound):
            self.engine.assign_task("missing", TaskCreate(title="Site visit", assigned_to="u"), MANAGER)
        self.assertEqual(self.store.query(tasks_collection("missing")), [])


class PartialFailureTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store(store_class=FlakyStore)
        self.engine = CaseLifecycleEngine(self.store)
        self.case_id = new_case(self.engine)

    def tearDown(self):
        self.bind.dispose()

    def test_task_write_failure_changes_nothing(self):
        self.store.fail("add", "/tasks")
        with self.assertRaises(StoreUnavailable):
            self.engine.assign_task(self.case_id, TaskCreate(title="Site visit", assigned_to="u"), MANAGER)
        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.LEAD)
        self.assertEqual(len(self.engine.ledger.list(self.case_id)), 1)

    def test_ledger_failure_after_task_reports_ids(self):
        self.store.fail("add", "/activities")
        with self.assertRaises(PartialPipelineFailure) as ctx:
            self.engine.assign_task(self.case_id, TaskCreate(title="Site visit", assigned_to="u"), MANAGER)

        error = ctx.exception
        self.assertEqual(error.state["case_id"], self.case_id)
        [task] = self.store.query(tasks_collection(self.case_id))
        self.assertEqual(error.state["task_id"], task["id"])
        self.assertIn("task", error.completed_steps)
        # The stage was written before the ledger failed
        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.SITE_VISIT)

    def test_status_write_failure_leaves_task_in_place(self):
        self.store.fail("set", CASES)
        with self.assertRaises(PartialPipelineFailure) as ctx:
            self.engine.assign_task(self.case_id, TaskCreate(title="Site visit", assigned_to="u"), MANAGER)

        self.assertEqual(ctx.exception.failed_step, "status")
        self.assertEqual(ctx.exception.completed_steps, ["task"])
        self.store.heal()
        self.assertEqual(len(self.engine.list_tasks(self.case_id)), 1)
        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.LEAD)

    def test_update_status_ledger_failure(self):
        self.store.fail("add", "/activities")
        with self.assertRaises(PartialPipelineFailure) as ctx:
            self.engine.update_status(self.case_id, Stage.BOQ, MANAGER)
        self.assertEqual(ctx.exception.state, {"case_id": self.case_id, "status": "BOQ"})

    def test_note_survives_updated_at_failure(self):
        self.store.fail("set", CASES)
        record_id = self.engine.log_note(self.case_id, "Client prefers walnut", SALES)
        self.assertEqual(self.engine.ledger.list(self.case_id)[0].id, record_id)


class ProjectFlipTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store()
        self.engine = CaseLifecycleEngine(self.store)
        self.case_id = new_case(self.engine)

    def tearDown(self):
        self.bind.dispose()

    def test_flip_twice_succeeds_both_times(self):
        self.assertTrue(self.engine.flip_to_project(self.case_id, MANAGER))
        self.assertFalse(self.engine.flip_to_project(self.case_id, MANAGER))

        self.assertTrue(self.engine.get_case(self.case_id).is_project)
        flips = [r for r in self.engine.ledger.list(self.case_id) if r.action == "Converted to project"]
        self.assertEqual(len(flips), 1)

    def test_strict_mode_raises_on_repeat(self):
        self.engine.flip_to_project(self.case_id, MANAGER)
        with self.assertRaises(AlreadyAProject):
            self.engine.flip_to_project(self.case_id, MANAGER, strict=True)

    def test_flip_does_not_change_stage(self):
        self.engine.update_status(self.case_id, Stage.QUOTATION, MANAGER)
        self.engine.flip_to_project(self.case_id, MANAGER)
        self.assertEqual(self.engine.get_case(self.case_id).status, Stage.QUOTATION)


class NotesAndRemindersTests(unittest.TestCase):
    def setUp(self):
        self.store, self.bind = make_store()
        self.engine = CaseLifecycleEngine(self.store)
        self.case_id = new_case(self.engine)

    def tearDown(self):
        self.bind.dispose()

    def test_note_does_not_change_stage_but_touches_case(self):
        before = self.store.get(CASES, self.case_id)["updatedAt"]
        self.engine.log_note(self.case_id, "Client wants a modular kitchen", SALES)

        case = self.engine.get_case(self.case_id)
        self.assertEqual(case.status, Stage.LEAD)
        self.assertGreater(self.store.get(CASES, self.case_id)["updatedAt"], before)
        note = self.engine.ledger.list(self.case_id)[0]
        self.assertEqual(note.type, ActivityType.NOTE)
        self.assertEqual(note.notes, "Client wants a modular kitchen")

    def test_attachments_are_logged_as_file_upload(self):
        attachment = Attachment(
            url="https://files.example.com/c1/floor-plan.pdf",
            name="floor-plan.pdf",
            size=48213,
            content_type="application/pdf",
        )
        self.engine.log_note(self.case_id, "Floor plan from client", SALES, attachments=[attachment])

        upload = self.engine.ledger.list(self.case_id)[0]
        self.assertEqual(upload.type, ActivityType.FILE_UPLOAD)
        self.assertEqual(upload.metadata["attachments"], [{
            "url": "https://files.example.com/c1/floor-plan.pdf",
            "name": "floor-plan.pdf",
            "size": 48213,
            "contentType": "application/pdf",
        }])

    def test_blank_note_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.engine.log_note(self.case_id, "   ", SALES)
        self.assertEqual(len(self.engine.ledger.list(self.case_id)), 1)

    def test_reminder_record(self):
        remind_at = datetime(2030, 5, 1, 9, 30, tzinfo=timezone.utc)
        self.engine.schedule_reminder(
            self.case_id,
            ReminderCreate(title="Call back about veneer", remind_at=remind_at),
            SALES,
        )
        reminder = self.engine.ledger.list(self.case_id)[0]
        self.assertEqual(reminder.type, ActivityType.REMINDER)
        self.assertEqual(reminder.metadata["remindAt"], remind_at.isoformat())

    def test_activity_subscription(self):
        recorder = Recorder(lambda records: [r.type for r in records])
        subscription = self.engine.subscribe_activities(self.case_id, recorder)
        self.engine.log_note(self.case_id, "hello", SALES)
        subscription.close()

        self.assertEqual(recorder.calls[0], [ActivityType.OTHER])
        self.assertEqual(recorder.last, [ActivityType.NOTE, ActivityType.OTHER])


if __name__ == "__main__":
    unittest.main()
