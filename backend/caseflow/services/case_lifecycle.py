"""
Case Lifecycle Engine.

Owns every mutation of a case: stage changes, task assignment, notes,
reminders, contact edits, and the one-way flip to project. Each write goes
to the Document Store first and is then recorded in the Activity Ledger.

Concurrency:
- operations on different cases are independent
- concurrent writes to the same case are last-write-wins on the case
  document; every transition still lands in the ledger
- the engine does not lock or serialize callers

Multi-write operations are not atomic. When a later write fails after an
earlier one succeeded, ``PartialPipelineFailure`` carries the ids needed to
finish the work; nothing already written is rolled back.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .activity_ledger import ActivityLedger
from .document_store import SERVER_TIMESTAMP, SqlDocumentStore, Subscription
from .status_resolver import resolve_document, StatusInput
from .transition_policy import TransitionPolicy, default_policy, derive_task_type
from ..core.config import settings
from ..core.errors import (
    CaseflowError,
    CaseNotFound,
    ValidationError,
    StoreUnavailable,
    PartialPipelineFailure,
    AlreadyAProject,
)
from ..models.enums import Stage, ActivityType, TaskStatus
from ..schemas.activity import Attachment
from ..schemas.case import (
    Actor,
    CaseCreate,
    CaseRecord,
    ContactUpdate,
    ReminderCreate,
    TaskCreate,
    TaskRecord,
)


logger = logging.getLogger(__name__)

CASES = "cases"


def tasks_collection(case_id: str) -> str:
    return f"{CASES}/{case_id}/tasks"


def to_case_record(doc: Dict[str, Any]) -> CaseRecord:
    """Build the read model for a stored case, resolving its status."""
    data = dict(doc)
    data["status"] = resolve_document(doc)
    return CaseRecord.model_validate(data)


class CaseLifecycleEngine:
    """
    Orchestrates case mutations over the Document Store and Activity Ledger.

    Example usage:
        engine = CaseLifecycleEngine(store)
        case_id = engine.create_case(CaseCreate(client_name="Asha"), actor)
        engine.assign_task(case_id, TaskCreate(title="Site Inspection", assigned_to="u-2"), actor)
    """

    def __init__(
        self,
        store: SqlDocumentStore,
        ledger: Optional[ActivityLedger] = None,
        policy: Optional[TransitionPolicy] = None,
    ):
        self.store = store
        self.ledger = ledger or ActivityLedger(store)
        self.policy = policy or default_policy

    # =========================================================================
    # Reads
    # =========================================================================

    def _load_case(self, case_id: str) -> Dict[str, Any]:
        doc = self.store.get(CASES, case_id)
        if doc is None:
            raise CaseNotFound(case_id)
        return doc

    def get_case(self, case_id: str) -> CaseRecord:
        """Return the case with its status resolved to a Stage."""
        return to_case_record(self._load_case(case_id))

    def list_cases(
        self,
        is_project: Optional[bool] = None,
        assigned_sales: Optional[str] = None,
        status: Optional[Stage] = None,
    ) -> List[CaseRecord]:
        """
        List cases, newest first.

        ``status`` filters on the resolved stage, so cases still carrying a
        legacy label are matched by the stage it resolves to.
        """
        where: Dict[str, Any] = {}
        if is_project is not None:
            where["isProject"] = is_project
        if assigned_sales is not None:
            where["assignedSales"] = assigned_sales

        records = [
            to_case_record(doc)
            for doc in self.store.query(CASES, where=where, order_by="createdAt", descending=True)
        ]
        if status is not None:
            records = [record for record in records if record.status == status]
        return records

    def list_tasks(self, case_id: str) -> List[TaskRecord]:
        self._load_case(case_id)
        docs = self.store.query(tasks_collection(case_id), order_by="createdAt", descending=True)
        return [TaskRecord.model_validate(doc) for doc in docs]

    # =========================================================================
    # Creation / Contact
    # =========================================================================

    def create_case(self, data: CaseCreate, actor: Actor, case_id: Optional[str] = None) -> str:
        """
        Create a case in the LEAD stage and record its creation.

        Args:
            data: Case fields
            actor: Creating user
            case_id: Document id to use instead of a generated one

        Raises:
            ValidationError: ``case_id`` is already taken
            StoreUnavailable: the case was not written
            PartialPipelineFailure: the case exists but its creation record
                was not written (``state["case_id"]``)
        """
        fields = data.to_document()
        estimated_value = fields.pop("estimatedValue", None)
        if estimated_value is not None:
            fields["financial"] = {"totalBudget": estimated_value}

        fields.setdefault("organizationId", settings.default_organization_id)
        fields.update({
            "status": Stage.LEAD.value,
            "isProject": False,
            "createdBy": actor.id,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        })

        case_id = self.store.add(CASES, fields, doc_id=case_id)
        logger.info(f"Case created: {case_id} by={actor.id}")

        try:
            self.ledger.record(
                case_id,
                ActivityType.OTHER,
                "Lead created",
                actor,
                metadata={"sourceEnquiryId": data.source_enquiry_id} if data.source_enquiry_id else None,
            )
        except StoreUnavailable as e:
            raise PartialPipelineFailure(
                f"Case {case_id} created but its creation record was not written",
                completed_steps=["case"],
                failed_step="activity",
                state={"case_id": case_id},
            ) from e

        return case_id

    def update_contact(self, case_id: str, update: ContactUpdate, actor: Actor) -> List[str]:
        """
        Write changed contact fields and log which fields changed.

        Values are not copied into the ledger, only field names.

        Returns:
            Names of the fields that changed (empty if nothing changed)
        """
        fields = update.model_dump(by_alias=True, exclude_none=True, mode="json")
        if not fields:
            raise ValidationError("No contact fields provided")

        doc = self._load_case(case_id)
        changed = {name: value for name, value in fields.items() if doc.get(name) != value}
        if not changed:
            return []

        self.store.set(CASES, case_id, {**changed, "updatedAt": SERVER_TIMESTAMP})
        logger.info(f"Case {case_id} contact updated by={actor.id} fields={sorted(changed)}")

        try:
            self.ledger.record(
                case_id,
                ActivityType.OTHER,
                "Contact details updated",
                actor,
                metadata={"fields": sorted(changed)},
            )
        except StoreUnavailable as e:
            raise PartialPipelineFailure(
                f"Case {case_id} contact updated but the change was not logged",
                completed_steps=["contact"],
                failed_step="activity",
                state={"case_id": case_id},
            ) from e

        return sorted(changed)

    # =========================================================================
    # Stage Transitions
    # =========================================================================

    def update_status(
        self,
        case_id: str,
        new_stage: StatusInput,
        actor: Actor,
        notes: Optional[str] = None,
        assigned_sales: Optional[str] = None,
    ) -> Stage:
        """
        Set a case's stage and append a status_change record.

        ``new_stage`` must be a canonical Stage value; legacy labels and
        lower-case aliases are only accepted on reads. ``assigned_sales`` is
        written in the same update as the stage.

        Concurrent calls are last-write-wins on the case; each call still
        appends its own record with the old/new pair it observed.

        Raises:
            ValidationError: ``new_stage`` is not a Stage
            CaseNotFound: no such case
            StoreUnavailable: the stage was not written
            PartialPipelineFailure: the stage was written but the record was not
        """
        try:
            stage = Stage(new_stage)
        except ValueError:
            raise ValidationError(f"Invalid stage: {new_stage!r}") from None

        old_stage = resolve_document(self._load_case(case_id))

        fields = {"status": stage.value, "updatedAt": SERVER_TIMESTAMP}
        if assigned_sales:
            fields["assignedSales"] = assigned_sales
        self.store.set(CASES, case_id, fields)
        logger.info(
            f"Case {case_id} status {old_stage.value} -> {stage.value} by={actor.id}"
        )

        try:
            self.ledger.record(
                case_id,
                ActivityType.STATUS_CHANGE,
                f"Status changed from {old_stage.value} to {stage.value}",
                actor,
                notes=notes,
                metadata={"oldStatus": old_stage.value, "newStatus": stage.value},
            )
        except StoreUnavailable as e:
            raise PartialPipelineFailure(
                f"Case {case_id} moved to {stage.value} but the status change was not logged",
                completed_steps=["status"],
                failed_step="activity",
                state={"case_id": case_id, "status": stage.value},
            ) from e

        return stage

    def derive_stage(self, task: TaskCreate, current_stage: Optional[Stage] = None) -> Stage:
        """
        Stage a task moves its case to.

        The title is matched first; when it matches no rule the declared
        type is tried; otherwise the policy default applies.
        """
        stage = self.policy.match(task.title, current_stage)
        if stage is None and task.type is not None:
            stage = self.policy.match(task.type, current_stage)
        return stage if stage is not None else self.policy.default_stage

    def assign_task(self, case_id: str, task: TaskCreate, actor: Actor) -> str:
        """
        Create a task, move the case to the derived stage and assignee, and
        record both.

        The task is written first; if that fails nothing else happens. Any
        later failure leaves the task in place and raises
        ``PartialPipelineFailure`` with ``case_id`` and ``task_id``.

        Returns:
            The new task id
        """
        current_stage = resolve_document(self._load_case(case_id))
        task_type = task.type or derive_task_type(task.title)
        target_stage = self.derive_stage(task, current_stage)

        if task.deadline is None:
            logger.warning(f"Task assigned on case {case_id} without a deadline")

        fields = task.to_document()
        fields.update({
            "caseId": case_id,
            "type": task_type.value,
            "assignedBy": actor.id,
            "status": TaskStatus.PENDING.value,
            "createdAt": SERVER_TIMESTAMP,
        })
        task_id = self.store.add(tasks_collection(case_id), fields)
        logger.info(
            f"Task {task_id} ({task_type.value}) created on case {case_id} "
            f"for={task.assigned_to} by={actor.id}"
        )

        completed: List[str] = ["task"]
        step = "status"
        try:
            self.update_status(
                case_id,
                target_stage,
                actor,
                notes=f"Task assigned: {task.title}",
                assigned_sales=task.assigned_to,
            )
            completed.append("status")
            step = "task_activity"
            self.ledger.record(
                case_id,
                ActivityType.TASK_CREATED,
                f"Task created: {task.title}",
                actor,
                notes=task.notes,
                metadata={
                    "taskId": task_id,
                    "taskType": task_type.value,
                    "assignedTo": task.assigned_to,
                    "deadline": task.deadline.isoformat() if task.deadline else None,
                },
            )
        except PartialPipelineFailure as e:
            completed.extend(e.completed_steps)
            raise PartialPipelineFailure(
                f"Task {task_id} created on case {case_id} but assignment did not complete",
                completed_steps=completed,
                failed_step="status_activity",
                state={"case_id": case_id, "task_id": task_id},
            ) from e
        except CaseflowError as e:
            logger.error(f"Task {task_id} on case {case_id} created but {step} failed: {e}")
            raise PartialPipelineFailure(
                f"Task {task_id} created on case {case_id} but assignment did not complete",
                completed_steps=completed,
                failed_step=step,
                state={"case_id": case_id, "task_id": task_id},
            ) from e

        return task_id

    def flip_to_project(self, case_id: str, actor: Actor, strict: bool = False) -> bool:
        """
        One-way flip of ``isProject`` to true.

        Returns:
            True if the case was flipped, False if it already was a project

        Raises:
            AlreadyAProject: only when ``strict`` and the case already is one
        """
        doc = self._load_case(case_id)
        if doc.get("isProject") is True:
            if strict:
                raise AlreadyAProject(case_id)
            logger.info(f"Case {case_id} is already a project")
            return False

        self.store.set(CASES, case_id, {"isProject": True, "updatedAt": SERVER_TIMESTAMP})
        logger.info(f"Case {case_id} converted to project by={actor.id}")

        try:
            self.ledger.record(
                case_id,
                ActivityType.OTHER,
                "Converted to project",
                actor,
                metadata={"isProject": True},
            )
        except StoreUnavailable as e:
            raise PartialPipelineFailure(
                f"Case {case_id} is now a project but the change was not logged",
                completed_steps=["project"],
                failed_step="activity",
                state={"case_id": case_id},
            ) from e

        return True

    # =========================================================================
    # Notes / Reminders
    # =========================================================================

    def log_note(
        self,
        case_id: str,
        text: str,
        actor: Actor,
        attachments: Optional[List[Attachment]] = None,
    ) -> str:
        """
        Append a note, or a file_upload record when attachments are given.

        Does not change the case stage.

        Returns:
            The new record id
        """
        if not text or not text.strip():
            raise ValidationError("Note text is required")
        self._load_case(case_id)

        if attachments:
            record_id = self.ledger.record(
                case_id,
                ActivityType.FILE_UPLOAD,
                f"Uploaded {len(attachments)} file(s)",
                actor,
                notes=text,
                metadata={"attachments": [attachment.to_document() for attachment in attachments]},
            )
        else:
            record_id = self.ledger.record(case_id, ActivityType.NOTE, "Note added", actor, notes=text)

        self._touch(case_id)
        return record_id

    def schedule_reminder(self, case_id: str, reminder: ReminderCreate, actor: Actor) -> str:
        """Append a reminder record to the case. Returns the record id."""
        self._load_case(case_id)
        record_id = self.ledger.record(
            case_id,
            ActivityType.REMINDER,
            f"Reminder set: {reminder.title}",
            actor,
            notes=reminder.notes,
            metadata={"remindAt": reminder.remind_at.isoformat()},
        )
        self._touch(case_id)
        return record_id

    def _touch(self, case_id: str) -> None:
        """Advance ``updatedAt`` after a ledger-only write."""
        try:
            self.store.set(CASES, case_id, {"updatedAt": SERVER_TIMESTAMP})
        except StoreUnavailable as e:
            logger.warning(f"Could not advance updatedAt on case {case_id}: {e}")

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe_case(
        self,
        case_id: str,
        callback: Callable[[Optional[CaseRecord]], None],
    ) -> Subscription:
        """Live case snapshots with the status resolved; None if the case is missing."""
        def deliver(doc: Optional[Dict[str, Any]]) -> None:
            callback(to_case_record(doc) if doc is not None else None)

        return self.store.subscribe(CASES, deliver, doc_id=case_id)

    def subscribe_activities(self, case_id: str, callback, newest_first: bool = True) -> Subscription:
        return self.ledger.subscribe(case_id, callback, newest_first=newest_first)
