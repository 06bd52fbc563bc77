"""
Conversion Pipeline: Enquiry -> Case -> client project record.

Conversion is three separate writes with no transaction around them:

1. create the case (LEAD, not a project) from the enquiry's contact fields
2. mark the enquiry CONVERTED_TO_LEAD with ``convertedCaseId``
3. create the client-facing project record (best effort)

Every step is safe to re-run:
- an enquiry that already has ``convertedCaseId`` returns it, no writes
- the case id is derived from the enquiry id (``CASE-<enquiryId>``), so
  concurrent conversions of one enquiry create a single case
- a case left behind by an interrupted run is found by ``sourceEnquiryId``
  and reused instead of creating a duplicate
- the client project id is derived from the enquiry id (ENQ -> PRJ), so
  ``ensure_client_project`` can complete step 3 at any time
"""

import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .case_lifecycle import CASES, CaseLifecycleEngine
from .document_store import ArrayUnion, SERVER_TIMESTAMP, SqlDocumentStore
from ..core.config import settings
from ..core.errors import (
    EnquiryNotFound,
    PartialPipelineFailure,
    StoreUnavailable,
    ValidationError,
)
from ..models.enums import EnquiryStatus
from ..schemas.case import Actor, CaseCreate
from ..schemas.enquiry import (
    AssignEnquiryRequest,
    EnquiryCreate,
    EnquiryRecord,
    LeadFields,
)


logger = logging.getLogger(__name__)

ENQUIRIES = "enquiries"
CLIENT_PROJECTS = "clientProjects"

# Attempts at finding an unused enquiry id before giving up
MAX_ENQUIRY_ID_ATTEMPTS = 5

# Enquiry fields copied onto the client project record
_CLIENT_PROJECT_FIELDS = (
    "clientName",
    "email",
    "mobile",
    "city",
    "projectType",
    "spaceType",
    "area",
    "numberOfZones",
    "isRenovation",
    "designStyle",
    "budgetRange",
    "startTime",
    "completionTimeline",
    "additionalNotes",
)


# =============================================================================
# Identifiers
# =============================================================================

def generate_enquiry_id(now: Optional[datetime] = None) -> str:
    """
    Generate an enquiry id like ``ENQ-2024-04211``.

    Year plus five random digits; uniqueness is checked on insert.
    """
    year = (now or datetime.now(timezone.utc)).year
    return f"{settings.enquiry_id_prefix}-{year}-{random.randint(0, 99999):05d}"


def converted_case_id(enquiry_id: str) -> str:
    """Case id for an enquiry's conversion: ``ENQ-2024-04211`` -> ``CASE-ENQ-2024-04211``."""
    return f"{settings.converted_case_prefix}-{enquiry_id}"


def client_project_id(enquiry_id: str) -> str:
    """Client project id for an enquiry: ``ENQ-2024-04211`` -> ``PRJ-2024-04211``."""
    prefix = settings.enquiry_id_prefix
    if enquiry_id.startswith(prefix):
        return settings.client_project_prefix + enquiry_id[len(prefix):]
    return f"{settings.client_project_prefix}-{enquiry_id}"


# =============================================================================
# Pipeline
# =============================================================================

class ConversionPipeline:
    """
    Enquiry intake and conversion into cases.

    Example usage:
        pipeline = ConversionPipeline(store, engine)
        enquiry_id = pipeline.create_enquiry(EnquiryCreate(...))
        case_id = pipeline.convert_enquiry(enquiry_id, LeadFields(), actor)
    """

    def __init__(self, store: SqlDocumentStore, engine: Optional[CaseLifecycleEngine] = None):
        self.store = store
        self.engine = engine or CaseLifecycleEngine(store)

    # =========================================================================
    # Intake
    # =========================================================================

    def create_enquiry(self, data: EnquiryCreate) -> str:
        """
        Store a new enquiry with status NEW and an empty ``viewedBy``.

        Returns:
            The enquiry id, which is also its document id
        """
        fields = data.to_document()
        fields.update({
            "status": EnquiryStatus.NEW.value,
            "viewedBy": [],
            "isNew": True,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        })

        for _ in range(MAX_ENQUIRY_ID_ATTEMPTS):
            enquiry_id = generate_enquiry_id()
            try:
                self.store.add(ENQUIRIES, {**fields, "enquiryId": enquiry_id}, doc_id=enquiry_id)
            except ValidationError:
                logger.warning(f"Enquiry id collision on {enquiry_id}, regenerating")
                continue
            logger.info(f"Enquiry created: {enquiry_id}")
            return enquiry_id

        raise StoreUnavailable("Could not allocate a unique enquiry id")

    def _load_enquiry(self, enquiry_id: str) -> Dict[str, Any]:
        doc = self.store.get(ENQUIRIES, enquiry_id)
        if doc is None:
            raise EnquiryNotFound(enquiry_id)
        return doc

    def get_enquiry(self, enquiry_id: str) -> EnquiryRecord:
        return EnquiryRecord.model_validate(self._load_enquiry(enquiry_id))

    def list_enquiries(
        self,
        status: Optional[EnquiryStatus] = None,
        unseen_by: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> List[EnquiryRecord]:
        """
        List enquiries, newest first.

        Args:
            status: Only this status
            unseen_by: Only enquiries this actor has not viewed
            assigned_to: Only enquiries assigned to this actor
        """
        where: Dict[str, Any] = {}
        if status is not None:
            where["status"] = status.value
        if assigned_to is not None:
            where["assignedTo"] = assigned_to

        docs = self.store.query(ENQUIRIES, where=where, order_by="createdAt", descending=True)
        if unseen_by is not None:
            docs = [doc for doc in docs if unseen_by not in (doc.get("viewedBy") or [])]
        return [EnquiryRecord.model_validate(doc) for doc in docs]

    def mark_viewed(self, enquiry_id: str, actor_id: str) -> List[str]:
        """
        Add ``actor_id`` to the enquiry's ``viewedBy`` set.

        Repeated calls leave a single entry.

        Returns:
            The ``viewedBy`` list after the write
        """
        if not actor_id:
            raise ValidationError("Actor id is required")
        self._load_enquiry(enquiry_id)
        self.store.set(ENQUIRIES, enquiry_id, {"viewedBy": ArrayUnion([actor_id])})
        return list(self._load_enquiry(enquiry_id).get("viewedBy") or [])

    def assign_enquiry(self, enquiry_id: str, request: AssignEnquiryRequest, actor: Actor) -> None:
        """Assign an enquiry to a sales team member."""
        enquiry = self._load_enquiry(enquiry_id)
        if enquiry.get("status") == EnquiryStatus.CONVERTED_TO_LEAD.value:
            raise ValidationError(f"Enquiry {enquiry_id} is already converted")

        self.store.set(ENQUIRIES, enquiry_id, {
            "status": EnquiryStatus.ASSIGNED.value,
            "assignedTo": request.assigned_to,
            "assignedToName": request.assigned_to_name,
            "isNew": False,
            "updatedAt": SERVER_TIMESTAMP,
        })
        logger.info(f"Enquiry {enquiry_id} assigned to={request.assigned_to} by={actor.id}")

    # =========================================================================
    # Conversion
    # =========================================================================

    def find_converted_case(self, enquiry_id: str) -> Optional[str]:
        """Id of a case already created from this enquiry, if any."""
        docs = self.store.query(CASES, where={"sourceEnquiryId": enquiry_id}, limit=1)
        return docs[0]["id"] if docs else None

    def convert_enquiry(self, enquiry_id: str, lead_fields: LeadFields, actor: Actor) -> str:
        """
        Convert an enquiry into a LEAD case.

        Returns:
            The case id; the existing one if the enquiry was already converted

        Raises:
            EnquiryNotFound: no such enquiry
            StoreUnavailable: nothing was written
            PartialPipelineFailure: the case exists but the enquiry was not
                updated (``state["case_id"]``); re-running completes it
        """
        enquiry = self._load_enquiry(enquiry_id)

        existing_case_id = enquiry.get("convertedCaseId")
        if existing_case_id:
            logger.info(f"Enquiry {enquiry_id} already converted to case {existing_case_id}")
            return existing_case_id

        case_id = self.find_converted_case(enquiry_id)
        if case_id:
            logger.warning(f"Resuming conversion of {enquiry_id} with existing case {case_id}")
        else:
            case_id = self._create_case(enquiry_id, enquiry, lead_fields, actor)

        try:
            self.store.set(ENQUIRIES, enquiry_id, {
                "status": EnquiryStatus.CONVERTED_TO_LEAD.value,
                "convertedCaseId": case_id,
                "isNew": False,
                "updatedAt": SERVER_TIMESTAMP,
            })
        except StoreUnavailable as e:
            logger.error(f"Case {case_id} created but enquiry {enquiry_id} was not updated: {e}")
            raise PartialPipelineFailure(
                f"Case {case_id} created but enquiry {enquiry_id} was not marked converted",
                completed_steps=["case"],
                failed_step="enquiry",
                state={"case_id": case_id, "enquiry_id": enquiry_id},
            ) from e

        logger.info(f"Enquiry {enquiry_id} converted to case {case_id} by={actor.id}")

        try:
            self.ensure_client_project(enquiry_id)
        except StoreUnavailable as e:
            logger.warning(
                f"Client project for {enquiry_id} not created, will need a retry: {e}"
            )

        return case_id

    def _create_case(
        self,
        enquiry_id: str,
        enquiry: Dict[str, Any],
        lead_fields: LeadFields,
        actor: Actor,
    ) -> str:
        client_name = enquiry.get("clientName") or enquiry_id
        data = CaseCreate(
            client_name=client_name,
            client_email=enquiry.get("email"),
            client_phone=enquiry.get("mobile"),
            title=lead_fields.project_name or f"{client_name} Project",
            site_address=lead_fields.address,
            assigned_sales=lead_fields.assigned_to or enquiry.get("assignedTo"),
            organization_id=lead_fields.organization_id,
            estimated_value=lead_fields.estimated_value,
            source_enquiry_id=enquiry_id,
        )
        case_id = converted_case_id(enquiry_id)
        try:
            return self.engine.create_case(data, actor, case_id=case_id)
        except ValidationError:
            if self.store.get(CASES, case_id) is None:
                raise
            logger.warning(f"Case {case_id} for {enquiry_id} was created by a concurrent conversion")
            return case_id
        except PartialPipelineFailure as e:
            raise PartialPipelineFailure(
                f"Case created from enquiry {enquiry_id} but conversion did not complete",
                completed_steps=e.completed_steps,
                failed_step=e.failed_step,
                state={**e.state, "enquiry_id": enquiry_id},
            ) from e

    # =========================================================================
    # Client Project
    # =========================================================================

    def get_client_project(self, enquiry_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get(CLIENT_PROJECTS, client_project_id(enquiry_id))

    def ensure_client_project(self, enquiry_id: str) -> str:
        """
        Create the client-facing project record for a converted enquiry.

        Idempotent: returns the existing record's id when present.

        Raises:
            ValidationError: the enquiry has not been converted yet
        """
        enquiry = self._load_enquiry(enquiry_id)
        case_id = enquiry.get("convertedCaseId")
        if not case_id:
            raise ValidationError(f"Enquiry {enquiry_id} has not been converted")

        project_id = client_project_id(enquiry_id)
        if self.store.get(CLIENT_PROJECTS, project_id) is not None:
            return project_id

        fields: Dict[str, Any] = {
            name: enquiry[name] for name in _CLIENT_PROJECT_FIELDS if enquiry.get(name) is not None
        }
        fields.update({
            "projectId": project_id,
            "enquiryId": enquiry_id,
            "caseId": case_id,
            "currentStage": 1,
            "expectedCompletion": "",
            "consultant": enquiry.get("assignedToName") or "",
            "consultantId": enquiry.get("assignedTo") or "",
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        })

        try:
            self.store.add(CLIENT_PROJECTS, fields, doc_id=project_id)
        except ValidationError:
            # Created concurrently by another run
            return project_id

        logger.info(f"Client project {project_id} created for case {case_id}")
        return project_id
