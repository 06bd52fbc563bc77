"""
Pydantic schemas for request/response validation.

Stored documents use camelCase field names; Python attributes are
snake_case.
"""

from .common import DocumentModel, HealthResponse, ErrorResponse, ErrorDetail, SuccessResponse
from .activity import Attachment, ActivityCreate, ActivityRecord, ActivityCreated
from .case import (
    Actor,
    SYSTEM_ACTOR,
    CaseCreate,
    ContactUpdate,
    CaseRecord,
    StatusUpdateRequest,
    ProjectFlipResponse,
    TaskCreate,
    TaskRecord,
    TaskAssignmentResponse,
    NoteCreate,
    ReminderCreate,
)
from .enquiry import (
    EnquiryCreate,
    EnquiryRecord,
    AssignEnquiryRequest,
    LeadFields,
    ConversionResponse,
    ViewedResponse,
)
from .rfq import RfqItem, RfqCreate, RfqRecord

__all__ = [
    # Common
    "DocumentModel",
    "HealthResponse",
    "ErrorResponse",
    "ErrorDetail",
    "SuccessResponse",
    # Activity ledger
    "Attachment",
    "ActivityCreate",
    "ActivityRecord",
    "ActivityCreated",
    # Cases and tasks
    "Actor",
    "SYSTEM_ACTOR",
    "CaseCreate",
    "ContactUpdate",
    "CaseRecord",
    "StatusUpdateRequest",
    "ProjectFlipResponse",
    "TaskCreate",
    "TaskRecord",
    "TaskAssignmentResponse",
    "NoteCreate",
    "ReminderCreate",
    # Enquiries
    "EnquiryCreate",
    "EnquiryRecord",
    "AssignEnquiryRequest",
    "LeadFields",
    "ConversionResponse",
    "ViewedResponse",
    # RFQs
    "RfqItem",
    "RfqCreate",
    "RfqRecord",
]
