"""
Enumerations for cases, tasks, the activity ledger, enquiries and RFQs.

Values are what is stored in documents. The two ``Legacy*`` enums are the
older status vocabularies that may still appear on stored records; they are
only ever read through the status resolver.
"""

import enum


# =============================================================================
# Case Lifecycle
# =============================================================================

class Stage(str, enum.Enum):
    """
    Canonical case stage.

    Ordered LEAD -> ... -> COMPLETED but not strictly linear; NEW is a
    placeholder for enquiries that have not been qualified yet.
    """
    NEW = "NEW"
    LEAD = "LEAD"
    SITE_VISIT = "SITE_VISIT"
    DRAWING = "DRAWING"
    BOQ = "BOQ"
    QUOTATION = "QUOTATION"
    WAITING_FOR_PLANNING = "WAITING_FOR_PLANNING"
    EXECUTION_ACTIVE = "EXECUTION_ACTIVE"
    COMPLETED = "COMPLETED"


TERMINAL_STAGES = frozenset({Stage.COMPLETED})


class LegacyPipelineStatus(str, enum.Enum):
    """Pipeline labels used by the pre-unification lead model."""
    NEW_NOT_CONTACTED = "New - Not Contacted"
    CONTACTED_CALL_DONE = "Contacted - Call Done"
    SITE_VISIT_SCHEDULED = "Site Visit Scheduled"
    SITE_VISIT_RESCHEDULED = "Site Visit Rescheduled"
    WAITING_FOR_DRAWING = "Waiting for Drawing"
    DRAWING_IN_PROGRESS = "Drawing In Progress"
    DRAWING_REVISIONS = "Drawing Revisions"
    WAITING_FOR_QUOTATION = "Waiting for Quotation"
    QUOTATION_SENT = "Quotation Sent"
    NEGOTIATION = "Negotiation"
    IN_PROCUREMENT = "In Procurement"
    IN_EXECUTION = "In Execution"
    WON = "Won"
    LOST = "Lost"


class LegacyProjectStatus(str, enum.Enum):
    """Status labels used by the pre-unification project model."""
    AWAITING_DESIGN = "Awaiting Design"
    DESIGN_IN_PROGRESS = "Design In Progress"
    PENDING_REVIEW = "Pending Review"
    REVISIONS_REQUESTED = "Revisions Requested"
    AWAITING_QUOTATION = "Awaiting Quotation"
    QUOTATION_SENT = "Quotation Sent"
    NEGOTIATING = "Negotiating"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PROCUREMENT = "Procurement"
    IN_EXECUTION = "In Execution"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"


# =============================================================================
# Activity Ledger
# =============================================================================

class ActivityType(str, enum.Enum):
    """Kinds of ledger records."""
    STATUS_CHANGE = "status_change"
    NOTE = "note"
    FILE_UPLOAD = "file_upload"
    REMINDER = "reminder"
    TASK_CREATED = "task_created"
    OTHER = "other"


# =============================================================================
# Tasks
# =============================================================================

class TaskType(str, enum.Enum):
    """Fixed set of assignable work types."""
    SITE_VISIT = "SITE_VISIT"
    DRAWING_TASK = "DRAWING_TASK"
    BOQ = "BOQ"
    QUOTATION_TASK = "QUOTATION_TASK"
    PROCUREMENT_AUDIT = "PROCUREMENT_AUDIT"
    EXECUTION_TASK = "EXECUTION_TASK"
    SALES_CONTACT = "SALES_CONTACT"
    REMINDER = "REMINDER"


class TaskStatus(str, enum.Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TaskPriority(str, enum.Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# =============================================================================
# Enquiries
# =============================================================================

class EnquiryStatus(str, enum.Enum):
    """Enquiry intake status. CONVERTED_TO_LEAD is terminal."""
    NEW = "NEW"
    ASSIGNED = "ASSIGNED"
    CONVERTED_TO_LEAD = "CONVERTED_TO_LEAD"


# =============================================================================
# Procurement
# =============================================================================

class RfqStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
