"""
Persistence models and enumerations for Caseflow.

Contains the Document Store table and the enums stored inside documents.
"""

from .document import StoredDocument
from .enums import (
    Stage,
    TERMINAL_STAGES,
    LegacyPipelineStatus,
    LegacyProjectStatus,
    ActivityType,
    TaskType,
    TaskStatus,
    TaskPriority,
    EnquiryStatus,
    RfqStatus,
)

__all__ = [
    # Document Store table
    "StoredDocument",
    # Case lifecycle enums
    "Stage",
    "TERMINAL_STAGES",
    "LegacyPipelineStatus",
    "LegacyProjectStatus",
    "ActivityType",
    # Task enums
    "TaskType",
    "TaskStatus",
    "TaskPriority",
    # Enquiry / procurement enums
    "EnquiryStatus",
    "RfqStatus",
]
