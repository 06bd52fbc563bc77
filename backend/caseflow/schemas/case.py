"""
Case and Task Pydantic schemas.

Defines the actor snapshot supplied by the identity provider, DTOs for
creating and editing cases, assigning tasks, logging notes and reminders,
and the read models returned from the lifecycle engine.
"""

import math
from datetime import datetime
from typing import Optional, List, Any, Dict

from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator

from .common import DocumentModel
from .activity import Attachment
from ..models.enums import Stage, TaskType, TaskStatus, TaskPriority


# =============================================================================
# Actor
# =============================================================================

class Actor(BaseModel):
    """
    Identity snapshot for the user performing an operation.

    Copied onto every ActivityRecord as ``userId``/``userName`` so history
    keeps the name the actor had at the time.
    """

    id: str = Field(..., min_length=1, description="Actor id from the identity provider")
    name: str = Field(..., min_length=1, description="Display name at time of action")
    role: Optional[str] = Field(default=None, description="Role claim, informational only")


SYSTEM_ACTOR = Actor(id="system", name="System", role="system")


# =============================================================================
# Case Schemas
# =============================================================================

class CaseCreate(DocumentModel):
    """
    Schema for creating a new case in the LEAD stage.
    """

    client_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Client name (required)"
    )
    client_email: Optional[EmailStr] = Field(
        default=None,
        description="Client email address"
    )
    client_phone: Optional[str] = Field(
        default=None,
        max_length=30,
        description="Client phone number"
    )
    title: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Project title"
    )
    site_address: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Site address"
    )
    assigned_sales: Optional[str] = Field(
        default=None,
        description="Sales rep id"
    )
    assigned_engineer_id: Optional[str] = Field(
        default=None,
        description="Site engineer id"
    )
    organization_id: Optional[str] = Field(
        default=None,
        description="Owning organization"
    )
    estimated_value: Optional[float] = Field(
        default=None,
        ge=0,
        description="Estimated project value, seeds financial.totalBudget"
    )
    source_enquiry_id: Optional[str] = Field(
        default=None,
        description="Enquiry this case was converted from"
    )

    @field_validator("client_name")
    @classmethod
    def strip_client_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Client name cannot be blank")
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "clientName": "Asha Menon",
                "clientEmail": "asha@example.com",
                "clientPhone": "+91 98450 00000",
                "title": "3BHK interiors, Whitefield",
                "estimatedValue": 1850000
            }
        }
    }


class ContactUpdate(DocumentModel):
    """
    Editable contact snapshot. Only provided fields are written.
    """

    client_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = Field(default=None, max_length=30)
    site_address: Optional[str] = Field(default=None, max_length=500)
    assigned_sales: Optional[str] = None
    assigned_engineer_id: Optional[str] = None


class CaseRecord(DocumentModel):
    """
    Case as returned by every read path.

    ``status`` is always a canonical Stage; the engine resolves legacy
    labels before building this model. ``total_budget`` reads
    ``financial.totalBudget`` first and the legacy ``budget`` field second.
    """

    id: str
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    title: Optional[str] = None
    site_address: Optional[str] = None
    status: Stage = Stage.LEAD
    is_project: bool = False
    assigned_sales: Optional[str] = None
    assigned_engineer_id: Optional[str] = None
    organization_id: Optional[str] = None
    source_enquiry_id: Optional[str] = None
    financial: Optional[Dict[str, Any]] = None
    total_budget: float = 0.0
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def derive_total_budget(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("totalBudget") is None and data.get("total_budget") is None:
            data["totalBudget"] = _budget_from_document(data)
        return data


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _budget_from_document(data: Dict[str, Any]) -> float:
    """
    financial.totalBudget, else legacy budget (a number or a map holding
    totalBudget), else 0.
    """
    financial = data.get("financial")
    if isinstance(financial, dict):
        total = _as_number(financial.get("totalBudget"))
        if total:
            return total

    legacy = data.get("budget")
    if isinstance(legacy, dict):
        legacy = legacy.get("totalBudget")
    total = _as_number(legacy)
    return total or 0.0


class StatusUpdateRequest(BaseModel):
    """Request body for an explicit stage change."""

    status: str = Field(..., description="Target stage")
    notes: Optional[str] = Field(default=None, max_length=2000)


class ProjectFlipResponse(DocumentModel):
    """Result of flipping a case to a project."""

    case_id: str
    is_project: bool = True
    changed: bool = Field(..., description="False when the case was already a project")


# =============================================================================
# Task Schemas
# =============================================================================

class TaskCreate(DocumentModel):
    """
    Schema for assigning a unit of work on a case.

    ``title`` is free text and drives the stage transition; ``type`` is
    derived from it when omitted.
    """

    title: str = Field(..., min_length=1, max_length=255)
    type: Optional[TaskType] = Field(default=None, description="Declared task type")
    assigned_to: str = Field(..., min_length=1, description="Assignee id")
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class TaskRecord(DocumentModel):
    """Stored task."""

    id: str
    case_id: str
    title: str
    type: TaskType
    assigned_to: str
    assigned_by: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class TaskAssignmentResponse(DocumentModel):
    """Result of assigning a task."""

    task_id: str
    case_id: str
    status: Stage


# =============================================================================
# Note / Reminder Schemas
# =============================================================================

class NoteCreate(BaseModel):
    """Request body for a note, optionally with uploaded attachment records."""

    text: str = Field(..., min_length=1, max_length=5000)
    attachments: Optional[List[Attachment]] = None


class ReminderCreate(DocumentModel):
    """Request body for a reminder on a case."""

    title: str = Field(..., min_length=1, max_length=255)
    remind_at: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)
