"""
Enquiry Pydantic schemas.

An enquiry is the pre-case intake record submitted from the public
start-a-project form. Budget, timeline and style answers are fixed-choice
labels and are stored verbatim.
"""

from datetime import datetime
from typing import Optional, List

from pydantic import Field, EmailStr, field_validator

from .common import DocumentModel
from ..models.enums import EnquiryStatus


# =============================================================================
# Enquiry Intake
# =============================================================================

class EnquiryCreate(DocumentModel):
    """
    Schema for a new enquiry from the start-a-project form.
    """

    client_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    mobile: str = Field(..., min_length=6, max_length=30)
    city: str = Field(..., min_length=1, max_length=100)
    project_type: Optional[str] = Field(default=None, max_length=100)
    space_type: Optional[str] = Field(default=None, max_length=100)
    area: Optional[str] = Field(default=None, max_length=50)
    number_of_zones: Optional[str] = Field(default=None, max_length=50)
    is_renovation: Optional[str] = Field(default=None, max_length=20)
    design_style: Optional[str] = Field(default=None, max_length=100)
    budget_range: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Fixed budget band label, e.g. '₹10 - 25 Lakhs'"
    )
    start_time: Optional[str] = Field(default=None, max_length=100)
    completion_timeline: Optional[str] = Field(default=None, max_length=100)
    additional_notes: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("client_name", "city")
    @classmethod
    def strip_required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v


class EnquiryRecord(EnquiryCreate):
    """
    Stored enquiry.

    ``viewed_by`` only ever grows. ``converted_case_id`` is set exactly once
    by the conversion pipeline.
    """

    email: str
    enquiry_id: str
    status: EnquiryStatus = EnquiryStatus.NEW
    viewed_by: List[str] = Field(default_factory=list)
    is_new: bool = True
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    converted_case_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# Assignment / Conversion
# =============================================================================

class AssignEnquiryRequest(DocumentModel):
    """Assign an enquiry to a sales team member."""

    assigned_to: str = Field(..., min_length=1)
    assigned_to_name: str = Field(..., min_length=1)


class LeadFields(DocumentModel):
    """
    Extra case fields supplied by the sales manager at conversion time.
    """

    project_name: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=500)
    assigned_to: Optional[str] = Field(default=None, description="Sales rep id")
    organization_id: Optional[str] = None
    estimated_value: Optional[float] = Field(default=None, ge=0)


class ConversionResponse(DocumentModel):
    """Result of converting an enquiry."""

    enquiry_id: str
    case_id: str
    client_project_id: Optional[str] = Field(
        default=None,
        description="Client project record id, None if that step is pending"
    )


class ViewedResponse(DocumentModel):
    enquiry_id: str
    viewed_by: List[str]
