"""
RFQ (request for quotation) schemas.

Items are a snapshot taken when the RFQ is opened; later edits to the
case's procurement list do not change an open RFQ.
"""

from datetime import datetime
from typing import Optional, List

from pydantic import Field

from .common import DocumentModel
from ..models.enums import RfqStatus


class RfqItem(DocumentModel):
    """One requested line item."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    quantity: float = Field(default=1, gt=0)
    unit: str = Field(default="nos", max_length=20)
    price: Optional[float] = Field(default=None, ge=0, description="Reference price")


class RfqCreate(DocumentModel):
    """Request body for opening an RFQ on a case."""

    items: List[RfqItem]
    vendor_ids: List[str]
    bidding_deadline: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)


class RfqRecord(DocumentModel):
    """Stored RFQ."""

    id: str
    case_id: str
    items: List[RfqItem]
    invited_vendor_ids: List[str]
    bidding_deadline: datetime
    status: RfqStatus = RfqStatus.OPEN
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
