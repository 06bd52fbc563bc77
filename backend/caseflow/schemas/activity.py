"""
Activity Ledger schemas.

ActivityRecord is immutable once written: the read model is frozen and the
ledger exposes no update path.
"""

from datetime import datetime
from typing import Optional, Any, Dict

from pydantic import ConfigDict, Field

from .common import DocumentModel
from ..models.enums import ActivityType


class Attachment(DocumentModel):
    """
    Uploaded file reference.

    The bytes live in attachment storage; only the URL and size/type
    metadata are kept on the ledger record.
    """

    url: str = Field(..., min_length=1, description="Stable retrievable URL")
    name: str = Field(..., min_length=1, max_length=255, description="Original file name")
    size: Optional[int] = Field(default=None, ge=0, description="Size in bytes")
    content_type: Optional[str] = Field(default=None, description="MIME type")


class ActivityCreate(DocumentModel):
    """
    Record to append for a case.

    The actor snapshot is taken by the caller; the timestamp is always
    assigned by the store.
    """

    type: ActivityType
    action: str = Field(..., min_length=1, max_length=500)
    user_id: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1)
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ActivityRecord(DocumentModel):
    """One stored ledger entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    case_id: str
    type: ActivityType
    action: str
    user_id: str
    user_name: str
    timestamp: datetime
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ActivityCreated(DocumentModel):
    """Id of a record the API just appended."""

    case_id: str
    activity_id: str
