"""
Common Pydantic schemas shared across the application.

Contains the document base model, health check and error schemas.
"""

from datetime import datetime
from typing import Optional, List, Any, Dict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Document Base
# =============================================================================

class DocumentModel(BaseModel):
    """
    Base for every record stored in the Document Store.

    Attributes are snake_case in Python and camelCase in stored documents
    and JSON bodies. Either spelling is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the stored document shape (camelCase, no nulls)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# =============================================================================
# Health Check Schemas
# =============================================================================

class HealthResponse(BaseModel):
    """
    Health check response schema.

    Used by monitoring systems to verify service health.
    """

    status: str = Field(
        ...,
        description="Overall health status (healthy, degraded, unhealthy)"
    )
    version: str = Field(
        ...,
        description="Application version"
    )
    timestamp: datetime = Field(
        ...,
        description="Current server timestamp"
    )
    database: str = Field(
        ...,
        description="Document store connection status"
    )
    change_feed: str = Field(
        ...,
        description="Change feed mode (redis, local)"
    )
    environment: str = Field(
        ...,
        description="Runtime environment (development, production)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "timestamp": "2024-01-15T10:30:00Z",
                "database": "connected",
                "change_feed": "local",
                "environment": "development"
            }
        }
    }


# =============================================================================
# Error Schemas
# =============================================================================

class ErrorDetail(BaseModel):
    """
    Detail for a single validation error.
    """

    field: Optional[str] = Field(
        default=None,
        description="Field that caused the error"
    )
    message: str = Field(
        ...,
        description="Error message"
    )
    code: Optional[str] = Field(
        default=None,
        description="Error code for programmatic handling"
    )


class ErrorResponse(BaseModel):
    """
    Standard error response schema.

    Used for consistent error formatting across all endpoints. ``state``
    carries the identifiers a caller needs to finish a partially applied
    operation.
    """

    success: bool = Field(
        default=False,
        description="Always false for errors"
    )
    error: str = Field(
        ...,
        description="Error type or category"
    )
    message: str = Field(
        ...,
        description="Human-readable error message"
    )
    details: Optional[List[ErrorDetail]] = Field(
        default=None,
        description="Additional error details (for validation errors)"
    )
    state: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Partial-failure state (e.g. created case id)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "partial_pipeline_failure",
                "message": "Case created but enquiry update failed",
                "details": None,
                "state": {"case_id": "3f9c0a...", "enquiry_id": "ENQ-2024-04211"}
            }
        }
    }


# =============================================================================
# Success Response Schema
# =============================================================================

class SuccessResponse(BaseModel):
    """
    Generic success response for operations without specific return data.
    """

    success: bool = Field(
        default=True,
        description="Operation success status"
    )
    message: str = Field(
        ...,
        description="Success message"
    )
