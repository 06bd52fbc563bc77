"""
Enquiry API endpoints.

Public intake from the start-a-project form, the sales manager's inbox
(list, mark viewed, assign), and conversion into a case.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..core.auth import get_current_actor
from ..core.errors import PartialPipelineFailure
from ..models.enums import EnquiryStatus
from ..schemas.case import Actor
from ..schemas.common import SuccessResponse
from ..schemas.enquiry import (
    AssignEnquiryRequest,
    ConversionResponse,
    EnquiryCreate,
    EnquiryRecord,
    LeadFields,
    ViewedResponse,
)
from ..services.conversion import ConversionPipeline
from .dependencies import get_conversion_pipeline


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/enquiries", tags=["Enquiries"])


@router.post(
    "",
    response_model=EnquiryRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Enquiry",
    description="Public endpoint for the start-a-project form. No authentication required.",
)
def create_enquiry(
    data: EnquiryCreate,
    pipeline: ConversionPipeline = Depends(get_conversion_pipeline),
) -> EnquiryRecord:
    enquiry_id = pipeline.create_enquiry(data)
    return pipeline.get_enquiry(enquiry_id)


@router.get(
    "",
    response_model=List[EnquiryRecord],
    summary="List Enquiries",
)
def list_enquiries(
    enquiry_status: Optional[EnquiryStatus] = Query(default=None, alias="status"),
    unseen: bool = Query(default=False, description="Only enquiries the caller has not viewed"),
    assigned_to: Optional[str] = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    pipeline: ConversionPipeline = Depends(get_conversion_pipeline),
) -> List[EnquiryRecord]:
    return pipeline.list_enquiries(
        status=enquiry_status,
        unseen_by=actor.id if unseen else None,
        assigned_to=assigned_to,
    )


@router.get(
    "/{enquiry_id}",
    response_model=EnquiryRecord,
    summary="Get Enquiry",
)
def get_enquiry(
    enquiry_id: str,
    actor: Actor = Depends(get_current_actor),
    pipeline: ConversionPipeline = Depends(get_conversion_pipeline),
) -> EnquiryRecord:
    return pipeline.get_enquiry(enquiry_id)


@router.post(
    "/{enquiry_id}/viewed",
    response_model=ViewedResponse,
    summary="Mark Viewed",
    description="Record that the caller has seen this enquiry.",
)
def mark_viewed(
    enquiry_id: str,
    actor: Actor = Depends(get_current_actor),
    pipeline: ConversionPipeline = Depends(get_conversion_pipeline),
) -> ViewedResponse:
    viewed_by = pipeline.mark_viewed(enquiry_id, actor.id)
    return ViewedResponse(enquiry_id=enquiry_id, viewed_by=viewed_by)


@router.post(
    "/{enquiry_id}/assign",
    response_model=EnquiryRecord,
    summary="Assign Enquiry",
)
def assign_enquiry(
    enquiry_id: str,
    body: AssignEnquiryRequest,
    actor: Actor = Depends(get_current_actor),
    pipeline: ConversionPipeline = Depends(get_conversion_pipeline),
) -> EnquiryRecord:
    pipeline.assign_enquiry(enquiry_id, body, actor)
    return pipeline.get_enquiry(enquiry_id)


@router.post(
    "/{enquiry_id}/convert",
    response_model=ConversionResponse,
    summary="Convert To Lead",
    description=(
        "Create a LEAD case from the enquiry. Safe to repeat: an already "
        "converted enquiry returns its existing case."
    ),
)
def convert_enquiry(
    enquiry_id: str,
    lead_fields: Optional[LeadFields] = None,
    actor: Actor = Depends(get_current_actor),
    pipeline: ConversionPipeline = Depends(get_conversion_pipeline),
) -> ConversionResponse:
    lead_fields = lead_fields or LeadFields()
    try:
        case_id = pipeline.convert_enquiry(enquiry_id, lead_fields, actor)
    except PartialPipelineFailure:
        try:
            from ..tasks.case_tasks import resume_conversion
            resume_conversion.delay(
                enquiry_id,
                lead_fields.model_dump(mode="json"),
                actor.model_dump(mode="json"),
            )
        except Exception as e:
            logger.error(f"Failed to queue conversion resume for {enquiry_id}: {e}")
        raise

    project = pipeline.get_client_project(enquiry_id)
    if project is None:
        try:
            from ..tasks.case_tasks import ensure_client_project
            ensure_client_project.delay(enquiry_id)
        except Exception as e:
            # Broker down: the client project can still be completed from the endpoint below
            logger.error(f"Failed to queue client project for {enquiry_id}: {e}")

    return ConversionResponse(
        enquiry_id=enquiry_id,
        case_id=case_id,
        client_project_id=project["id"] if project else None,
    )


@router.post(
    "/{enquiry_id}/client-project",
    response_model=SuccessResponse,
    summary="Complete Client Project",
    description="Create the client-facing project record for a converted enquiry if it is missing.",
)
def complete_client_project(
    enquiry_id: str,
    actor: Actor = Depends(get_current_actor),
    pipeline: ConversionPipeline = Depends(get_conversion_pipeline),
) -> SuccessResponse:
    project_id = pipeline.ensure_client_project(enquiry_id)
    return SuccessResponse(message=f"Client project {project_id} is in place")
