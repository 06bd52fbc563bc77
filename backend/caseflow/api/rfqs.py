"""
RFQ API endpoints.

RFQs are opened and listed under their case; single RFQs are addressed
directly by id.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from ..core.auth import get_current_actor
from ..schemas.case import Actor
from ..schemas.rfq import RfqCreate, RfqRecord
from ..services.rfq import RfqService
from .dependencies import get_rfq_service


router = APIRouter(tags=["RFQs"])


@router.post(
    "/api/cases/{case_id}/rfqs",
    response_model=RfqRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Open RFQ",
    description="Open a request for quotation to the invited vendors.",
)
def open_rfq(
    case_id: str,
    body: RfqCreate,
    actor: Actor = Depends(get_current_actor),
    service: RfqService = Depends(get_rfq_service),
) -> RfqRecord:
    rfq_id = service.open_rfq(
        case_id,
        body.items,
        body.vendor_ids,
        body.bidding_deadline,
        actor,
        notes=body.notes,
    )
    return service.get_rfq(rfq_id)


@router.get(
    "/api/cases/{case_id}/rfqs",
    response_model=List[RfqRecord],
    summary="List RFQs For Case",
)
def list_rfqs(
    case_id: str,
    actor: Actor = Depends(get_current_actor),
    service: RfqService = Depends(get_rfq_service),
) -> List[RfqRecord]:
    return service.list_rfqs(case_id)


@router.get(
    "/api/rfqs/{rfq_id}",
    response_model=RfqRecord,
    summary="Get RFQ",
)
def get_rfq(
    rfq_id: str,
    actor: Actor = Depends(get_current_actor),
    service: RfqService = Depends(get_rfq_service),
) -> RfqRecord:
    return service.get_rfq(rfq_id)


@router.post(
    "/api/rfqs/{rfq_id}/close",
    response_model=RfqRecord,
    summary="Close RFQ",
)
def close_rfq(
    rfq_id: str,
    actor: Actor = Depends(get_current_actor),
    service: RfqService = Depends(get_rfq_service),
) -> RfqRecord:
    return service.close_rfq(rfq_id, actor)
