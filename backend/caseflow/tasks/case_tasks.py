"""
Celery tasks that complete case pipelines.

Provides:
- ensure_client_project: finish the best-effort client project step of a
  conversion
- resume_conversion: re-run a conversion that stopped after creating its
  case

Both are idempotent and retry with exponential backoff while the document
store is unavailable; resume_conversion also retries while the conversion
is still only partly written.
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from ..core.config import settings
from ..core.database import SessionLocal
from ..core.errors import PartialPipelineFailure, StoreUnavailable
from ..schemas.case import Actor, SYSTEM_ACTOR
from ..schemas.enquiry import LeadFields
from ..services.change_feed import ChangeFeed
from ..services.conversion import ConversionPipeline
from ..services.document_store import SqlDocumentStore


logger = logging.getLogger(__name__)


def build_conversion_pipeline() -> ConversionPipeline:
    """Pipeline over a store that publishes to the shared change feed."""
    store = SqlDocumentStore(SessionLocal, ChangeFeed.from_settings())
    return ConversionPipeline(store)


@shared_task(
    bind=True,
    autoretry_for=(StoreUnavailable,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    max_retries=settings.celery_max_retries,
    acks_late=True,
)
def ensure_client_project(self, enquiry_id: str) -> Dict[str, Any]:
    """
    Create the client project record for a converted enquiry if missing.

    Args:
        enquiry_id: Converted enquiry id

    Returns:
        Dict with the enquiry and client project ids
    """
    pipeline = build_conversion_pipeline()
    project_id = pipeline.ensure_client_project(enquiry_id)
    logger.info(
        f"Client project {project_id} ensured for {enquiry_id} "
        f"(attempt {self.request.retries + 1})"
    )
    return {"enquiry_id": enquiry_id, "client_project_id": project_id}


@shared_task(
    bind=True,
    autoretry_for=(StoreUnavailable, PartialPipelineFailure),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    max_retries=settings.celery_max_retries,
    acks_late=True,
)
def resume_conversion(
    self,
    enquiry_id: str,
    lead_fields: Optional[Dict[str, Any]] = None,
    actor: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Re-run a conversion after a partial failure.

    Reuses the case the interrupted run created; an enquiry that has since
    been converted returns its case id without writing.

    Args:
        enquiry_id: Enquiry being converted
        lead_fields: LeadFields as a JSON dict
        actor: Actor snapshot as a JSON dict; the system actor if omitted

    Returns:
        Dict with the enquiry and case ids
    """
    pipeline = build_conversion_pipeline()
    case_id = pipeline.convert_enquiry(
        enquiry_id,
        LeadFields.model_validate(lead_fields or {}),
        Actor.model_validate(actor) if actor else SYSTEM_ACTOR,
    )
    logger.info(f"Conversion of {enquiry_id} resumed: case={case_id}")
    return {"enquiry_id": enquiry_id, "case_id": case_id}
