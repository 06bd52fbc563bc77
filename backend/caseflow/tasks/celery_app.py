"""
Celery application configuration.

Background jobs call into the lifecycle core to finish work a request
could not complete (best-effort conversion steps). They never move a case
between stages on their own.

- Redis as message broker
- Automatic retry with exponential backoff on transient store failures
- Late acknowledgement so a lost worker re-queues its job
"""

import logging

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from kombu import Exchange, Queue

from ..core.config import settings
from ..core.logging_config import setup_logging


logger = logging.getLogger(__name__)


# =============================================================================
# Celery Application
# =============================================================================

celery_app = Celery(
    "caseflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "caseflow.tasks.case_tasks",
    ],
)


# =============================================================================
# Celery Configuration
# =============================================================================

celery_app.conf.update(
    # Task execution settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task time limits
    task_time_limit=settings.celery_task_time_limit,  # Hard limit (kill task)
    task_soft_time_limit=max(settings.celery_task_time_limit - 30, 1),  # Soft limit (raise exception)

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Result backend settings
    result_expires=3600,

    # Broker settings
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,

    # Task acknowledgement
    task_acks_late=True,  # Ack after task completes
    task_reject_on_worker_lost=True,  # Re-queue if worker dies

    # Task routing
    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",
)


# =============================================================================
# Queue Configuration
# =============================================================================

default_exchange = Exchange("default", type="direct")
cases_exchange = Exchange("cases", type="direct")

celery_app.conf.task_queues = (
    Queue(
        "default",
        default_exchange,
        routing_key="default",
    ),
    # Follow-up steps of multi-write case operations
    Queue(
        "cases.pipeline",
        cases_exchange,
        routing_key="cases.pipeline",
    ),
)

celery_app.conf.task_routes = {
    "caseflow.tasks.case_tasks.ensure_client_project": {
        "queue": "cases.pipeline",
        "routing_key": "cases.pipeline",
    },
    "caseflow.tasks.case_tasks.resume_conversion": {
        "queue": "cases.pipeline",
        "routing_key": "cases.pipeline",
    },
}


# =============================================================================
# Worker Logging
# =============================================================================

@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Use the application's logging setup instead of Celery's default."""
    setup_logging()


@celery_app.task
def health_check():
    """
    Simple health check task for monitoring.

    Returns:
        Dict with worker status
    """
    return {
        "status": "healthy",
        "worker": True,
    }
