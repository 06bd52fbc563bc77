"""
API route controllers for Caseflow.

Contains FastAPI routers for different endpoints.
Routes handle HTTP requests and delegate to services for business logic.
"""

from .health import router as health_router
from .cases import router as cases_router
from .enquiries import router as enquiries_router
from .rfqs import router as rfqs_router

__all__ = [
    "health_router",
    "cases_router",
    "enquiries_router",
    "rfqs_router",
]
