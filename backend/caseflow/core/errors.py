"""
Error taxonomy for the case lifecycle core.

Every failure is scoped to one operation on one case; nothing here is
fatal to the process. The API layer maps these to HTTP responses in
``main.py``.
"""

from typing import Any, Dict, Optional, Sequence


class CaseflowError(Exception):
    """Base class for all domain errors."""

    error_code = "caseflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CaseflowError):
    """Bad enum value or missing required field. Never partially applied."""

    error_code = "validation_error"


class AppendOnlyViolation(ValidationError):
    """Attempt to overwrite a record in an append-only collection."""

    error_code = "append_only_violation"


class NotFoundError(CaseflowError):
    """Referenced document does not exist."""

    error_code = "not_found"

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class CaseNotFound(NotFoundError):
    def __init__(self, case_id: str):
        super().__init__("Case", case_id)


class EnquiryNotFound(NotFoundError):
    def __init__(self, enquiry_id: str):
        super().__init__("Enquiry", enquiry_id)


class RfqNotFound(NotFoundError):
    def __init__(self, rfq_id: str):
        super().__init__("RFQ", rfq_id)


class StoreUnavailable(CaseflowError):
    """
    Transient Document Store failure.

    Safe to retry. A write that raised this may still have been applied,
    so callers re-read current state before retrying.
    """

    error_code = "store_unavailable"


class PartialPipelineFailure(CaseflowError):
    """
    A multi-write operation failed after at least one write succeeded.

    Attributes:
        completed_steps: Steps that were durably written
        failed_step: Step that failed
        state: Identifiers needed to finish the operation (e.g. ``case_id``)
    """

    error_code = "partial_pipeline_failure"

    def __init__(
        self,
        message: str,
        completed_steps: Sequence[str],
        failed_step: str,
        state: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.state = dict(state or {})


class AlreadyAProject(CaseflowError):
    """Idempotency guard: the case has already been flipped to a project."""

    error_code = "already_a_project"

    def __init__(self, case_id: str):
        super().__init__(f"Case {case_id} is already a project")
        self.case_id = case_id
