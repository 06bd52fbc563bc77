"""
Status Resolver.

Single point of normalization for case status. Stored cases may carry a
canonical Stage, a lower-case stage from the earlier case model, a legacy
lead pipeline label, or a legacy project label. Every read path calls
``resolve`` so raw legacy labels never leave the service.

Resolution order:
1. ``raw_status`` is already a Stage -> returned unchanged
2. the ``caseStatus`` hint is a Stage -> the hint
3. legacy label table (total; unknown or missing -> LEAD)

``resolve`` is pure and idempotent.
"""

from typing import Any, Dict, Mapping, Optional, Union

from ..models.enums import Stage, LegacyPipelineStatus, LegacyProjectStatus


StatusInput = Union[Stage, LegacyPipelineStatus, LegacyProjectStatus, str, None]


# =============================================================================
# Lookup Tables
# =============================================================================

# Lower-case values written by the earlier case model
_CASE_ALIASES: Dict[str, Stage] = {
    "new": Stage.NEW,
    "lead": Stage.LEAD,
    "site_visit": Stage.SITE_VISIT,
    "drawing": Stage.DRAWING,
    "boq": Stage.BOQ,
    "quotation": Stage.QUOTATION,
    "waiting_for_planning": Stage.WAITING_FOR_PLANNING,
    "planning": Stage.WAITING_FOR_PLANNING,
    "execution": Stage.EXECUTION_ACTIVE,
    "execution_active": Stage.EXECUTION_ACTIVE,
    "completed": Stage.COMPLETED,
}

LEGACY_PIPELINE_STAGES: Dict[LegacyPipelineStatus, Stage] = {
    LegacyPipelineStatus.NEW_NOT_CONTACTED: Stage.LEAD,
    LegacyPipelineStatus.CONTACTED_CALL_DONE: Stage.LEAD,
    LegacyPipelineStatus.SITE_VISIT_SCHEDULED: Stage.SITE_VISIT,
    LegacyPipelineStatus.SITE_VISIT_RESCHEDULED: Stage.SITE_VISIT,
    LegacyPipelineStatus.WAITING_FOR_DRAWING: Stage.DRAWING,
    LegacyPipelineStatus.DRAWING_IN_PROGRESS: Stage.DRAWING,
    LegacyPipelineStatus.DRAWING_REVISIONS: Stage.DRAWING,
    LegacyPipelineStatus.WAITING_FOR_QUOTATION: Stage.QUOTATION,
    LegacyPipelineStatus.QUOTATION_SENT: Stage.QUOTATION,
    LegacyPipelineStatus.NEGOTIATION: Stage.QUOTATION,
    LegacyPipelineStatus.IN_PROCUREMENT: Stage.WAITING_FOR_PLANNING,
    LegacyPipelineStatus.IN_EXECUTION: Stage.EXECUTION_ACTIVE,
    LegacyPipelineStatus.WON: Stage.COMPLETED,
    LegacyPipelineStatus.LOST: Stage.COMPLETED,
}

LEGACY_PROJECT_STAGES: Dict[LegacyProjectStatus, Stage] = {
    LegacyProjectStatus.AWAITING_DESIGN: Stage.DRAWING,
    LegacyProjectStatus.DESIGN_IN_PROGRESS: Stage.DRAWING,
    LegacyProjectStatus.PENDING_REVIEW: Stage.DRAWING,
    LegacyProjectStatus.REVISIONS_REQUESTED: Stage.DRAWING,
    LegacyProjectStatus.AWAITING_QUOTATION: Stage.QUOTATION,
    LegacyProjectStatus.QUOTATION_SENT: Stage.QUOTATION,
    LegacyProjectStatus.NEGOTIATING: Stage.QUOTATION,
    LegacyProjectStatus.APPROVED: Stage.WAITING_FOR_PLANNING,
    LegacyProjectStatus.PROCUREMENT: Stage.WAITING_FOR_PLANNING,
    LegacyProjectStatus.IN_EXECUTION: Stage.EXECUTION_ACTIVE,
    LegacyProjectStatus.REJECTED: Stage.COMPLETED,
    LegacyProjectStatus.COMPLETED: Stage.COMPLETED,
    LegacyProjectStatus.ON_HOLD: Stage.LEAD,
}

# Normalized label -> Stage for both legacy vocabularies
_LEGACY_LABELS: Dict[str, Stage] = {
    **{label.value.lower(): stage for label, stage in LEGACY_PIPELINE_STAGES.items()},
    **{label.value.lower(): stage for label, stage in LEGACY_PROJECT_STAGES.items()},
}


# =============================================================================
# Resolution
# =============================================================================

def _value_of(status: StatusInput) -> Optional[str]:
    if status is None:
        return None
    if isinstance(status, (Stage, LegacyPipelineStatus, LegacyProjectStatus)):
        return status.value
    if not isinstance(status, str):
        return None
    return status.strip() or None


def as_stage(status: StatusInput) -> Optional[Stage]:
    """
    Return the Stage ``status`` names, or None if it is not a Stage.

    Accepts Stage members, exact or case-insensitive Stage values, and the
    lower-case values of the earlier case model.
    """
    if isinstance(status, Stage):
        return status
    value = _value_of(status)
    if value is None or isinstance(status, (LegacyPipelineStatus, LegacyProjectStatus)):
        return None
    try:
        return Stage(value)
    except ValueError:
        pass
    try:
        return Stage(value.upper())
    except ValueError:
        return _CASE_ALIASES.get(value.lower())


def is_stage(status: StatusInput) -> bool:
    return as_stage(status) is not None


def resolve(raw_status: StatusInput, legacy_case_status_hint: StatusInput = None) -> Stage:
    """
    Map any stored status representation to one canonical Stage.

    Args:
        raw_status: Stored ``status`` value in any known vocabulary, or None
        legacy_case_status_hint: Stored ``caseStatus`` side-channel value;
            used only when ``raw_status`` is not a Stage and the hint is

    Returns:
        A Stage. Never raises; unknown labels resolve to LEAD.
    """
    stage = as_stage(raw_status)
    if stage is not None:
        return stage

    hinted = as_stage(legacy_case_status_hint)
    if hinted is not None:
        return hinted

    value = _value_of(raw_status)
    if value is None:
        return Stage.LEAD
    return _LEGACY_LABELS.get(value.lower(), Stage.LEAD)


def resolve_document(doc: Mapping[str, Any]) -> Stage:
    """Resolve the status of a stored case document."""
    return resolve(doc.get("status"), doc.get("caseStatus"))
