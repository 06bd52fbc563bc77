"""
Business logic services for Caseflow.

Contains the Document Store, Activity Ledger, Status Resolver,
Transition Policy, Case Lifecycle Engine, Conversion Pipeline and RFQ flow.
"""

from .change_feed import ChangeFeed
from .document_store import SqlDocumentStore, Subscription, SERVER_TIMESTAMP, ArrayUnion
from .activity_ledger import ActivityLedger
from .status_resolver import resolve, resolve_document, as_stage
from .transition_policy import (
    TransitionPolicy,
    KeywordTransitionPolicy,
    TransitionRule,
    next_stage,
    derive_task_type,
)
from .case_lifecycle import CaseLifecycleEngine
from .conversion import ConversionPipeline, generate_enquiry_id, client_project_id
from .rfq import RfqService

__all__ = [
    "ChangeFeed",
    "SqlDocumentStore",
    "Subscription",
    "SERVER_TIMESTAMP",
    "ArrayUnion",
    "ActivityLedger",
    "resolve",
    "resolve_document",
    "as_stage",
    "TransitionPolicy",
    "KeywordTransitionPolicy",
    "TransitionRule",
    "next_stage",
    "derive_task_type",
    "CaseLifecycleEngine",
    "ConversionPipeline",
    "generate_enquiry_id",
    "client_project_id",
    "RfqService",
]
