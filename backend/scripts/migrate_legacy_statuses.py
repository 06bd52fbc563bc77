"""
Migrate Legacy Case Statuses
============================
Rewrites cases whose stored ``status`` is a legacy pipeline or project label
(or a lower-case value from the earlier case model) to the canonical stage
the status resolver maps it to. Each rewrite is recorded in the case's
activity history as a status change by the System actor.

Reads already resolve legacy labels, so running this is optional; it only
makes stored data match what the API returns.

Usage (from project root, with the package installed):
    python backend/scripts/migrate_legacy_statuses.py --dry-run
    python backend/scripts/migrate_legacy_statuses.py

Flags:
    --dry-run    Report what would change without writing anything
    --limit N    Stop after migrating N cases
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

from caseflow.core.database import SessionLocal
from caseflow.core.errors import CaseflowError
from caseflow.core.logging_config import setup_logging
from caseflow.models.enums import Stage
from caseflow.schemas.case import SYSTEM_ACTOR
from caseflow.services.case_lifecycle import CASES, CaseLifecycleEngine
from caseflow.services.document_store import SqlDocumentStore
from caseflow.services.status_resolver import resolve_document


logger = logging.getLogger(__name__)

MIGRATION_NOTE = "Legacy status migrated"


# =============================================================================
# Helpers
# =============================================================================


def find_legacy_cases(store: SqlDocumentStore) -> List[Tuple[Dict[str, Any], Stage]]:
    """Cases whose stored status is not exactly a canonical stage value."""
    canonical = {stage.value for stage in Stage}
    pending = []
    for doc in store.query(CASES, order_by="createdAt"):
        if doc.get("status") in canonical:
            continue
        pending.append((doc, resolve_document(doc)))
    return pending


def migrate(store: SqlDocumentStore, dry_run: bool = False, limit: Optional[int] = None) -> Dict[str, int]:
    """
    Rewrite legacy statuses through the lifecycle engine.

    Returns:
        Counts of cases found, migrated and failed
    """
    engine = CaseLifecycleEngine(store)
    pending = find_legacy_cases(store)
    if limit is not None:
        pending = pending[:limit]

    stats = {"found": len(pending), "migrated": 0, "failed": 0}
    for doc, stage in pending:
        label = doc.get("status")
        if dry_run:
            print(f"  [dry-run] {doc['id']}: {label!r} -> {stage.value}")
            continue
        try:
            engine.update_status(doc["id"], stage, SYSTEM_ACTOR, notes=f"{MIGRATION_NOTE}: {label!r}")
            stats["migrated"] += 1
            print(f"  {doc['id']}: {label!r} -> {stage.value}")
        except CaseflowError as e:
            stats["failed"] += 1
            logger.error(f"Could not migrate case {doc['id']}: {e}")

    return stats


# =============================================================================
# Main
# =============================================================================


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Rewrite legacy case statuses to canonical stages."
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report changes without writing",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of cases to migrate",
    )
    args = parser.parse_args(argv)

    setup_logging()
    store = SqlDocumentStore(SessionLocal)

    print("Scanning cases for legacy statuses...")
    stats = migrate(store, dry_run=args.dry_run, limit=args.limit)

    print()
    print(f"Found:    {stats['found']}")
    if not args.dry_run:
        print(f"Migrated: {stats['migrated']}")
        print(f"Failed:   {stats['failed']}")

    return 1 if stats["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
