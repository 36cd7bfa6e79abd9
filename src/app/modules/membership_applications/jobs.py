"""
Membership Background Jobs

1. roster_refresh_cache - reload the roster snapshot so eligibility checks
   rarely wait on Google Sheets
2. membership_receipts_sweep - delete receipt files that no application
   references (left behind by a crash between storing the file and
   committing the row)

Both jobs are idempotent and open their own database sessions. Failures are
logged and reported in the returned summary; they never stop the scheduler.
"""

import logging
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.database import async_session_maker
from app.core.scheduler import register_job
from app.core.storage import ReceiptStorage
from app.modules.membership_applications import repository
from app.modules.roster.client import RosterUnavailableError
from app.modules.roster.service import RosterService

logger = logging.getLogger(__name__)

JOB_ID_ROSTER_REFRESH = "roster_refresh_cache"
JOB_ID_RECEIPTS_SWEEP = "membership_receipts_sweep"


async def refresh_roster_cache(roster: RosterService) -> dict[str, Any]:
    """Reload the roster snapshot."""
    executed_at = datetime.now(UTC)

    try:
        count = await roster.refresh()
    except RosterUnavailableError as e:
        logger.warning(f"Roster refresh failed: {e}")
        return {
            "executed_at": executed_at.isoformat(),
            "status": "unavailable",
            "error": str(e),
        }

    logger.info(f"Roster cache refreshed: {count} records")
    return {
        "executed_at": executed_at.isoformat(),
        "status": "refreshed",
        "records": count,
    }


async def sweep_orphaned_receipts(
    storage: ReceiptStorage,
    grace_hours: int | None = None,
) -> dict[str, Any]:
    """
    Delete receipt files older than the grace period that no application references.

    The grace period covers uploads whose application row is still being
    written.
    """
    executed_at = datetime.now(UTC)
    hours = grace_hours if grace_hours is not None else settings.receipt_orphan_grace_hours

    candidates = await storage.list_older_than(hours * 3600)
    if not candidates:
        return {"executed_at": executed_at.isoformat(), "deleted": [], "total_errors": 0}

    async with async_session_maker() as db:
        referenced = await repository.get_referenced_receipt_paths(db)
    referenced_names = {Path(path).name for path in referenced}

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "deleted": [],
        "total_errors": 0,
    }

    for path in candidates:
        if Path(path).name in referenced_names:
            continue
        try:
            if await storage.delete(path):
                results["deleted"].append(Path(path).name)
        except OSError as e:
            logger.error(f"Failed to delete orphaned receipt {path}: {e}")
            results["total_errors"] += 1

    logger.info(
        f"Receipt sweep completed. Deleted: {len(results['deleted'])}, "
        f"Errors: {results['total_errors']}"
    )
    return results


def register_membership_jobs(roster: RosterService, storage: ReceiptStorage) -> None:
    """Register the roster refresh and receipt sweep jobs with the scheduler."""
    if roster.client.is_configured:
        register_job(
            job_id=JOB_ID_ROSTER_REFRESH,
            func=partial(refresh_roster_cache, roster),
            trigger=IntervalTrigger(minutes=settings.roster_refresh_minutes),
        )
    else:
        logger.warning("Roster spreadsheet not configured, skipping roster refresh job")

    register_job(
        job_id=JOB_ID_RECEIPTS_SWEEP,
        func=partial(sweep_orphaned_receipts, storage),
        trigger=IntervalTrigger(hours=1),
    )
