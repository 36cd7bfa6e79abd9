"""
Roster Service

Eligibility checks against the member roster. Lookups are read-only and fail
closed: when the roster cannot be loaded the student is reported as not eligible.
"""

import logging

from fastapi import Request

from app.modules.roster.client import (
    RosterClient,
    RosterUnavailableError,
    normalize_student_number,
)
from app.modules.roster.schemas import EligibilityResult

logger = logging.getLogger(__name__)

REASON_MATCHED = "Student number found in the member roster."
REASON_NAME_MISMATCH = (
    "Student number found in the member roster, but the name on record differs."
)
REASON_NOT_FOUND = "Student number not found in the member roster."
REASON_UNAVAILABLE = "The member roster could not be verified at this time."


def _normalize_name(name: str) -> str:
    return " ".join(name.split()).casefold()


class RosterService:
    """Eligibility lookups over a cached roster."""

    def __init__(self, client: RosterClient):
        self.client = client

    async def check_eligibility(self, student_number: str, full_name: str) -> EligibilityResult:
        """
        Look up a student in the roster.

        The student number is the matching key. A differing name is reported in
        the reason but does not change the verdict.

        Returns:
            EligibilityResult; never raises for roster failures.
        """
        key = normalize_student_number(student_number)
        if not key:
            return EligibilityResult(is_eligible=False, reason=REASON_NOT_FOUND)

        try:
            snapshot = await self.client.get_snapshot()
        except RosterUnavailableError as e:
            logger.error(f"Eligibility check for {key} failed closed: {e}")
            return EligibilityResult(
                is_eligible=False, reason=REASON_UNAVAILABLE, roster_available=False
            )

        record = snapshot.records.get(key)
        if record is None:
            logger.info(f"Student {key} not found in roster")
            return EligibilityResult(is_eligible=False, reason=REASON_NOT_FOUND)

        if _normalize_name(record.full_name) != _normalize_name(full_name):
            logger.info(f"Student {key} found in roster with a different name")
            return EligibilityResult(
                is_eligible=True, matched_record=record, reason=REASON_NAME_MISMATCH
            )

        return EligibilityResult(is_eligible=True, matched_record=record, reason=REASON_MATCHED)

    async def refresh(self) -> int:
        """Force a roster reload and return the member count."""
        snapshot = await self.client.refresh()
        return len(snapshot)


def get_roster_service(request: Request) -> RosterService:
    """FastAPI dependency returning the application's shared RosterService."""
    return request.app.state.roster_service
