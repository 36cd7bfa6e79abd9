"""
Roster Schemas

Records parsed from the member roster sheet and eligibility verdicts.
"""

from pydantic import Field

from app.modules.shared.schemas import CamelModel


class RosterRecord(CamelModel):
    """One member row from the roster sheet."""

    full_name: str
    student_number: str
    # National id is used for matching only and never serialised
    national_id: str | None = Field(default=None, exclude=True)
    phone: str | None = None
    department: str | None = None
    registered_on: str | None = None


class EligibilityResult(CamelModel):
    """Outcome of looking up a student in the roster."""

    is_eligible: bool
    matched_record: RosterRecord | None = None
    reason: str
    roster_available: bool = True


class EligibilityCheckRequest(CamelModel):
    """Request body for the public eligibility check."""

    student_number: str = Field(..., min_length=1, max_length=32)
    full_name: str = Field(..., min_length=1, max_length=200)


class EligibilityCheckResponse(CamelModel):
    """Envelope returned by the public eligibility check."""

    success: bool = True
    data: EligibilityResult
