"""Member roster module - eligibility checks against the roster sheet."""

from app.modules.roster.client import RosterClient, RosterUnavailableError
from app.modules.roster.schemas import EligibilityResult, RosterRecord
from app.modules.roster.service import RosterService, get_roster_service

__all__ = [
    "EligibilityResult",
    "RosterClient",
    "RosterRecord",
    "RosterService",
    "RosterUnavailableError",
    "get_roster_service",
]
