# services/exceptions.py
from typing import Any, Dict, List, Optional

from app.schemas.assignment import SelectionFailure


class AssignmentError(Exception):
    """
    Base for every failure the assignment engine reports to its callers.

    `kind` is the stable machine-readable name callers branch on.
    Only `Timeout` and `StoreUnavailable` are `retryable`; every other kind
    needs different input (skills, exclusions) before a retry can succeed.
    """

    kind = "AssignmentError"
    retryable = False
    suggestion: Optional[str] = None

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_failure(self) -> SelectionFailure:
        return SelectionFailure(
            kind=self.kind,
            message=self.message,
            details=self.details,
            retryable=self.retryable,
            suggestion=self.suggestion,
        )


class NoEligibleConsultants(AssignmentError, LookupError):
    kind = "NoEligibleConsultants"
    suggestion = "All consultants are inactive, at capacity or excluded."


class NoSkillMatch(AssignmentError, LookupError):
    kind = "NoSkillMatch"
    suggestion = "Try removing some skill requirements or use standard assignment without skills filtering."

    def __init__(self, required_skills: List[str]):
        super().__init__(
            f"No consultants available with required skills: {', '.join(required_skills)}",
            {"required_skills": required_skills},
        )


class CriticalSkillsUnavailable(AssignmentError, LookupError):
    kind = "CriticalSkillsUnavailable"
    suggestion = "Consider removing critical skill requirements or contact admin to add skilled consultants."

    def __init__(self, missing_skills: List[str]):
        super().__init__(
            f"No consultants available with required critical skills: {', '.join(missing_skills)}",
            {"missing_skills": missing_skills},
        )


class ConsultantNoLongerEligible(AssignmentError):
    kind = "ConsultantNoLongerEligible"
    suggestion = "The selected consultant became unavailable; request a new selection."


class InvalidReassignment(AssignmentError, ValueError):
    kind = "InvalidReassignment"


class Timeout(AssignmentError, TimeoutError):
    kind = "Timeout"
    retryable = True


class StoreUnavailable(AssignmentError, ConnectionError):
    kind = "StoreUnavailable"
    retryable = True


# HTTP status per kind, used by the routers
HTTP_STATUS_BY_KIND = {
    NoEligibleConsultants.kind: 404,
    NoSkillMatch.kind: 404,
    CriticalSkillsUnavailable.kind: 422,
    ConsultantNoLongerEligible.kind: 409,
    InvalidReassignment.kind: 400,
    Timeout.kind: 504,
    StoreUnavailable.kind: 503,
}
