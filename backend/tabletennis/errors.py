"""
Core error kinds.

Services raise these; the HTTP layer maps them to status codes in main.py.
Only notification and ranking-recompute failures are soft (caught and logged).
"""

from typing import Optional


class TournamentCoreError(Exception):
    """Base class for all core errors."""

    status_code = 400

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"detail": self.detail, "error": self.kind, "field": self.field}


class ValidationError(TournamentCoreError):
    """Malformed input (set scores, missing or contradictory fields)."""

    status_code = 422


class ResultIncomplete(TournamentCoreError):
    """Fewer than 3 valid decisive sets, or no unambiguous winner."""

    status_code = 422


class InvalidStateTransition(TournamentCoreError):
    """Requested transition is not legal from the current status."""

    status_code = 409


class NotFound(TournamentCoreError):
    status_code = 404


class NoEligibleParticipants(TournamentCoreError):
    status_code = 400


class AlreadyFinalized(TournamentCoreError):
    status_code = 409


class NoVerifiedMatches(TournamentCoreError):
    status_code = 400
