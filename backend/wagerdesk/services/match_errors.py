"""
backend/wagerdesk/services/match_errors.py

Purpose:
    Error taxonomy for match admission, checkout and lifecycle operations.
    Each class carries a stable `kind`, the HTTP status the API maps it to and
    a human-readable default reason.

Dependencies:
    - fastapi.status
"""

from __future__ import annotations

from fastapi import status


class MatchError(Exception):
    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The operation could not be completed."
    retryable = False

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class MatchNotFound(MatchError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Match not found (it may have been removed)."


class IllegalState(MatchError):
    kind = "illegal_state"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This action is not available in the current match state."


class MatchNotOpen(IllegalState):
    kind = "not_open"
    default_detail = "This match is no longer open for joining."


class AlreadyResolved(IllegalState):
    kind = "already_resolved"
    default_detail = "This match has already been resolved."


class Forbidden(MatchError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to perform this action on this match."


class MatchFull(MatchError):
    kind = "full"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This match already has 2 participants."


class InvalidOutcome(MatchError):
    kind = "invalid_outcome"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Outcome must name one of the two participants."


class ExternalUnavailable(MatchError):
    kind = "external_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "The chat platform is unavailable. Please retry."
    retryable = True


class DraftNotFound(MatchError):
    kind = "draft_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "No draft in progress. Open the panel again."


class DraftExpired(DraftNotFound):
    kind = "draft_expired"
    status_code = status.HTTP_410_GONE
    default_detail = "Draft session expired. Open the panel again."
