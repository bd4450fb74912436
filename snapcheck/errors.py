"""Error taxonomy for the snapcheck manager.

Every error carries the HTTP status it maps to and the public
``{cause, code, message}`` triple rendered by the API. Only
``NotFoundError``, ``UnauthorizedError``, ``ValidationError`` and
``WorkerUnavailableError`` ever reach a caller; ``ConflictError`` is
absorbed by the reconciliation engine.
"""

from __future__ import annotations

from typing import Any


class SnapcheckError(Exception):
    """Base exception for all application-specific errors."""

    status_code = 500
    code = 5000
    cause = "An unknown error occurred while processing this request."
    message = "Internal server error."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        """Public error object, without internal detail."""
        return {"cause": self.cause, "code": self.code, "message": self.message}


class UnauthorizedError(SnapcheckError):
    """The API key is missing, unknown or malformed."""

    status_code = 401
    code = 4000
    cause = "The API key is either missing, is no longer active, or malformed."
    message = "Missing or invalid API key."


class ValidationError(SnapcheckError):
    """Malformed caller input, rejected before any store or worker access."""

    status_code = 400
    code = 4001
    cause = "The request's payload is either missing or malformed."
    message = "Missing or invalid request payload."


class NotFoundError(SnapcheckError):
    """The resource does not exist or is not owned by the caller."""

    status_code = 404
    code = 4002
    cause = "The request's URI points to a resource which does not exist."
    message = "Requested resource not found"


class ConflictError(SnapcheckError):
    """A row with the same unique key already exists."""

    status_code = 409
    code = 4009
    cause = "The resource already exists."
    message = "Conflicting resource."


class WorkerUnavailableError(SnapcheckError):
    """The worker could not be reached or answered with an unusable response."""

    status_code = 502
    code = 5002
    cause = "The checklist's worker could not be reached or returned an invalid response."
    message = "Worker unavailable."
