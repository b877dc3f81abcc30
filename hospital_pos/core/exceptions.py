"""
Error taxonomy for the workflow engine and its collaborators.

Domain errors (validation, lookup, state transition) are raised
synchronously and never retried by the engine; the caller decides whether
to prompt again. ``CollaboratorError`` is kept separate so a failed call to
the hosted backend is never mistaken for a rule violation.
"""
from typing import Any, Optional


class HospitalError(Exception):
    """Base class for every error the application raises on purpose."""

    type = "error"
    code = "UNKNOWN_ERROR"
    http_status = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        detail: Any = None,
        http_status: Optional[int] = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"type": self.type, "code": self.code, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ValidationError(HospitalError):
    """Malformed or missing input, including non-positive amounts."""

    type = "validation_error"
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(HospitalError):
    """An identifier does not resolve to a record."""

    type = "not_found"
    code = "NOT_FOUND"
    http_status = 404


class InvalidTransitionError(HospitalError):
    """The requested state change is not allowed from the current state."""

    type = "invalid_transition"
    code = "INVALID_TRANSITION"
    http_status = 409


class PermissionDeniedError(HospitalError):
    """The authenticated role may not perform the operation."""

    type = "permission_denied"
    code = "PERMISSION_DENIED"
    http_status = 403


class AuthenticationError(HospitalError):
    """Missing, expired or unknown credentials."""

    type = "authentication_error"
    code = "NOT_AUTHENTICATED"
    http_status = 401


class CollaboratorError(HospitalError):
    """The hosted backend (records, identity, provisioning) failed or refused."""

    type = "collaborator_error"
    code = "COLLABORATOR_ERROR"
    http_status = 502
