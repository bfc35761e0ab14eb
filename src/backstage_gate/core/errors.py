"""Domain error taxonomy.

Every error carries a stable ``code`` that front ends map to user-facing
copy, an HTTP status used by the API layer, and optional structured
``details``. Messages never include storage-level information.
"""

from __future__ import annotations

from typing import Any


class GateError(Exception):
    """Base class for all errors raised by the verification engine."""

    code = "GATE_ERROR"
    status_code = 500
    default_message = "Unexpected gate error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the stable wire representation of the error."""
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(GateError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class ValidationError(GateError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Invalid input"


class ForbiddenError(GateError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Action not allowed"


class ConflictError(GateError):
    code = "CONFLICT"
    status_code = 409
    default_message = "Conflicting request"


class ExpiredError(GateError):
    code = "EXPIRED"
    status_code = 410
    default_message = "Token has expired"


class CsrfError(GateError):
    code = "CSRF_INVALID"
    status_code = 403
    default_message = "Invalid verification state"


class ExternalServiceError(GateError):
    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502
    default_message = "External service failed"


# --- NotFound ---------------------------------------------------------------------


class GateNotFoundError(NotFoundError):
    code = "GATE_NOT_FOUND"
    default_message = "Download gate not found"


class SubmissionNotFoundError(NotFoundError):
    code = "SUBMISSION_NOT_FOUND"
    default_message = "Submission not found"


class InvalidCredentialError(NotFoundError):
    code = "CREDENTIAL_INVALID"
    default_message = "Invalid download token"


# --- Forbidden --------------------------------------------------------------------


class GateInactiveError(ForbiddenError):
    code = "GATE_INACTIVE"
    default_message = "This download gate is no longer active"


class GateExpiredError(ForbiddenError):
    code = "GATE_EXPIRED"
    default_message = "This download gate has expired"


class MaxDownloadsReachedError(ForbiddenError):
    code = "MAX_DOWNLOADS_REACHED"
    default_message = "Maximum download limit reached"


class VerificationIncompleteError(ForbiddenError):
    code = "VERIFICATION_INCOMPLETE"
    default_message = "Required verifications not completed"


# --- Conflict ---------------------------------------------------------------------


class DuplicateSubmissionError(ConflictError):
    code = "ALREADY_SUBMITTED"
    default_message = "You have already submitted to this download gate"


class DuplicateSlugError(ConflictError):
    code = "SLUG_TAKEN"
    default_message = "A gate with this slug already exists"


class StepAlreadyVerifiedError(ConflictError):
    code = "STEP_ALREADY_VERIFIED"
    default_message = "This step has already been verified"


class CredentialAlreadyUsedError(ConflictError):
    code = "CREDENTIAL_ALREADY_USED"
    default_message = "This download token has already been used"


class DownloadAlreadyCompletedError(ConflictError):
    code = "DOWNLOAD_ALREADY_COMPLETED"
    default_message = "The download for this submission was already completed"


# --- Expired ----------------------------------------------------------------------


class HandshakeExpiredError(ExpiredError):
    code = "HANDSHAKE_EXPIRED"
    default_message = "Verification link has expired, please start again"


class HandshakeReplayError(ExpiredError):
    code = "HANDSHAKE_REPLAYED"
    default_message = "Verification link was already used, please start again"


class CredentialExpiredError(ExpiredError):
    code = "CREDENTIAL_EXPIRED"
    default_message = "Download token has expired, please request a new download link"


__all__ = [
    "GateError",
    "NotFoundError",
    "ValidationError",
    "ForbiddenError",
    "ConflictError",
    "ExpiredError",
    "CsrfError",
    "ExternalServiceError",
    "GateNotFoundError",
    "SubmissionNotFoundError",
    "InvalidCredentialError",
    "GateInactiveError",
    "GateExpiredError",
    "MaxDownloadsReachedError",
    "VerificationIncompleteError",
    "DuplicateSubmissionError",
    "DuplicateSlugError",
    "StepAlreadyVerifiedError",
    "CredentialAlreadyUsedError",
    "DownloadAlreadyCompletedError",
    "HandshakeExpiredError",
    "HandshakeReplayError",
    "CredentialExpiredError",
]
