"""
Typed outcomes raised by the tracking services.

Every failure the lifecycle core knows how to explain is raised as a
``TrackingError`` subclass carrying the field or named precondition that
failed, so the HTTP layer can render a targeted message. Anything else
coming out of the storage layer is unexpected and surfaces as a generic
``ProcessingError``.
"""

from __future__ import annotations

from typing import Any


class TrackingError(RuntimeError):
    """Base error for calibration tracking operations."""

    status_code = 400
    default_code = "tracking_error"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.code = code or self.default_code
        self.context = context or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
            "field": self.field,
        }
        if self.field:
            payload["errors"] = {self.field: self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class ValidationError(TrackingError):
    """
    A field is missing or invalid, or a business rule blocks the operation.

    Examples: missing technician, department mismatch between the intake
    employee and the confirming employee, archiving a record that still
    owns an outgoing record.
    """

    status_code = 422
    default_code = "invalid"


class AuthenticationError(TrackingError):
    """The supplied PIN did not match the employee's stored credential."""

    status_code = 401
    default_code = "invalid_pin"


class ForbiddenError(TrackingError):
    """The caller may not see or change this record."""

    status_code = 403
    default_code = "forbidden"


class NotFoundError(TrackingError):
    """An identifier did not resolve to a live record."""

    status_code = 404
    default_code = "not_found"


class ConflictError(TrackingError):
    """A uniqueness rule was violated (recall number, duplicate outgoing)."""

    status_code = 409
    default_code = "conflict"


class ProcessingError(TrackingError):
    """Unexpected storage failure; details stay in the logs."""

    status_code = 500
    default_code = "processing_failed"

    def __init__(self, message: str = "Processing failed", **kwargs: Any):
        super().__init__(message, **kwargs)


class CascadeIntegrityError(ProcessingError):
    """A force delete stopped part way; the two tables may disagree."""

    default_code = "cascade_integrity"
