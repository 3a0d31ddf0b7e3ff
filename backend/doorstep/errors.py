# Overview: Domain error taxonomy shared by services, routes and CLI.

"""
Doorstep domain errors.

Every business-rule rejection raised by a service is a DeliveryCoreError
subclass. Each carries a stable machine-readable ``code`` and the HTTP status
the API layer maps it to. These are rejections, not transient faults: callers
must not retry them.
"""

from __future__ import annotations


class DeliveryCoreError(Exception):
    """Base class for business-rule rejections."""

    code = "DELIVERY_CORE_ERROR"
    http_status = 400

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(DeliveryCoreError):
    """Delivery, agent, area or subscription absent."""

    code = "NOT_FOUND"
    http_status = 404


class UnauthorizedError(DeliveryCoreError):
    """Acting agent is not the agent assigned to the delivery."""

    code = "UNAUTHORIZED"
    http_status = 403


class InvalidTransitionError(DeliveryCoreError):
    code = "INVALID_TRANSITION"
    http_status = 409


class AlreadyTerminalError(InvalidTransitionError):
    """Delivery is already DELIVERED or FAILED."""

    code = "ALREADY_TERMINAL"


class MissingProofError(DeliveryCoreError):
    code = "MISSING_PROOF"


class InvalidProofError(DeliveryCoreError):
    code = "INVALID_PROOF"


class MissingReasonError(DeliveryCoreError):
    code = "MISSING_REASON"


class InvalidReasonCodeError(DeliveryCoreError):
    code = "INVALID_REASON_CODE"


class InvalidAreaError(DeliveryCoreError):
    """Target coverage area does not exist or has no postal codes."""

    code = "INVALID_AREA"


class ValidationError(DeliveryCoreError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"


class ScheduleError(ValidationError):
    """Invalid subscription schedule or generator input."""

    code = "INVALID_SCHEDULE"


class ConflictError(DeliveryCoreError):
    """Uniqueness conflict (duplicate area name, agent phone)."""

    code = "CONFLICT"
    http_status = 409
