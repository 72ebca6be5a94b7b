"""
Exception hierarchy for the worksheet engine.

Every error carries a short machine-checkable ``reason`` that is safe to
return to clients; ``message`` and ``details`` are for the logs.
"""


class InsiemeError(Exception):
    """Base exception for all worksheet engine errors."""

    status_code: int = 500
    reason: str = "internal_error"
    public_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str, details: dict | None = None, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(InsiemeError):
    """A required field is missing or a payload is malformed. No side effects."""

    status_code = 400
    reason = "invalid_request"
    public_message = "The request is missing required information."


class UpstreamParseError(InsiemeError):
    """The AI backend answered, but not with usable JSON."""

    status_code = 500
    reason = "unparseable_response"
    public_message = "The AI service returned an unexpected response. Please try again."


class UpstreamUnavailable(InsiemeError):
    """The AI backend or file ingestion call failed or timed out."""

    status_code = 500
    reason = "backend_unavailable"
    public_message = "The AI service is currently unavailable. Please try again."


class PersistenceError(InsiemeError):
    """A document store write failed."""

    status_code = 500
    reason = "persistence_failed"
    public_message = "Your result could not be saved. Please try again."


class InvalidTransitionError(InsiemeError):
    """A worksheet status change that the lifecycle does not allow."""

    status_code = 409
    reason = "invalid_transition"
    public_message = "This worksheet cannot be changed in its current state."


class NotFoundError(InsiemeError):
    """A requested document does not exist."""

    status_code = 404
    reason = "not_found"
    public_message = "The requested item was not found."
