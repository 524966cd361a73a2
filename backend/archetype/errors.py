"""
Domain errors raised by the assessment services.

Each error carries the HTTP status the API answers with and an optional
payload of extra fields that are merged into the JSON error body.
"""


class AssessmentError(Exception):
    """Base class for all errors raised by the services layer."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, **self.payload}


class NotFoundError(AssessmentError):
    status_code = 404
    code = "not_found"


class InvalidStateError(AssessmentError):
    """Operation attempted against an attempt in the wrong lifecycle state."""

    status_code = 409
    code = "invalid_state"


class QuotaExceededError(AssessmentError):
    """The user has used up every attempt the test allows."""

    status_code = 400
    code = "max_attempts_reached"

    def __init__(self, attempts_made: int, max_attempts: int):
        super().__init__(
            "Maximum attempts reached ({} of {})".format(attempts_made, max_attempts),
            attempts_made=attempts_made,
            max_attempts=max_attempts,
        )
        self.attempts_made = attempts_made
        self.max_attempts = max_attempts


class ValidationFailedError(AssessmentError):
    status_code = 400
    code = "validation_error"


class ConcurrencyConflictError(AssessmentError):
    """A concurrent request changed the same rows first. Safe to retry once."""

    status_code = 409
    code = "concurrency_conflict"


class DuplicateError(AssessmentError):
    status_code = 409
    code = "duplicate"


class PersistenceError(AssessmentError):
    status_code = 500
    code = "persistence_error"


class NotificationError(AssessmentError):
    """Delivery to the notification service failed. Logged, never surfaced."""

    code = "notification_error"
