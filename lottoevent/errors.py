"""Error taxonomy shared by the services and the HTTP boundary.

Every error carries a category ``kind`` and the HTTP status the boundary
answers with, so handlers never have to inspect concrete classes.
"""

from __future__ import annotations


class LotteryEventError(Exception):
    """Base exception for all lottery event errors."""

    kind = "LotteryEventError"
    status_code = 500
    default_message = "lottery event error"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "code": type(self).__name__}


class ValidationError(LotteryEventError):
    """Malformed input, rejected before storage is touched."""

    kind = "ValidationError"
    status_code = 400
    default_message = "invalid request"


class PhaseError(LotteryEventError):
    """Operation attempted outside its required event phase."""

    kind = "PhaseError"
    status_code = 409
    default_message = "operation not allowed in the current event phase"


class NotFoundError(LotteryEventError):
    kind = "NotFoundError"
    status_code = 404
    default_message = "not found"


class ConflictError(LotteryEventError):
    kind = "ConflictError"
    status_code = 409
    default_message = "conflict"


class AuthenticationError(LotteryEventError):
    kind = "AuthenticationError"
    status_code = 401
    default_message = "verification failed"


class TransientError(LotteryEventError):
    """Storage or sender unavailable; the caller may retry."""

    kind = "TransientError"
    status_code = 503
    default_message = "service temporarily unavailable"


class InvalidConfiguration(ValidationError):
    default_message = "invalid pool configuration"


class InvalidEventWindow(ValidationError):
    default_message = "event windows must satisfy start < end < announce start < announce end"


class InvalidPhoneNumber(ValidationError):
    default_message = "invalid phone number"


class InvalidCode(ValidationError):
    default_message = "invalid verification code format"


class EventNotActive(PhaseError):
    default_message = "event is not accepting participants"


class EventNotReady(PhaseError):
    default_message = "pool can only be generated before the event starts"


class ResultsNotOpen(PhaseError):
    default_message = "results are not announced yet"


class EventNotFound(NotFoundError):
    default_message = "event not found"


class VerificationNotFound(NotFoundError):
    default_message = "verification not found"


class NotParticipated(NotFoundError):
    default_message = "no participation found for this phone number"


class PoolAlreadyExists(ConflictError):
    default_message = "pool already generated for this event"


class PoolExhausted(ConflictError):
    default_message = "all lottery numbers for this event have been issued"


class PoolNotGenerated(ConflictError):
    default_message = "pool has not been generated for this event"


class AlreadyConsumed(ConflictError):
    default_message = "verification code already used"


class Mismatch(AuthenticationError):
    default_message = "verification code does not match"


class Expired(AuthenticationError):
    default_message = "verification code expired"


class TooManyAttempts(AuthenticationError):
    default_message = "too many failed verification attempts"


class NotVerified(AuthenticationError):
    default_message = "phone number is not verified"


class SendFailed(TransientError):
    default_message = "failed to send verification code"


class StorageUnavailable(TransientError):
    default_message = "storage unavailable"
