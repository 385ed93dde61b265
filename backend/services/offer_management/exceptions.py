"""Custom exceptions for offer dispatch."""

from typing import Any, Dict, Iterable, Optional


class DispatchError(Exception):
    """
    Base class for every error the dispatch layer surfaces to callers.

    Each subclass has a stable ``code`` and the HTTP status it maps to;
    ``details`` carries structured data the client can act on.
    """
    code = "DISPATCH_ERROR"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class OfferValidationError(DispatchError):
    """Raised for malformed input (missing coordinates, bad ranges...)."""
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid request data"


class OfferNotFoundError(DispatchError):
    """Raised when an offer id is unknown."""
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Offer not found"


class ForbiddenActionError(DispatchError):
    """Raised when the actor lacks the role, verification, ownership or assignment."""
    code = "FORBIDDEN"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class InvalidTransitionError(DispatchError):
    """Raised when a status change is not permitted from the current status."""
    code = "INVALID_TRANSITION"
    status_code = 409
    default_message = "Invalid status transition"

    def __init__(self, message: Optional[str] = None, current_status: str = "",
                 valid_next_states: Iterable[str] = ()):
        self.current_status = current_status
        self.valid_next_states = list(valid_next_states)
        super().__init__(message, details={
            "currentStatus": current_status,
            "validNextStates": self.valid_next_states,
        })


class OfferAlreadyClaimedError(DispatchError):
    """Raised when another rider won the race to accept an offer."""
    code = "OFFER_ALREADY_CLAIMED"
    status_code = 409
    default_message = "This offer has already been accepted by another rider"


class GeocodingFailedError(DispatchError):
    """Raised when an address cannot be turned into coordinates."""
    code = "GEOCODING_FAILED"
    status_code = 422
    default_message = "Unable to geocode address"


class InvalidLocationError(DispatchError):
    """Raised when a search location is missing or out of range."""
    code = "INVALID_LOCATION"
    status_code = 400
    default_message = "A valid location [longitude, latitude] is required"


class SearchTimeoutError(DispatchError):
    """Raised when a nearby search exceeds its time bound."""
    code = "TIMEOUT"
    status_code = 504
    default_message = "Search took too long, please narrow it down and retry"
