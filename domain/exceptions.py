"""Domain Exceptions

Every domain error is a ValueError so callers that only distinguish
"bad request" from "not found" keep working; the API layer maps the
``code`` of each subclass to a specific HTTP status.
"""
from typing import Any, Dict, List, Optional


class DomainError(ValueError):
    """Base class for business rule violations"""
    code = "domain_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class StateViolation(DomainError):
    """Illegal listing lifecycle transition"""
    code = "state_violation"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot {requested} a listing in status {current}",
            {"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class ListingIncomplete(DomainError):
    code = "listing_incomplete"

    def __init__(self, missing: List[str]):
        super().__init__(
            f"Listing is missing required fields: {', '.join(missing)}",
            {"missing": missing},
        )
        self.missing = missing


class InvalidGuestCount(DomainError):
    code = "invalid_guest_count"

    def __init__(self, guest_count: Any):
        super().__init__(
            f"Guest count must be at least 1, got {guest_count}",
            {"guest_count": guest_count},
        )


class InvalidPricingConfiguration(DomainError):
    code = "invalid_pricing_configuration"


class InvalidPuntiDelta(DomainError):
    code = "invalid_punti_delta"


class ListingUnavailable(DomainError):
    """Listing cannot serve bookings (status or host suspension)"""
    code = "listing_unavailable"


class SlotUnavailable(DomainError):
    code = "slot_unavailable"


class ActionNotPermitted(DomainError):
    """Actor lacks the role or ownership the action requires"""
    code = "not_permitted"


class AggregateAdjustmentFailure(DomainError):
    """One compensating step of a cancellation failed"""
    code = "aggregate_adjustment_failure"

    def __init__(self, step: str, reason: str):
        super().__init__(
            f"Step {step} failed: {reason}",
            {"step": step, "reason": reason},
        )
        self.step = step
        self.reason = reason


class AlreadyCancelled(DomainError):
    """Idempotent no-op: callers treat it as success"""
    code = "already_cancelled"

    def __init__(self, reservation_id: str):
        super().__init__(
            f"Reservation {reservation_id} is already cancelled",
            {"reservation_id": reservation_id},
        )
        self.reservation_id = reservation_id


class TooManyAttachments(DomainError):
    code = "too_many_attachments"

    def __init__(self, count: int, limit: int):
        super().__init__(
            f"At most {limit} attachments are allowed, got {count}",
            {"count": count, "limit": limit},
        )
