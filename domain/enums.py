"""Domain Enums"""
from enum import Enum


class ListingStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    REVISION = "revision"
    AWAITING_REAPPROVAL = "awaiting_reapproval"
    INACTIVE = "inactive"
    # Persisted code only; host suspension is tracked on the Host
    SUSPENDED = "suspended"


class ListingAction(str, Enum):
    SUBMIT = "submit"
    RESUBMIT = "resubmit"
    APPROVE = "approve"
    REJECT = "reject"
    STAGE_REVISION = "stage_revision"
    APPROVE_REVISION = "approve_revision"
    REJECT_REVISION = "reject_revision"
    DEACTIVATE = "deactivate"
    MODERATOR_DEACTIVATE = "moderator_deactivate"
    REACTIVATE = "reactivate"


class PricingType(str, Enum):
    FIXED = "fixed"
    GROUP = "group"
    CUSTOM = "custom"


class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class AvailabilityKind(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    BOOKED_OUT = "booked_out"


class AvailabilitySource(str, Enum):
    SPECIFIC_DATE = "specific_date"
    MONTH = "month"
    YEAR = "year"
    WEEKDAY = "weekday"
    DEFAULT = "default"
    PLATFORM_DEFAULT = "platform_default"


class CancellationStep(str, Enum):
    RESERVATION_REVERSED = "reservation_reversed"
    PLATFORM_ADJUSTED = "platform_adjusted"
    HOST_ADJUSTED = "host_adjusted"
    REFERRAL_ADJUSTED = "referral_adjusted"


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class CancellationOutcome(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    ALREADY_CANCELLED = "already_cancelled"


class PuntiLabel(str, Enum):
    STARTER = "STARTER"
    TOP_RATE = "TOP RATE"
    RELEVANT = "RELEVANT"


class ActorRole(str, Enum):
    MODERATOR = "moderator"
    HOST = "host"
    GUEST = "guest"
