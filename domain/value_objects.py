"""Domain Value Objects"""
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError, validator

from domain.enums import (
    ActorRole, AvailabilityKind, AvailabilitySource, CancellationOutcome,
    CancellationStep, ListingAction, ListingStatus, PricingType, PuntiLabel,
    StepStatus,
)
from domain.exceptions import InvalidPricingConfiguration


_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::\d{1,2})?$")
_MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_YEAR_KEY_RE = re.compile(r"^\d{4}$")
_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ============================================================================
# PRICING
# ============================================================================

class PricingTier(BaseModel):
    """Per-person price for a guest-count range"""
    min_guests: int = Field(gt=0)
    max_guests: int = Field(gt=0)
    price: Decimal = Field(gt=0)

    @validator('max_guests')
    def max_not_below_min(cls, v, values):
        if 'min_guests' in values and v < values['min_guests']:
            raise ValueError('maxGuests must be greater than or equal to minGuests')
        return v

    def contains(self, guest_count: int) -> bool:
        return self.min_guests <= guest_count <= self.max_guests

    class Config:
        frozen = True


class PricingConfiguration(BaseModel):
    """Value Object for a listing's pricing model"""
    pricing_type: PricingType = PricingType.FIXED
    price: Optional[Decimal] = Field(default=None, gt=0)
    group_price: Optional[Decimal] = Field(default=None, gt=0)
    group_size: Optional[int] = Field(default=None, gt=0)
    custom_pricing: List[PricingTier] = []

    class Config:
        frozen = True

    def sorted_tiers(self) -> List[PricingTier]:
        return sorted(self.custom_pricing, key=lambda tier: tier.min_guests)

    def validate_for_type(self) -> None:
        """Reject configurations the resolver cannot price"""
        if self.pricing_type == PricingType.FIXED and self.price is None:
            raise InvalidPricingConfiguration("Fixed pricing requires a positive price")
        if self.pricing_type == PricingType.GROUP and self.group_price is None:
            raise InvalidPricingConfiguration("Group pricing requires a positive group price")
        if self.pricing_type == PricingType.CUSTOM and not self.custom_pricing:
            raise InvalidPricingConfiguration("Provide at least one valid custom pricing tier")

    @classmethod
    def from_payload(cls, payload: Any) -> "PricingConfiguration":
        """Build from the persisted camelCase shape (snake_case also accepted)"""
        if not isinstance(payload, dict):
            raise InvalidPricingConfiguration("Pricing configuration must be an object")

        raw_type = _pick(payload, "pricingType", "pricing_type") or PricingType.FIXED.value
        try:
            pricing_type = PricingType(raw_type)
        except ValueError:
            raise InvalidPricingConfiguration(f"Unknown pricing type {raw_type!r}")

        raw_tiers = _pick(payload, "customPricing", "custom_pricing") or []
        if not isinstance(raw_tiers, list):
            raise InvalidPricingConfiguration("customPricing must be a list of tiers")

        try:
            tiers = [
                PricingTier(
                    min_guests=_pick(tier, "minGuests", "min_guests"),
                    max_guests=_pick(tier, "maxGuests", "max_guests"),
                    price=tier.get("price"),
                )
                for tier in raw_tiers
            ]
            config = cls(
                pricing_type=pricing_type,
                price=_pick(payload, "price"),
                group_price=_pick(payload, "groupPrice", "group_price"),
                group_size=_pick(payload, "groupSize", "group_size"),
                custom_pricing=sorted(tiers, key=lambda tier: tier.min_guests),
            )
        except (ValidationError, AttributeError, TypeError) as e:
            raise InvalidPricingConfiguration(f"Malformed pricing configuration: {e}")

        config.validate_for_type()
        return config

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"pricingType": self.pricing_type.value}
        if self.price is not None:
            payload["price"] = str(self.price)
        if self.group_price is not None:
            payload["groupPrice"] = str(self.group_price)
        if self.group_size is not None:
            payload["groupSize"] = self.group_size
        payload["customPricing"] = [
            {"minGuests": t.min_guests, "maxGuests": t.max_guests, "price": str(t.price)}
            for t in self.sorted_tiers()
        ]
        return payload


class PriceQuote(BaseModel):
    """Result of pricing resolution; both amounts rounded once"""
    pricing_type: PricingType
    guest_count: int
    unit_price: Decimal
    chargeable_total: Decimal
    descriptor: str
    currency: str = "EUR"
    tier: Optional[PricingTier] = None

    class Config:
        frozen = True


# ============================================================================
# AVAILABILITY
# ============================================================================

def normalize_time(value: Any) -> Optional[str]:
    """Normalize 'H:M' style input to zero-padded 'HH:MM', None if invalid"""
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def coerce_time_list(values: Any) -> List[str]:
    """Normalized, de-duplicated, sorted time list; invalid entries dropped"""
    if not isinstance(values, (list, tuple, set)):
        return []
    return sorted({t for t in (normalize_time(v) for v in values) if t})


def _is_date_key(key: str) -> bool:
    if not _DATE_KEY_RE.match(key):
        return False
    try:
        date.fromisoformat(key)
    except ValueError:
        return False
    return True


def _normalize_map(raw: Any, accept_key) -> Dict[str, List[str]]:
    if not isinstance(raw, dict):
        return {}
    result: Dict[str, List[str]] = {}
    for key, times in raw.items():
        key = str(key).strip()
        if accept_key(key):
            result[key] = coerce_time_list(times)
    return result


class AvailabilityRules(BaseModel):
    """Value Object for a listing's time-slot configuration.

    ``default_times`` of None means "no host default" (platform slots apply);
    an explicitly empty list anywhere means the host closed that period.
    Weekday keys follow the persisted convention 0 = Sunday .. 6 = Saturday.
    """
    default_times: Optional[List[str]] = None
    days_of_week: Dict[int, List[str]] = Field(default_factory=dict)
    months: Dict[str, List[str]] = Field(default_factory=dict)
    years: Dict[str, List[str]] = Field(default_factory=dict)
    specific_dates: Dict[str, List[str]] = Field(default_factory=dict)

    class Config:
        frozen = True

    def is_empty(self) -> bool:
        return self.default_times is None and not (
            self.days_of_week or self.months or self.years or self.specific_dates
        )

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["AvailabilityRules"]:
        """Normalize the persisted shape; None when nothing usable is configured"""
        if not isinstance(payload, dict):
            return None

        raw_default = _pick(payload, "defaultTimes", "default_times")
        default_times = coerce_time_list(raw_default) if raw_default is not None else None

        weekdays = _normalize_map(
            _pick(payload, "daysOfWeek", "days_of_week"),
            lambda key: key.isdigit() and 0 <= int(key) <= 6,
        )
        rules = cls(
            default_times=default_times,
            days_of_week={int(key): times for key, times in weekdays.items()},
            months=_normalize_map(payload.get("months"), lambda key: bool(_MONTH_KEY_RE.match(key))),
            years=_normalize_map(payload.get("years"), lambda key: bool(_YEAR_KEY_RE.match(key))),
            specific_dates=_normalize_map(
                _pick(payload, "specificDates", "specific_dates"), _is_date_key
            ),
        )
        return None if rules.is_empty() else rules

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.default_times is not None:
            payload["defaultTimes"] = list(self.default_times)
        payload["daysOfWeek"] = {str(k): list(v) for k, v in sorted(self.days_of_week.items())}
        payload["months"] = {k: list(v) for k, v in sorted(self.months.items())}
        payload["years"] = {k: list(v) for k, v in sorted(self.years.items())}
        payload["specificDates"] = {k: list(v) for k, v in sorted(self.specific_dates.items())}
        return payload


class AvailabilityResult(BaseModel):
    """Tagged availability answer for one calendar date"""
    on_date: date
    kind: AvailabilityKind
    source: AvailabilitySource
    slots: List[str] = []
    excluded: List[str] = []

    @property
    def is_bookable(self) -> bool:
        return self.kind == AvailabilityKind.OPEN

    class Config:
        frozen = True


# ============================================================================
# LISTING CONTENT & MODERATION
# ============================================================================

class ModerationAttachment(BaseModel):
    name: Optional[str] = None
    url: str

    class Config:
        frozen = True


class ListingContent(BaseModel):
    """Bookable content of a listing; staged separately while in revision"""
    title: str = ""
    description: str = ""
    categories: List[str] = []
    location: Optional[str] = None
    image_srcs: List[str] = []
    pricing: Optional[PricingConfiguration] = None
    availability_rules: Optional[AvailabilityRules] = None
    hours_in_advance: int = Field(default=0, ge=0)

    def missing_fields(self) -> List[str]:
        missing = []
        if not [c for c in self.categories if c.strip()]:
            missing.append("category")
        if not (self.location or "").strip():
            missing.append("location")
        if self.pricing is None:
            missing.append("pricing")
        if not [src for src in self.image_srcs if src.strip()]:
            missing.append("imageSrc")
        if not self.description.strip():
            missing.append("description")
        return missing

    class Config:
        frozen = True


class TransitionRecord(BaseModel):
    """Audit entry for one lifecycle transition"""
    actor_id: str
    action: ListingAction
    from_status: ListingStatus
    to_status: ListingStatus
    note: Optional[str] = None
    at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        frozen = True


class Actor(BaseModel):
    """Already-authenticated caller identity"""
    actor_id: str
    role: ActorRole

    @property
    def is_moderator(self) -> bool:
        return self.role == ActorRole.MODERATOR

    class Config:
        frozen = True


# ============================================================================
# LOYALTY
# ============================================================================

class LoyaltyConfig(BaseModel):
    """Partner program constants, passed explicitly into the engine"""
    max_point_value: int = Field(default=111, gt=0)
    min_commission: float = Field(default=15, ge=0, le=100)
    max_commission: float = Field(default=50, ge=0, le=100)
    approval_floor: int = Field(default=2, ge=0)

    @validator('max_commission')
    def max_not_below_min(cls, v, values):
        if 'min_commission' in values and v < values['min_commission']:
            raise ValueError('max_commission must be >= min_commission')
        return v

    class Config:
        frozen = True


class PuntiAdjustment(BaseModel):
    previous: int
    requested: int
    applied: int
    total: int

    @property
    def truncated(self) -> bool:
        return self.applied < self.requested

    class Config:
        frozen = True


class PartnerMetrics(BaseModel):
    punti: int
    punti_share: float
    punti_label: PuntiLabel
    partner_commission: float

    class Config:
        frozen = True


# ============================================================================
# CANCELLATION
# ============================================================================

class StepOutcome(BaseModel):
    step: CancellationStep
    status: StepStatus
    error: Optional[str] = None
    attempted_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def needs_retry(self) -> bool:
        return self.status == StepStatus.FAILED


class CancellationRecord(BaseModel):
    """Audit trail of a cancellation and the state of its cascade"""
    actor_id: str
    note: str
    attachments: List[ModerationAttachment] = []
    cancelled_at: datetime = Field(default_factory=datetime.utcnow)
    steps: Dict[CancellationStep, StepOutcome] = Field(default_factory=dict)

    def failed_steps(self) -> List[CancellationStep]:
        return [step for step, outcome in self.steps.items() if outcome.needs_retry]


class CancellationRequest(BaseModel):
    """Guest self-service request awaiting a moderator"""
    requested_by: str
    reason: str
    requested_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        frozen = True


class CancellationResult(BaseModel):
    reservation_id: str
    outcome: CancellationOutcome
    steps: Dict[CancellationStep, StepOutcome] = Field(default_factory=dict)

    @property
    def failed_steps(self) -> List[CancellationStep]:
        return [step for step, outcome in self.steps.items() if outcome.needs_retry]

    @property
    def succeeded(self) -> bool:
        return not self.failed_steps


def _pick(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def unique_strings(values: Iterable[Any]) -> List[str]:
    """Trimmed, non-empty, order-preserving de-duplication"""
    seen: Dict[str, None] = {}
    for value in values or []:
        if isinstance(value, str) and value.strip():
            seen.setdefault(value.strip(), None)
    return list(seen)
