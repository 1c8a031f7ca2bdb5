"""API Schemas - Request and Response DTOs"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# LISTING SCHEMAS
# ============================================================================

class AttachmentSchema(BaseModel):
    """Moderation attachment DTO"""
    name: Optional[str] = None
    url: str


class ListingContentRequest(BaseModel):
    """Listing content DTO; pricing and availability use the persisted camelCase shape"""
    title: str = ""
    description: str = ""
    categories: List[str] = []
    location: Optional[str] = None
    image_srcs: List[str] = []
    pricing: Optional[Dict[str, Any]] = None
    availability_rules: Optional[Dict[str, Any]] = None
    hours_in_advance: int = Field(default=0, ge=0)


class ResubmitListingRequest(BaseModel):
    """Resubmit request DTO; omitted content keeps the current one"""
    content: Optional[ListingContentRequest] = None


class RejectListingRequest(BaseModel):
    """Reject request DTO"""
    note: Optional[str] = None
    attachments: List[AttachmentSchema] = []


class RejectRevisionRequest(BaseModel):
    """Reject revision request DTO"""
    note: Optional[str] = None


class PuntiIncreaseRequest(BaseModel):
    """Punti increase request DTO"""
    delta: int


class HostSuspensionRequest(BaseModel):
    """Host suspension toggle DTO"""
    suspended: bool = True


class HostCommissionRequest(BaseModel):
    """Negotiated commission in percent; null returns the host to the punti-derived rate"""
    partner_commission: Optional[float] = None


class ListingContentResponse(BaseModel):
    title: str
    description: str
    categories: List[str]
    location: Optional[str] = None
    image_srcs: List[str]
    pricing: Optional[Dict[str, Any]] = None
    availability_rules: Optional[Dict[str, Any]] = None
    hours_in_advance: int


class ListingResponse(BaseModel):
    """Listing response DTO"""
    listing_id: str
    host_id: str
    status: str
    content: ListingContentResponse
    staged_content: Optional[ListingContentResponse] = None
    punti: int
    moderation_note: Optional[str] = None
    moderation_attachments: List[AttachmentSchema] = []
    created_at: datetime
    modified_at: datetime
    version: int


class DeactivateListingResponse(BaseModel):
    listing: ListingResponse
    already_inactive: bool


class PuntiAdjustmentResponse(BaseModel):
    listing_id: str
    previous: int
    requested: int
    applied: int
    total: int
    truncated: bool


class PartnerMetricsResponse(BaseModel):
    punti: int
    punti_share: float
    punti_label: str
    partner_commission: float


class HostResponse(BaseModel):
    host_id: str
    name: Optional[str] = None
    is_suspended: bool
    suspended_at: Optional[datetime] = None
    partner_commission: Optional[float] = None


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class AvailabilityResponse(BaseModel):
    """Availability response DTO"""
    listing_id: str
    on_date: date
    kind: str
    source: str
    slots: List[str]
    excluded: List[str]


class QuoteResponse(BaseModel):
    """Price quote response DTO"""
    listing_id: str
    pricing_type: str
    guest_count: int
    unit_price: Decimal
    chargeable_total: Decimal
    descriptor: str
    currency: str


class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    listing_id: str
    start_date: date
    time: str
    guest_count: int
    referral_id: Optional[str] = None


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: str
    listing_id: str
    host_id: Optional[str] = None
    referral_id: Optional[str] = None
    guest_id: str
    guest_count: int
    start_date: date
    time: str
    unit_price: Decimal
    total_price: Decimal
    price_descriptor: str
    currency: str
    commission_rate: float
    platform_fee: Decimal
    booked_at: date
    status: str
    cancellation_note: Optional[str] = None
    cancellation_requested: bool = False
    created_at: datetime
    modified_at: datetime
    version: int


# ============================================================================
# CANCELLATION SCHEMAS
# ============================================================================

class CancelReservationRequest(BaseModel):
    """Moderator cancellation DTO"""
    note: str
    attachments: List[AttachmentSchema] = []


class CancellationRequestRequest(BaseModel):
    """Guest cancellation request DTO"""
    reason: str


class StepOutcomeResponse(BaseModel):
    step: str
    status: str
    error: Optional[str] = None
    attempted_at: datetime


class CancellationResultResponse(BaseModel):
    reservation_id: str
    outcome: str
    steps: List[StepOutcomeResponse]
    failed_steps: List[str]


# ============================================================================
# ANALYTICS SCHEMAS
# ============================================================================

class LedgerBucketResponse(BaseModel):
    bookings: int
    revenue: Decimal
    fees: Decimal


class LedgerResponse(BaseModel):
    account_id: str
    total_bookings: int
    total_revenue: Decimal
    total_fees: Decimal
    daily: Dict[str, LedgerBucketResponse] = {}
    monthly: Dict[str, LedgerBucketResponse] = {}
    yearly: Dict[str, LedgerBucketResponse] = {}


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str


class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None
    role: Optional[str] = None


class UserResponse(BaseModel):
    """User response DTO"""
    user_id: str
    username: str
    role: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool
