import logging
from datetime import date, timedelta
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import OAuth2PasswordRequestForm

import config
from api.dependencies import fake_users_db, get_current_active_user, get_current_actor, get_user, require_moderator
from api.exception_handlers import register_exception_handlers
from api.schemas import (
    # Listings
    AttachmentSchema, ListingContentRequest, ListingContentResponse, ListingResponse,
    ResubmitListingRequest, RejectListingRequest, RejectRevisionRequest,
    DeactivateListingResponse, PuntiIncreaseRequest, PuntiAdjustmentResponse,
    PartnerMetricsResponse, HostResponse, HostSuspensionRequest, HostCommissionRequest,
    # Booking
    AvailabilityResponse, QuoteResponse, CreateReservationRequest, ReservationResponse,
    # Cancellation
    CancelReservationRequest, CancellationRequestRequest, CancellationResultResponse,
    StepOutcomeResponse,
    # Analytics
    LedgerBucketResponse, LedgerResponse,
    # Auth
    Token, UserResponse,
)
from application.cancellation import ReservationCancellationCoordinator
from application.notifications import LoggingCancellationNotifier
from application.services import (
    BookingQuoteService, ListingLifecycleService, LoyaltyService, ReservationService,
)
from domain.auth import User
from domain.availability import AvailabilityResolver
from domain.entities import Host
from domain.enums import (
    ActorRole, AvailabilityKind, CancellationOutcome, ListingStatus, PricingType, PuntiLabel,
    ReservationStatus,
)
from domain.ledgers import PLATFORM_ACCOUNT_ID
from domain.loyalty import LoyaltyScoreEngine
from domain.pricing import PricingResolver
from domain.value_objects import (
    Actor, AvailabilityRules, ListingContent, LoyaltyConfig, ModerationAttachment,
    PricingConfiguration, unique_strings,
)
from infrastructure.repositories.in_memory_repositories import (
    InMemoryHostEarningsRepository, InMemoryHostRepository, InMemoryListingRepository,
    InMemoryPlatformAnalyticsRepository, InMemoryPromoterAnalyticsRepository,
    InMemoryReservationRepository,
)
from infrastructure.security import create_access_token, verify_password

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.APP_NAME,
    description="Listing moderation, pricing, availability, punti and reservation cancellation",
    version=config.APP_VERSION,
)
register_exception_handlers(app)

# Initialize repositories
listing_repo = InMemoryListingRepository()
host_repo = InMemoryHostRepository()
reservation_repo = InMemoryReservationRepository()
platform_repo = InMemoryPlatformAnalyticsRepository()
host_earnings_repo = InMemoryHostEarningsRepository()
promoter_repo = InMemoryPromoterAnalyticsRepository()

loyalty_engine = LoyaltyScoreEngine(
    LoyaltyConfig(
        max_point_value=config.MAX_PARTNER_POINT_VALUE,
        min_commission=config.MIN_PARTNER_COMMISSION,
        max_commission=config.MAX_PARTNER_COMMISSION,
        approval_floor=config.APPROVAL_PUNTI_FLOOR,
    )
)
pricing_resolver = PricingResolver(config.CURRENCY)
availability_resolver = AvailabilityResolver(config.DEFAULT_TIME_SLOTS)
notifier = LoggingCancellationNotifier()


# Dependency injection
def get_loyalty_service() -> LoyaltyService:
    return LoyaltyService(listing_repo, loyalty_engine, host_repo)


def get_listing_service() -> ListingLifecycleService:
    return ListingLifecycleService(
        listing_repo, host_repo, get_loyalty_service(), config.MAX_MODERATION_ATTACHMENTS
    )


def get_quote_service() -> BookingQuoteService:
    return BookingQuoteService(listing_repo, host_repo, reservation_repo, pricing_resolver, availability_resolver)


def get_reservation_service() -> ReservationService:
    return ReservationService(
        reservation_repo, get_quote_service(), get_loyalty_service(),
        platform_repo, host_earnings_repo, promoter_repo, notifier,
    )


def get_cancellation_coordinator() -> ReservationCancellationCoordinator:
    return ReservationCancellationCoordinator(
        reservation_repo, platform_repo, host_earnings_repo, promoter_repo, notifier
    )


# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}


@app.get("/api/enums/listing-status", tags=["Enum Reference"])
async def get_listing_statuses():
    """Get all ListingStatus enum values"""
    return {"values": [item.value for item in ListingStatus]}


@app.get("/api/enums/pricing-type", tags=["Enum Reference"])
async def get_pricing_types():
    """Get all PricingType enum values"""
    return {"values": [item.value for item in PricingType]}


@app.get("/api/enums/punti-label", tags=["Enum Reference"])
async def get_punti_labels():
    """Get all PuntiLabel values"""
    return {"values": [item.value for item in PuntiLabel]}


@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {"values": [item.value for item in ReservationStatus]}


@app.get("/api/enums/cancellation-outcome", tags=["Enum Reference"])
async def get_cancellation_outcomes():
    return {"values": [item.value for item in CancellationOutcome]}


@app.get("/api/enums/availability-kind", tags=["Enum Reference"])
async def get_availability_kinds():
    return {"values": [item.value for item in AvailabilityKind]}


# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(
        data={"sub": user.username, "role": user.role.value},
        expires_delta=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer"}


@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return _user_to_response(current_user)


# ============================================================================
# LISTING ENDPOINTS
# ============================================================================

@app.post("/api/listings", response_model=ListingResponse, status_code=201, tags=["Listings"])
async def create_listing(
    request: ListingContentRequest,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(get_current_actor),
):
    """Create a draft listing owned by the caller"""
    if actor.role != ActorRole.HOST:
        raise HTTPException(status_code=403, detail="Only hosts can create listings")
    listing = await service.create_draft(actor.actor_id, _content_from_request(request))
    return _listing_to_response(listing)


@app.get("/api/listings/moderation-queue", response_model=List[ListingResponse], tags=["Listings"])
async def get_moderation_queue(
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(require_moderator),
):
    """Listings waiting for a moderator decision"""
    return [_listing_to_response(l) for l in await service.get_moderation_queue()]


@app.get("/api/listings/{listing_id}", response_model=ListingResponse, tags=["Listings"])
async def get_listing(
    listing_id: str,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(get_current_actor),
):
    """Get listing by ID"""
    return _listing_to_response(_found(await service.get_listing(listing_id), "Listing"))


@app.post("/api/listings/{listing_id}/submit", response_model=ListingResponse, tags=["Listings"])
async def submit_listing(
    listing_id: str,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(get_current_actor),
):
    """Submit a draft for moderation"""
    return _listing_to_response(_found(await service.submit(listing_id, actor), "Listing"))


@app.post("/api/listings/{listing_id}/resubmit", response_model=ListingResponse, tags=["Listings"])
async def resubmit_listing(
    listing_id: str,
    request: ResubmitListingRequest,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(get_current_actor),
):
    """Resubmit a rejected listing, optionally with corrected content"""
    content = _content_from_request(request.content) if request.content else None
    return _listing_to_response(_found(await service.resubmit(listing_id, actor, content), "Listing"))


@app.post("/api/listings/{listing_id}/approve", response_model=ListingResponse, tags=["Moderation"])
async def approve_listing(
    listing_id: str,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(require_moderator),
):
    """Approve a pending listing"""
    return _listing_to_response(_found(await service.approve(listing_id, actor), "Listing"))


@app.post("/api/listings/{listing_id}/reject", response_model=ListingResponse, tags=["Moderation"])
async def reject_listing(
    listing_id: str,
    request: RejectListingRequest,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(require_moderator),
):
    """Reject a pending listing with a note and attachments"""
    listing = await service.reject(listing_id, actor, request.note, _attachments(request.attachments))
    return _listing_to_response(_found(listing, "Listing"))


@app.post("/api/listings/{listing_id}/revisions", response_model=ListingResponse, tags=["Listings"])
async def stage_revision(
    listing_id: str,
    request: ListingContentRequest,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(get_current_actor),
):
    """Stage edits to an active listing"""
    listing = await service.stage_revision(listing_id, actor, _content_from_request(request))
    return _listing_to_response(_found(listing, "Listing"))


@app.post("/api/listings/{listing_id}/revisions/approve", response_model=ListingResponse, tags=["Moderation"])
async def approve_revision(
    listing_id: str,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(require_moderator),
):
    return _listing_to_response(_found(await service.approve_revision(listing_id, actor), "Listing"))


@app.post("/api/listings/{listing_id}/revisions/reject", response_model=ListingResponse, tags=["Moderation"])
async def reject_revision(
    listing_id: str,
    request: RejectRevisionRequest,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(require_moderator),
):
    listing = await service.reject_revision(listing_id, actor, request.note)
    return _listing_to_response(_found(listing, "Listing"))


@app.post("/api/listings/{listing_id}/deactivate", response_model=DeactivateListingResponse, tags=["Listings"])
async def deactivate_listing(
    listing_id: str,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(get_current_actor),
):
    """Take a listing out of the catalog; moderators may do so from any status"""
    listing, already_inactive = _found(await service.deactivate(listing_id, actor), "Listing")
    return DeactivateListingResponse(listing=_listing_to_response(listing), already_inactive=already_inactive)


@app.post("/api/listings/{listing_id}/reactivate", response_model=ListingResponse, tags=["Listings"])
async def reactivate_listing(
    listing_id: str,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(get_current_actor),
):
    """Send an inactive listing back for re-approval"""
    return _listing_to_response(_found(await service.reactivate(listing_id, actor), "Listing"))


@app.post("/api/listings/{listing_id}/punti", response_model=PuntiAdjustmentResponse, tags=["Loyalty"])
async def increase_punti(
    listing_id: str,
    request: PuntiIncreaseRequest,
    service: LoyaltyService = Depends(get_loyalty_service),
    actor: Actor = Depends(require_moderator),
):
    """Increase punti; the total is silently capped"""
    adjustment = _found(await service.increase_punti(listing_id, request.delta, actor), "Listing")
    return PuntiAdjustmentResponse(
        listing_id=listing_id,
        previous=adjustment.previous,
        requested=adjustment.requested,
        applied=adjustment.applied,
        total=adjustment.total,
        truncated=adjustment.truncated,
    )


@app.get("/api/listings/{listing_id}/metrics", response_model=PartnerMetricsResponse, tags=["Loyalty"])
async def get_listing_metrics(
    listing_id: str,
    service: LoyaltyService = Depends(get_loyalty_service),
    actor: Actor = Depends(get_current_actor),
):
    """Punti share, label and partner commission of a listing"""
    return _metrics_to_response(_found(await service.listing_metrics(listing_id), "Listing"))


# ============================================================================
# HOST ENDPOINTS
# ============================================================================

@app.put("/api/hosts/{host_id}/suspension", response_model=HostResponse, tags=["Moderation"])
async def set_host_suspension(
    host_id: str,
    request: HostSuspensionRequest,
    service: ListingLifecycleService = Depends(get_listing_service),
    actor: Actor = Depends(require_moderator),
):
    """Suspend or unsuspend a host; listing statuses are untouched"""
    host = _found(await service.set_host_suspension(host_id, actor, request.suspended), "Host")
    return _host_to_response(host)


@app.put("/api/hosts/{host_id}/commission", response_model=HostResponse, tags=["Loyalty"])
async def set_host_commission(
    host_id: str,
    request: HostCommissionRequest,
    service: LoyaltyService = Depends(get_loyalty_service),
    actor: Actor = Depends(get_current_actor),
):
    """Set a host's negotiated commission (moderator or the host itself); null clears it"""
    host = _found(await service.set_host_commission(host_id, actor, request.partner_commission), "Host")
    return _host_to_response(host)


@app.get("/api/hosts/{host_id}/metrics", response_model=PartnerMetricsResponse, tags=["Loyalty"])
async def get_host_metrics(
    host_id: str,
    service: LoyaltyService = Depends(get_loyalty_service),
    actor: Actor = Depends(get_current_actor),
):
    """Partner profile across a host's active listings"""
    return _metrics_to_response(await service.host_metrics(host_id))


# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.get("/api/listings/{listing_id}/availability", response_model=AvailabilityResponse, tags=["Booking"])
async def get_availability(
    listing_id: str,
    on_date: date,
    service: BookingQuoteService = Depends(get_quote_service),
    actor: Actor = Depends(get_current_actor),
):
    """Bookable slots for one date"""
    result = _found(await service.get_availability(listing_id, on_date), "Listing")
    return AvailabilityResponse(
        listing_id=listing_id,
        on_date=result.on_date,
        kind=result.kind.value,
        source=result.source.value,
        slots=result.slots,
        excluded=result.excluded,
    )


@app.get("/api/listings/{listing_id}/quote", response_model=QuoteResponse, tags=["Booking"])
async def get_quote(
    listing_id: str,
    guest_count: int,
    service: BookingQuoteService = Depends(get_quote_service),
    actor: Actor = Depends(get_current_actor),
):
    """Price for a party size"""
    quote = _found(await service.quote(listing_id, guest_count), "Listing")
    return QuoteResponse(
        listing_id=listing_id,
        pricing_type=quote.pricing_type.value,
        guest_count=quote.guest_count,
        unit_price=quote.unit_price,
        chargeable_total=quote.chargeable_total,
        descriptor=quote.descriptor,
        currency=quote.currency,
    )


@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    actor: Actor = Depends(get_current_actor),
):
    """Book a slot at the current price"""
    reservation = await service.create_reservation(
        listing_id=request.listing_id,
        guest_id=actor.actor_id,
        start_date=request.start_date,
        time=request.time,
        guest_count=request.guest_count,
        referral_id=request.referral_id,
    )
    return _reservation_to_response(_found(reservation, "Listing"))


@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: str,
    service: ReservationService = Depends(get_reservation_service),
    actor: Actor = Depends(get_current_actor),
):
    """Get reservation by ID"""
    reservation = _found(await service.get_reservation(reservation_id), "Reservation")
    if not actor.is_moderator and actor.actor_id not in (reservation.guest_id, reservation.host_id):
        raise HTTPException(status_code=403, detail="Not allowed to view this reservation")
    return _reservation_to_response(reservation)


# ============================================================================
# CANCELLATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations/{reservation_id}/cancel", response_model=CancellationResultResponse, tags=["Cancellation"])
async def cancel_reservation(
    reservation_id: str,
    request: CancelReservationRequest,
    coordinator: ReservationCancellationCoordinator = Depends(get_cancellation_coordinator),
    actor: Actor = Depends(require_moderator),
):
    """Cancel and compensate all ledgers; repeating the call is a no-op"""
    result = await coordinator.cancel(reservation_id, actor, request.note, _attachments(request.attachments))
    return _cancellation_to_response(_found(result, "Reservation"))


@app.post("/api/reservations/{reservation_id}/cancel/retry", response_model=CancellationResultResponse, tags=["Cancellation"])
async def retry_cancellation(
    reservation_id: str,
    coordinator: ReservationCancellationCoordinator = Depends(get_cancellation_coordinator),
    actor: Actor = Depends(require_moderator),
):
    """Re-run ledger steps that failed"""
    return _cancellation_to_response(_found(await coordinator.retry(reservation_id, actor), "Reservation"))


@app.post("/api/reservations/{reservation_id}/cancellation-request", response_model=ReservationResponse, tags=["Cancellation"])
async def request_cancellation(
    reservation_id: str,
    request: CancellationRequestRequest,
    service: ReservationService = Depends(get_reservation_service),
    actor: Actor = Depends(get_current_actor),
):
    """Guest asks a moderator to cancel"""
    reservation = await service.request_cancellation(reservation_id, actor, request.reason)
    return _reservation_to_response(_found(reservation, "Reservation"))


# ============================================================================
# ANALYTICS ENDPOINTS
# ============================================================================

@app.get("/api/analytics/platform", response_model=LedgerResponse, tags=["Analytics"])
async def get_platform_analytics(actor: Actor = Depends(require_moderator)):
    return _ledger_to_response(await platform_repo.get(PLATFORM_ACCOUNT_ID), PLATFORM_ACCOUNT_ID)


@app.get("/api/analytics/hosts/{host_id}", response_model=LedgerResponse, tags=["Analytics"])
async def get_host_earnings(host_id: str, actor: Actor = Depends(get_current_actor)):
    if not actor.is_moderator and actor.actor_id != host_id:
        raise HTTPException(status_code=403, detail="Not allowed to view these earnings")
    return _ledger_to_response(await host_earnings_repo.get(host_id), host_id)


@app.get("/api/analytics/promoters/{referral_id}", response_model=LedgerResponse, tags=["Analytics"])
async def get_promoter_analytics(referral_id: str, actor: Actor = Depends(require_moderator)):
    return _ledger_to_response(await promoter_repo.get(referral_id), referral_id)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _found(value, what: str):
    if value is None:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    return value


def _attachments(items: List[AttachmentSchema]) -> List[ModerationAttachment]:
    return [ModerationAttachment(name=a.name, url=a.url) for a in items]


def _host_to_response(host: Host) -> HostResponse:
    return HostResponse(
        host_id=host.host_id,
        name=host.name,
        is_suspended=host.is_suspended,
        suspended_at=host.suspended_at,
        partner_commission=host.partner_commission,
    )


def _content_from_request(request: ListingContentRequest) -> ListingContent:
    """Convert the request DTO, normalizing pricing and availability payloads"""
    return ListingContent(
        title=request.title.strip(),
        description=request.description,
        categories=unique_strings(request.categories),
        location=request.location,
        image_srcs=unique_strings(request.image_srcs),
        pricing=PricingConfiguration.from_payload(request.pricing) if request.pricing is not None else None,
        availability_rules=AvailabilityRules.from_payload(request.availability_rules),
        hours_in_advance=request.hours_in_advance,
    )


def _content_to_response(content: Optional[ListingContent]) -> Optional[ListingContentResponse]:
    if content is None:
        return None
    return ListingContentResponse(
        title=content.title,
        description=content.description,
        categories=content.categories,
        location=content.location,
        image_srcs=content.image_srcs,
        pricing=content.pricing.to_payload() if content.pricing else None,
        availability_rules=content.availability_rules.to_payload() if content.availability_rules else None,
        hours_in_advance=content.hours_in_advance,
    )


def _listing_to_response(listing) -> ListingResponse:
    """Convert Listing entity to ListingResponse"""
    return ListingResponse(
        listing_id=listing.listing_id,
        host_id=listing.host_id,
        status=listing.status.value,
        content=_content_to_response(listing.content),
        staged_content=_content_to_response(listing.staged_content),
        punti=listing.punti,
        moderation_note=listing.moderation_note,
        moderation_attachments=[
            AttachmentSchema(name=a.name, url=a.url) for a in listing.moderation_attachments
        ],
        created_at=listing.created_at,
        modified_at=listing.modified_at,
        version=listing.version,
    )


def _metrics_to_response(metrics) -> PartnerMetricsResponse:
    return PartnerMetricsResponse(
        punti=metrics.punti,
        punti_share=metrics.punti_share,
        punti_label=metrics.punti_label.value,
        partner_commission=metrics.partner_commission,
    )


def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        listing_id=reservation.listing_id,
        host_id=reservation.host_id,
        referral_id=reservation.referral_id,
        guest_id=reservation.guest_id,
        guest_count=reservation.guest_count,
        start_date=reservation.start_date,
        time=reservation.time,
        unit_price=reservation.unit_price,
        total_price=reservation.total_price,
        price_descriptor=reservation.price_descriptor,
        currency=reservation.currency,
        commission_rate=reservation.commission_rate,
        platform_fee=reservation.platform_fee,
        booked_at=reservation.booked_at,
        status=reservation.status.value,
        cancellation_note=reservation.cancellation.note if reservation.cancellation else None,
        cancellation_requested=reservation.cancellation_request is not None,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        version=reservation.version,
    )


def _cancellation_to_response(result) -> CancellationResultResponse:
    return CancellationResultResponse(
        reservation_id=result.reservation_id,
        outcome=result.outcome.value,
        steps=[
            StepOutcomeResponse(
                step=outcome.step.value,
                status=outcome.status.value,
                error=outcome.error,
                attempted_at=outcome.attempted_at,
            )
            for outcome in result.steps.values()
        ],
        failed_steps=[step.value for step in result.failed_steps],
    )


def _ledger_to_response(account, account_id: str) -> LedgerResponse:
    """Convert a ledger account; unknown accounts read as empty"""
    if account is None:
        return LedgerResponse(account_id=account_id, total_bookings=0, total_revenue=0, total_fees=0)

    def buckets(series):
        return {
            key: LedgerBucketResponse(bookings=b.bookings, revenue=b.revenue, fees=b.fees)
            for key, b in sorted(series.items())
        }

    return LedgerResponse(
        account_id=account.account_id,
        total_bookings=account.total_bookings,
        total_revenue=account.total_revenue,
        total_fees=account.total_fees,
        daily=buckets(account.daily),
        monthly=buckets(account.monthly),
        yearly=buckets(account.yearly),
    )


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        username=user.username,
        role=user.role.value,
        email=user.email,
        full_name=user.full_name,
        disabled=user.disabled,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
