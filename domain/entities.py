"""Domain Entities - Aggregates"""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field

from domain.enums import ListingAction, ListingStatus, ReservationStatus
from domain.exceptions import AlreadyCancelled, ListingIncomplete, StateViolation
from domain.value_objects import (
    CancellationRecord, CancellationRequest, ListingContent, ModerationAttachment,
    StepOutcome, TransitionRecord,
)


def generate_id() -> str:
    return uuid4().hex


# action -> (allowed source states, target state)
LISTING_TRANSITIONS: Dict[ListingAction, Tuple[FrozenSet[ListingStatus], ListingStatus]] = {
    ListingAction.SUBMIT: (frozenset({ListingStatus.DRAFT}), ListingStatus.PENDING),
    ListingAction.RESUBMIT: (frozenset({ListingStatus.REJECTED}), ListingStatus.PENDING),
    ListingAction.APPROVE: (
        frozenset({ListingStatus.PENDING, ListingStatus.AWAITING_REAPPROVAL}),
        ListingStatus.ACTIVE,
    ),
    ListingAction.REJECT: (
        frozenset({ListingStatus.PENDING, ListingStatus.AWAITING_REAPPROVAL}),
        ListingStatus.REJECTED,
    ),
    ListingAction.STAGE_REVISION: (frozenset({ListingStatus.ACTIVE}), ListingStatus.REVISION),
    ListingAction.APPROVE_REVISION: (frozenset({ListingStatus.REVISION}), ListingStatus.ACTIVE),
    ListingAction.REJECT_REVISION: (frozenset({ListingStatus.REVISION}), ListingStatus.ACTIVE),
    ListingAction.DEACTIVATE: (frozenset({ListingStatus.ACTIVE}), ListingStatus.INACTIVE),
    ListingAction.REACTIVATE: (frozenset({ListingStatus.INACTIVE}), ListingStatus.AWAITING_REAPPROVAL),
    ListingAction.MODERATOR_DEACTIVATE: (
        frozenset(set(ListingStatus) - {ListingStatus.INACTIVE}),
        ListingStatus.INACTIVE,
    ),
}

# Statuses whose live content serves quotes
BOOKABLE_STATUSES = frozenset({ListingStatus.ACTIVE, ListingStatus.REVISION})


class Host(BaseModel):
    """Host account; suspension is orthogonal to listing status"""
    host_id: str = Field(default_factory=generate_id)
    name: Optional[str] = None
    is_suspended: bool = False
    suspended_at: Optional[datetime] = None
    # Negotiated rate; None means commission follows punti
    partner_commission: Optional[float] = None

    class Config:
        from_attributes = True

    def suspend(self) -> None:
        if not self.is_suspended:
            self.is_suspended = True
            self.suspended_at = datetime.utcnow()

    def unsuspend(self) -> None:
        self.is_suspended = False
        self.suspended_at = None


class Listing(BaseModel):
    """Listing Aggregate Root Entity"""

    # Identity
    listing_id: str = Field(default_factory=generate_id)
    host_id: str

    # Lifecycle
    status: ListingStatus = ListingStatus.DRAFT
    content: ListingContent = Field(default_factory=ListingContent)
    staged_content: Optional[ListingContent] = None

    # Loyalty
    punti: int = Field(default=0, ge=0)

    # Moderation
    moderation_note: Optional[str] = None
    moderation_attachments: List[ModerationAttachment] = []
    history: List[TransitionRecord] = []

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    modified_at: datetime = Field(default_factory=datetime.utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create_draft(host_id: str, content: ListingContent) -> "Listing":
        """Create a new listing in draft"""
        return Listing(host_id=host_id, content=content, status=ListingStatus.DRAFT)

    # ==================== STATE TRANSITION METHODS ====================
    def submit(self, actor_id: str) -> None:
        """Host submits a draft for moderation"""
        self._ensure_allowed(ListingAction.SUBMIT)
        self._ensure_complete(self.content)
        self._transition(ListingAction.SUBMIT, actor_id)

    def resubmit(self, actor_id: str, content: Optional[ListingContent] = None) -> None:
        """Host re-enters moderation after a rejection"""
        self._ensure_allowed(ListingAction.RESUBMIT)
        candidate = content or self.content
        self._ensure_complete(candidate)
        self.content = candidate
        self._transition(ListingAction.RESUBMIT, actor_id)

    def approve(self, actor_id: str) -> None:
        self._transition(ListingAction.APPROVE, actor_id)
        self.moderation_note = None
        self.moderation_attachments = []

    def reject(
        self,
        actor_id: str,
        note: Optional[str] = None,
        attachments: Optional[List[ModerationAttachment]] = None,
    ) -> None:
        self._transition(ListingAction.REJECT, actor_id, note)
        self.moderation_note = (note or "").strip() or None
        self.moderation_attachments = list(attachments or [])

    def stage_revision(self, actor_id: str, content: ListingContent) -> None:
        """Stage an edit; the live content stays bookable until reviewed"""
        self._ensure_allowed(ListingAction.STAGE_REVISION)
        self._ensure_complete(content)
        self.staged_content = content
        self._transition(ListingAction.STAGE_REVISION, actor_id)

    def approve_revision(self, actor_id: str) -> None:
        self._transition(ListingAction.APPROVE_REVISION, actor_id)
        if self.staged_content is not None:
            self.content = self.staged_content
        self.staged_content = None

    def reject_revision(self, actor_id: str, note: Optional[str] = None) -> None:
        self._transition(ListingAction.REJECT_REVISION, actor_id, note)
        self.staged_content = None
        self.moderation_note = (note or "").strip() or None

    def deactivate(self, actor_id: str, by_moderator: bool = False) -> bool:
        """Deactivate; returns False when a moderator hits an already inactive listing

        Hosts may only take an active listing offline. A moderator can pull a
        listing from any status; a staged revision is discarded with it.
        """
        if not by_moderator:
            self._transition(ListingAction.DEACTIVATE, actor_id)
            return True
        if self.status == ListingStatus.INACTIVE:
            return False
        self._transition(ListingAction.MODERATOR_DEACTIVATE, actor_id)
        self.staged_content = None
        return True

    def reactivate(self, actor_id: str) -> None:
        """Dormant listings need a fresh moderation pass"""
        self._transition(ListingAction.REACTIVATE, actor_id)

    # ==================== QUERY METHODS ====================
    def is_bookable(self, host: Optional[Host] = None) -> bool:
        if host is not None and host.is_suspended:
            return False
        return self.status in BOOKABLE_STATUSES

    def can(self, action: ListingAction) -> bool:
        allowed, _ = LISTING_TRANSITIONS[action]
        return self.status in allowed

    # ==================== PRIVATE METHODS ====================
    def _ensure_allowed(self, action: ListingAction) -> None:
        if not self.can(action):
            raise StateViolation(current=self.status.value, requested=action.value)

    @staticmethod
    def _ensure_complete(content: ListingContent) -> None:
        missing = content.missing_fields()
        if missing:
            raise ListingIncomplete(missing)

    def _transition(self, action: ListingAction, actor_id: str, note: Optional[str] = None) -> None:
        self._ensure_allowed(action)
        _, target = LISTING_TRANSITIONS[action]
        self.history.append(
            TransitionRecord(
                actor_id=actor_id,
                action=action,
                from_status=self.status,
                to_status=target,
                note=note,
            )
        )
        self.status = target
        self.modified_at = datetime.utcnow()
        self.version += 1


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity; price fields are frozen at creation"""

    # Identity
    reservation_id: str = Field(default_factory=generate_id)

    # References to other contexts
    listing_id: str
    host_id: Optional[str] = None
    referral_id: Optional[str] = None
    guest_id: str

    # Slot
    guest_count: int = Field(ge=1)
    start_date: date
    time: str

    # Frozen pricing
    unit_price: Decimal = Field(ge=0)
    total_price: Decimal = Field(ge=0)
    price_descriptor: str = ""
    currency: str = "EUR"
    commission_rate: float = 0
    platform_fee: Decimal = Field(default=Decimal("0"), ge=0)
    booked_at: date = Field(default_factory=date.today)

    # Status
    status: ReservationStatus = ReservationStatus.CONFIRMED
    cancellation: Optional[CancellationRecord] = None
    cancellation_request: Optional[CancellationRequest] = None

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    modified_at: datetime = Field(default_factory=datetime.utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    @property
    def is_cancelled(self) -> bool:
        return self.status == ReservationStatus.CANCELLED

    def cancel(
        self,
        actor_id: str,
        note: str,
        attachments: Optional[List[ModerationAttachment]] = None,
    ) -> CancellationRecord:
        """Mark cancelled; price and references are retained for audit"""
        if self.is_cancelled:
            raise AlreadyCancelled(self.reservation_id)

        self.cancellation = CancellationRecord(
            actor_id=actor_id,
            note=note,
            attachments=list(attachments or []),
        )
        self.status = ReservationStatus.CANCELLED
        self.modified_at = datetime.utcnow()
        self.version += 1
        return self.cancellation

    def request_cancellation(self, guest_id: str, reason: str) -> CancellationRequest:
        if self.is_cancelled:
            raise AlreadyCancelled(self.reservation_id)
        if not reason.strip():
            raise ValueError("A cancellation reason is required")

        self.cancellation_request = CancellationRequest(requested_by=guest_id, reason=reason.strip())
        self.modified_at = datetime.utcnow()
        self.version += 1
        return self.cancellation_request

    def record_step(self, outcome: StepOutcome) -> None:
        if self.cancellation is None:
            raise ValueError("Reservation has no cancellation in progress")
        self.cancellation.steps[outcome.step] = outcome
        self.modified_at = datetime.utcnow()
