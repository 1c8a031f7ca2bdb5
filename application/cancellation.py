"""Reservation cancellation cascade.

Cancelling a reservation reverses it and then compensates three independent
ledgers (platform, host, referral). The reversal is committed first; each
ledger step is recorded on the reservation with its own outcome so a failed
step can be retried later without re-running the ones that succeeded.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from application.notifications import CancellationNotifier
from domain.entities import Reservation
from domain.enums import CancellationOutcome, CancellationStep, ReservationStatus, StepStatus
from domain.exceptions import ActionNotPermitted, AggregateAdjustmentFailure
from domain.ledgers import PLATFORM_ACCOUNT_ID, cancelled_entry_key
from domain.repositories import (
    HostEarningsRepository, PlatformAnalyticsRepository, PromoterAnalyticsRepository,
    ReservationRepository,
)
from domain.value_objects import Actor, CancellationResult, ModerationAttachment, StepOutcome

logger = logging.getLogger(__name__)

LEDGER_STEPS = (
    CancellationStep.PLATFORM_ADJUSTED,
    CancellationStep.HOST_ADJUSTED,
    CancellationStep.REFERRAL_ADJUSTED,
)


class ReservationCancellationCoordinator:
    """Moderator cancellation with per-step outcomes and retry"""

    def __init__(
        self,
        reservation_repo: ReservationRepository,
        platform_repo: PlatformAnalyticsRepository,
        host_earnings_repo: HostEarningsRepository,
        promoter_repo: PromoterAnalyticsRepository,
        notifier: Optional[CancellationNotifier] = None,
    ):
        self.reservation_repo = reservation_repo
        self.platform_repo = platform_repo
        self.host_earnings_repo = host_earnings_repo
        self.promoter_repo = promoter_repo
        self.notifier = notifier

    async def cancel(
        self,
        reservation_id: str,
        actor: Actor,
        note: str,
        attachments: Optional[List[ModerationAttachment]] = None,
    ) -> Optional[CancellationResult]:
        """Cancel a reservation; a second call is a no-op reporting ALREADY_CANCELLED"""
        if not actor.is_moderator:
            raise ActionNotPermitted("Only moderators can cancel reservations")

        reservation = await self.reservation_repo.find_by_id(reservation_id)
        if not reservation:
            return None
        if reservation.is_cancelled:
            logger.info("Reservation %s already cancelled, nothing to do", reservation_id)
            return self._already_cancelled(reservation)
        if not (note or "").strip():
            raise ValueError("A cancellation note is required")

        reservation.cancel(actor.actor_id, note.strip(), attachments)

        reservation.record_step(
            StepOutcome(step=CancellationStep.RESERVATION_REVERSED, status=StepStatus.SUCCEEDED)
        )
        if not await self.reservation_repo.update_if_status(reservation, ReservationStatus.CONFIRMED):
            # Another caller won the race and owns the cascade
            current = await self.reservation_repo.find_by_id(reservation_id)
            logger.info("Reservation %s cancelled concurrently", reservation_id)
            return self._already_cancelled(current)

        logger.info("Reservation %s reversed by %s", reservation_id, actor.actor_id)
        result = await self._run_steps(reservation, LEDGER_STEPS)

        if self.notifier:
            await self.notifier.reservation_cancelled(reservation, result)
        return result

    async def retry(self, reservation_id: str, actor: Actor) -> Optional[CancellationResult]:
        """Re-run only the ledger steps that failed"""
        if not actor.is_moderator:
            raise ActionNotPermitted("Only moderators can retry cancellations")

        reservation = await self.reservation_repo.find_by_id(reservation_id)
        if not reservation:
            return None
        if not reservation.is_cancelled or reservation.cancellation is None:
            raise ValueError("Reservation is not cancelled")

        failed = reservation.cancellation.failed_steps()
        if not failed:
            return CancellationResult(
                reservation_id=reservation_id,
                outcome=CancellationOutcome.COMPLETE,
                steps=dict(reservation.cancellation.steps),
            )

        logger.info("Retrying %s for reservation %s", [s.value for s in failed], reservation_id)
        return await self._run_steps(reservation, failed)

    # ==================== PRIVATE METHODS ====================
    async def _run_steps(self, reservation: Reservation, steps) -> CancellationResult:
        handlers = self._handlers(reservation)
        outcomes = await asyncio.gather(
            *(self._run_step(reservation, step, handlers[step]) for step in steps)
        )
        for outcome in outcomes:
            reservation.record_step(outcome)
        # Merge into the stored record rather than overwrite it with our copy
        stored = await self.reservation_repo.record_steps(reservation.reservation_id, list(outcomes))

        all_steps = dict((stored or reservation).cancellation.steps)
        failed = [step for step, outcome in all_steps.items() if outcome.needs_retry]
        if failed:
            logger.warning(
                "Cancellation of %s partially applied; failed steps: %s",
                reservation.reservation_id, [s.value for s in failed],
            )
        return CancellationResult(
            reservation_id=reservation.reservation_id,
            outcome=CancellationOutcome.PARTIAL if failed else CancellationOutcome.COMPLETE,
            steps=all_steps,
        )

    async def _run_step(
        self,
        reservation: Reservation,
        step: CancellationStep,
        handler: Optional[Callable[[], Awaitable[None]]],
    ) -> StepOutcome:
        if handler is None:
            return StepOutcome(step=step, status=StepStatus.SKIPPED)
        try:
            await handler()
        except Exception as e:
            failure = AggregateAdjustmentFailure(step.value, str(e))
            logger.error(
                "Reservation %s: %s", reservation.reservation_id, failure.message, exc_info=True
            )
            return StepOutcome(step=step, status=StepStatus.FAILED, error=failure.message)
        return StepOutcome(step=step, status=StepStatus.SUCCEEDED)

    def _handlers(self, reservation: Reservation) -> Dict[CancellationStep, Optional[Callable[[], Awaitable[None]]]]:
        entry_key = cancelled_entry_key(reservation.reservation_id)
        on_date = reservation.booked_at
        total = reservation.total_price

        async def platform():
            await self.platform_repo.apply_delta(
                PLATFORM_ACCOUNT_ID, entry_key, on_date, -1, -total, -reservation.platform_fee
            )

        async def host():
            await self.host_earnings_repo.apply_delta(reservation.host_id, entry_key, on_date, -1, -total)

        async def referral():
            await self.promoter_repo.apply_delta(reservation.referral_id, entry_key, on_date, -1, -total)

        return {
            CancellationStep.PLATFORM_ADJUSTED: platform,
            CancellationStep.HOST_ADJUSTED: host if reservation.host_id and total else None,
            CancellationStep.REFERRAL_ADJUSTED: referral if reservation.referral_id else None,
        }

    @staticmethod
    def _already_cancelled(reservation: Reservation) -> CancellationResult:
        steps = dict(reservation.cancellation.steps) if reservation.cancellation else {}
        return CancellationResult(
            reservation_id=reservation.reservation_id,
            outcome=CancellationOutcome.ALREADY_CANCELLED,
            steps=steps,
        )
