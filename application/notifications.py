"""Outbound notifications for reservation events"""
import logging
from abc import ABC, abstractmethod

from domain.entities import Reservation
from domain.value_objects import CancellationRequest, CancellationResult

logger = logging.getLogger(__name__)


class CancellationNotifier(ABC):
    """Port for telling humans about cancellations"""

    @abstractmethod
    async def cancellation_requested(self, reservation: Reservation, request: CancellationRequest) -> None:
        """A guest asked for a cancellation"""
        pass

    @abstractmethod
    async def reservation_cancelled(self, reservation: Reservation, result: CancellationResult) -> None:
        """A moderator cancelled a reservation"""
        pass


class LoggingCancellationNotifier(CancellationNotifier):
    """Writes notifications to the application log"""

    def __init__(self):
        self.sent = []

    async def cancellation_requested(self, reservation: Reservation, request: CancellationRequest) -> None:
        logger.info(
            "Cancellation requested for reservation %s by guest %s: %s",
            reservation.reservation_id, request.requested_by, request.reason,
        )
        self.sent.append(("requested", reservation.reservation_id))

    async def reservation_cancelled(self, reservation: Reservation, result: CancellationResult) -> None:
        logger.info(
            "Reservation %s cancelled (%s), guest %s notified",
            reservation.reservation_id, result.outcome.value, reservation.guest_id,
        )
        self.sent.append(("cancelled", reservation.reservation_id))
