import logging
from typing import List, Optional
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError

from busline.config import settings
from busline.models import Booking
from busline.exceptions import (
    BookingSystemError, FeatureDisabled, BookingNotFound, Unauthorized, AlreadyCancelled,
    WindowClosed, NothingToCancel, InvalidSegment, StorageUnavailable
)
from busline.admin.schemas import SystemConfig
from busline.auth.schemas import CallerIdentity
from busline.bookings.schemas import BookingStatus, PassengerStatus, CancellationResponse
from busline.routes.schemas import AssembledSchedule
from busline.routes.service import RouteModel

logger = logging.getLogger(__name__)

def derive_status(passenger_statuses: List[str]) -> BookingStatus:
    cancelled = sum(1 for s in passenger_statuses if s == PassengerStatus.CANCELLED.value)
    if cancelled == 0:
        return BookingStatus.CONFIRMED
    if cancelled == len(passenger_statuses):
        return BookingStatus.CANCELLED
    return BookingStatus.PARTIALLY_CANCELLED

class CancellationService:
    """Cancels seats of a booking and refunds their stored per-passenger fares"""

    def __init__(self, db: Session, config: SystemConfig, now: Optional[datetime] = None):
        self.db = db
        self.config = config
        self.now = now
        self.route_model = RouteModel(db)

    def departure_for(self, booking: Booking, schedule: AssembledSchedule) -> datetime:
        """Scheduled departure from the booking's origin stop"""
        origin_stop = schedule.stop_named(booking.origin)
        if origin_stop is None:
            raise InvalidSegment("Could not determine the departure time for this booking.")

        if booking.travel_date is not None:
            return schedule.departure_at(origin_stop, booking.travel_date)

        # Bookings without a run date: same calendar day as the booking,
        # or the next day when the bus leaves earlier in the day than the booking was made
        departure = datetime.combine(booking.booking_date.date(), origin_stop.departure)
        if departure < booking.booking_date:
            departure += timedelta(days=1)
        return departure

    def cancellation_deadline(self, booking: Booking, schedule: AssembledSchedule) -> datetime:
        return self.departure_for(booking, schedule) - timedelta(minutes=settings.CANCELLATION_CUTOFF_MINUTES)

    def cancel(self, caller: CallerIdentity, booking_id: str, seat_ids: List[str]) -> CancellationResponse:
        if not self.config.is_cancellation_enabled:
            raise FeatureDisabled("Ticket cancellation is currently disabled.")

        requested = [seat_id.strip().upper() for seat_id in seat_ids]
        now = self.now or datetime.now()

        try:
            booking = self.db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()
            if not booking:
                raise BookingNotFound()
            if booking.user_id != caller.user_id:
                raise Unauthorized("You are not authorized to cancel this booking.")
            if booking.status == BookingStatus.CANCELLED.value:
                raise AlreadyCancelled()

            schedule = self.route_model.require(booking.schedule_id)
            if now >= self.cancellation_deadline(booking, schedule):
                raise WindowClosed()

            refund = Decimal("0")
            cancelled_seats = []
            for seat_id in requested:
                passenger = next(
                    (p for p in booking.passengers
                     if p.seat_id == seat_id and p.status == PassengerStatus.BOOKED.value),
                    None
                )
                if passenger is None:
                    continue
                passenger.status = PassengerStatus.CANCELLED.value
                refund += Decimal(passenger.fare)
                cancelled_seats.append(seat_id)

            if not cancelled_seats:
                raise NothingToCancel()

            # Free the exact segments for resale
            for occupancy in list(booking.occupancies):
                if occupancy.seat_id in cancelled_seats:
                    booking.occupancies.remove(occupancy)

            booking.fare = Decimal(booking.fare) - refund
            new_status = derive_status([p.status for p in booking.passengers])
            booking.status = new_status.value

            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure while cancelling booking %s: %s", booking_id, e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info(
            "Booking %s: cancelled seats %s, refund %s, status %s",
            booking_id, ",".join(cancelled_seats), refund, new_status.value
        )
        return CancellationResponse(
            booking_id=booking_id,
            refund_amount=refund,
            cancelled_seat_ids=cancelled_seats,
            status=new_status,
            remaining_fare=booking.fare,
            message=f"Successfully cancelled {len(cancelled_seats)} seat(s)."
        )
