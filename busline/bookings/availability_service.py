import logging
from typing import Optional, Set, List
from datetime import date, datetime, timedelta
from sqlalchemy.orm import Session

from busline.config import settings
from busline.models import BookedSeat
from busline.exceptions import InvalidTravelDate
from busline.routes.schemas import AssembledSchedule, RouteStopView
from busline.routes.service import RouteModel

logger = logging.getLogger(__name__)

def segments_overlap(origin_a: int, destination_a: int, origin_b: int, destination_b: int) -> bool:
    """Half-open interval test; boarding where someone alights is not an overlap"""
    return max(origin_a, origin_b) < min(destination_a, destination_b)

class SeatAvailabilityService:
    """Finds seats held by overlapping segments on one run of a schedule"""

    def __init__(self, db: Session):
        self.db = db
        self.route_model = RouteModel(db)

    def resolve_travel_date(
        self,
        schedule: AssembledSchedule,
        origin_stop: RouteStopView,
        travel_date: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> date:
        """Pick the run for a request; explicit dates must not have departed yet"""
        now = now or datetime.now()
        if travel_date is None:
            return schedule.next_travel_date(origin_stop, now)

        if schedule.departure_at(origin_stop, travel_date) <= now:
            raise InvalidTravelDate(
                f"The {travel_date.isoformat()} run has already departed from {origin_stop.name}."
            )
        if travel_date > now.date() + timedelta(days=settings.MAX_ADVANCE_BOOKING_DAYS):
            raise InvalidTravelDate(
                f"Bookings open at most {settings.MAX_ADVANCE_BOOKING_DAYS} days in advance."
            )
        return travel_date

    def unavailable_seats(
        self,
        schedule_id: str,
        user_origin: str,
        user_destination: str,
        travel_date: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> Set[str]:
        schedule = self.route_model.require(schedule_id)
        origin_stop, destination_stop = schedule.resolve_segment(user_origin, user_destination)
        run_date = self.resolve_travel_date(schedule, origin_stop, travel_date, now)
        return self.unavailable_for_segment(schedule, origin_stop.order, destination_stop.order, run_date)

    def unavailable_for_segment(
        self,
        schedule: AssembledSchedule,
        origin_order: int,
        destination_order: int,
        travel_date: date
    ) -> Set[str]:
        """Seat IDs whose live occupancies overlap [origin_order, destination_order)"""
        unavailable = set()
        for occupancy in self.live_occupancies(schedule.id, travel_date):
            occupied_origin = schedule.index_of(occupancy.origin)
            occupied_destination = schedule.index_of(occupancy.destination)
            if occupied_origin is None or occupied_destination is None:
                # Stop renamed or removed since the booking was made
                logger.debug(
                    "Skipping occupancy %s on schedule %s: '%s' -> '%s' no longer resolves",
                    occupancy.id, schedule.id, occupancy.origin, occupancy.destination
                )
                continue

            if segments_overlap(origin_order, destination_order, occupied_origin, occupied_destination):
                unavailable.add(occupancy.seat_id)
        return unavailable

    def live_occupancies(self, schedule_id: str, travel_date: date) -> List[BookedSeat]:
        return self.db.query(BookedSeat).filter(
            BookedSeat.schedule_id == schedule_id,
            BookedSeat.travel_date == travel_date
        ).all()
