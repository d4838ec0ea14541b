from pydantic import BaseModel
from typing import List, Optional, Tuple
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum

from busline.exceptions import InvalidSegment

class SeatLayout(str, Enum):
    """Bus seat layout; determines the generated seat IDs"""
    TWO_BY_TWO = "2x2"
    TWO_BY_THREE = "2x3"
    TWO_BY_ONE = "2x1"

class PassengerCategory(str, Enum):
    """Fare category of a passenger"""
    NORMAL = "NORMAL"
    CHILD = "CHILD"
    SENIOR = "SENIOR"

class DiscountType(str, Enum):
    """Discount classification of a whole booking"""
    NONE = "NONE"
    CHILD = "CHILD"
    SENIOR = "SENIOR"
    MIXED = "MIXED"

def normalize_stop_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()

class RouteStopView(BaseModel):
    """A validated stop of an assembled schedule"""
    name: str
    normalized_name: str
    order: int
    arrival: Optional[time] = None
    departure: time
    fare: Decimal
    arrival_day_offset: int = 0
    departure_day_offset: int = 0

class AssembledSchedule(BaseModel):
    """Read-only projection of a schedule and its ordered stops"""
    id: str
    bus_name: str
    seat_layout: SeatLayout
    booking_enabled: bool
    origin: str
    destination: str
    departure_time: time
    arrival_time: Optional[time] = None
    fare: Decimal
    via: List[str]
    stops: List[RouteStopView]

    def stop_named(self, name: str) -> Optional[RouteStopView]:
        normalized = normalize_stop_name(name)
        for stop in self.stops:
            if stop.normalized_name == normalized:
                return stop
        return None

    def index_of(self, name: str) -> Optional[int]:
        """Stop order for a trimmed, case-insensitive stop name"""
        stop = self.stop_named(name)
        return stop.order if stop else None

    def resolve_segment(self, origin: str, destination: str) -> Tuple[RouteStopView, RouteStopView]:
        origin_stop = self.stop_named(origin)
        destination_stop = self.stop_named(destination)
        if not origin_stop or not destination_stop or origin_stop.order >= destination_stop.order:
            raise InvalidSegment(
                f"Invalid origin or destination for this route: '{origin}' -> '{destination}'."
            )
        return origin_stop, destination_stop

    def departure_at(self, stop: RouteStopView, travel_date: date) -> datetime:
        """Wall-clock departure from `stop` on the run that starts on `travel_date`"""
        return datetime.combine(
            travel_date + timedelta(days=stop.departure_day_offset), stop.departure
        )

    def next_travel_date(self, stop: RouteStopView, now: datetime) -> date:
        """The first run whose departure from `stop` is still ahead of `now`"""
        travel_date = now.date() - timedelta(days=stop.departure_day_offset)
        while self.departure_at(stop, travel_date) <= now:
            travel_date += timedelta(days=1)
        return travel_date

# Response Models
class ScheduleSummary(BaseModel):
    """Schedule as listed to passengers and operators"""
    id: str
    bus_name: str
    seat_layout: SeatLayout
    origin: str
    destination: str
    departure_time: time
    arrival_time: Optional[time] = None
    fare: Decimal
    via: List[str]
    booking_enabled: bool
    is_free_booking_enabled: bool
    is_discount_enabled: bool

class ScheduleDetail(ScheduleSummary):
    stops: List[RouteStopView]

class RouteSearchResult(ScheduleSummary):
    """A schedule serving the requested segment, priced for that segment"""
    user_origin: str
    user_destination: str
    full_route: str

class FareBreakdown(BaseModel):
    category: PassengerCategory
    base_fare: Decimal
    discount_percentage: Decimal
    passenger_discount: Decimal
    total_fare: Decimal

class FareQuoteResponse(BaseModel):
    schedule_id: str
    origin: str
    destination: str
    discount_applied: bool
    fares: List[FareBreakdown]
    currency: str = "INR"

class SeatMapResponse(BaseModel):
    schedule_id: str
    seat_layout: SeatLayout
    rows: List[List[str]]
    unavailable_seats: List[str]
    travel_date: date
