import logging
from typing import List, Optional
from decimal import Decimal
from sqlalchemy.orm import Session

from busline.models import Schedule, RouteStop
from busline.exceptions import ScheduleNotFound
from busline.admin.schemas import SystemConfig
from busline.auth.schemas import CallerIdentity, UserRole
from busline.routes.schemas import (
    AssembledSchedule, RouteStopView, ScheduleSummary, ScheduleDetail,
    RouteSearchResult, SeatLayout, normalize_stop_name
)

logger = logging.getLogger(__name__)

def _day_offsets(stops: List[RouteStop]) -> List[tuple]:
    """Count midnight crossings along the timetable.

    Returns (arrival_offset, departure_offset) per stop, relative to the
    first stop's departure.
    """
    offsets = []
    offset = 0
    previous = None
    for stop in stops:
        arrival_offset = offset
        if stop.arrival_time is not None and previous is not None:
            if stop.arrival_time < previous:
                offset += 1
            arrival_offset = offset
            previous = stop.arrival_time
        if previous is not None and stop.departure_time < previous:
            offset += 1
        previous = stop.departure_time
        offsets.append((arrival_offset, offset))
    return offsets

class RouteModel:
    """Assembles schedules into validated, ordered stop sequences.

    Every call reads the stop rows again; stops can be replaced by operators
    between two requests.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, schedule_id: str, lock: bool = False) -> Optional[AssembledSchedule]:
        query = self.db.query(Schedule).filter(Schedule.id == schedule_id)
        if lock:
            query = query.with_for_update()
        schedule = query.first()
        if not schedule:
            return None

        stops = self.db.query(RouteStop).filter(
            RouteStop.schedule_id == schedule_id
        ).order_by(RouteStop.stop_order).all()
        return self.assemble(schedule, stops)

    def require(self, schedule_id: str, lock: bool = False) -> AssembledSchedule:
        schedule = self.get(schedule_id, lock=lock)
        if schedule is None:
            raise ScheduleNotFound(f"Schedule '{schedule_id}' not found.")
        return schedule

    def list_all(self) -> List[AssembledSchedule]:
        schedules = self.db.query(Schedule).order_by(Schedule.id).all()
        stops = self.db.query(RouteStop).order_by(RouteStop.schedule_id, RouteStop.stop_order).all()

        stops_by_schedule = {}
        for stop in stops:
            stops_by_schedule.setdefault(stop.schedule_id, []).append(stop)

        assembled = []
        for schedule in schedules:
            result = self.assemble(schedule, stops_by_schedule.get(schedule.id, []))
            if result:
                assembled.append(result)
        return assembled

    @staticmethod
    def assemble(schedule: Schedule, stops: List[RouteStop]) -> Optional[AssembledSchedule]:
        """Build the projection; a schedule without any named stop does not exist"""
        valid_stops = sorted(
            (s for s in stops if isinstance(s.stop_name, str) and s.stop_name.strip()),
            key=lambda s: s.stop_order
        )
        if not valid_stops:
            logger.debug("Schedule %s has no valid stops, hiding it", schedule.id)
            return None

        offsets = _day_offsets(valid_stops)
        stop_views = [
            RouteStopView(
                name=stop.stop_name,
                normalized_name=normalize_stop_name(stop.stop_name),
                order=stop.stop_order,
                arrival=stop.arrival_time if index > 0 else None,
                departure=stop.departure_time,
                fare=Decimal(stop.fare if stop.fare is not None else 0),
                arrival_day_offset=offsets[index][0],
                departure_day_offset=offsets[index][1]
            )
            for index, stop in enumerate(valid_stops)
        ]

        first, last = stop_views[0], stop_views[-1]
        return AssembledSchedule(
            id=schedule.id,
            bus_name=schedule.bus_name,
            seat_layout=SeatLayout(schedule.seat_layout),
            booking_enabled=bool(schedule.booking_enabled),
            origin=first.name,
            destination=last.name,
            departure_time=first.departure,
            arrival_time=last.arrival,
            fare=last.fare,
            via=[stop.name for stop in stop_views[1:-1]],
            stops=stop_views
        )

    # Listings
    @staticmethod
    def summarize(schedule: AssembledSchedule, config: SystemConfig) -> ScheduleSummary:
        """Apply the global toggles to a schedule's own booking flag"""
        booking_enabled = config.is_booking_system_online and schedule.booking_enabled
        return ScheduleSummary(
            id=schedule.id,
            bus_name=schedule.bus_name,
            seat_layout=schedule.seat_layout,
            origin=schedule.origin,
            destination=schedule.destination,
            departure_time=schedule.departure_time,
            arrival_time=schedule.arrival_time,
            fare=schedule.fare,
            via=schedule.via,
            booking_enabled=booking_enabled,
            is_free_booking_enabled=booking_enabled and config.is_free_booking_enabled,
            is_discount_enabled=(
                config.is_discount_system_enabled and schedule.origin in config.discount_districts
            )
        )

    def detail(self, schedule_id: str, config: SystemConfig) -> ScheduleDetail:
        schedule = self.require(schedule_id)
        summary = self.summarize(schedule, config)
        return ScheduleDetail(**summary.model_dump(), stops=schedule.stops)

    def visible_to(self, caller: Optional[CallerIdentity], config: SystemConfig) -> List[ScheduleSummary]:
        """All schedules; sub-admins only see those starting in their districts"""
        schedules = self.list_all()
        if caller and caller.role == UserRole.SUB_ADMIN:
            schedules = [s for s in schedules if s.origin in caller.assigned_districts]
        return [self.summarize(s, config) for s in schedules]

    def search(self, origin: str, destination: str, config: SystemConfig) -> List[RouteSearchResult]:
        """Schedules that pass through `origin` before `destination`"""
        results = []
        for schedule in self.list_all():
            origin_stop = schedule.stop_named(origin)
            destination_stop = schedule.stop_named(destination)
            if not origin_stop or not destination_stop or origin_stop.order >= destination_stop.order:
                continue

            summary = self.summarize(schedule, config)
            segment_via = [
                s.name for s in schedule.stops
                if origin_stop.order < s.order < destination_stop.order
            ]
            results.append(RouteSearchResult(
                **summary.model_dump(exclude={"departure_time", "arrival_time", "fare", "via"}),
                departure_time=origin_stop.departure,
                arrival_time=destination_stop.arrival,
                fare=max(Decimal("0"), destination_stop.fare - origin_stop.fare),
                via=segment_via,
                user_origin=origin.strip(),
                user_destination=destination.strip(),
                full_route=f"{schedule.origin} to {schedule.destination}"
            ))
        return results

    def by_district(self, district: str, config: SystemConfig) -> List[ScheduleSummary]:
        """Schedules whose first stop is the given district"""
        wanted = normalize_stop_name(district)
        return [
            self.summarize(schedule, config)
            for schedule in self.list_all()
            if schedule.stops[0].normalized_name == wanted
        ]

    def origin_districts(self) -> List[str]:
        """Distinct first-stop names, which double as the districts operators are assigned to"""
        return sorted({schedule.origin.strip() for schedule in self.list_all()})
