from typing import Optional
from datetime import date, datetime, timedelta
from sqlalchemy.orm import Session

from busline.exceptions import ScheduleNotFound
from busline.routes.schemas import AssembledSchedule, RouteStopView
from busline.routes.service import RouteModel
from busline.schedules.schemas import BusLocation, TrackedStop

class TrackingService:
    """Timetable-driven position of a bus.

    There is no GPS feed: the position is derived from the wall clock and the
    stop times of the run that is on the road (or the next one to leave).
    """

    def __init__(self, db: Session):
        self.db = db
        self.route_model = RouteModel(db)

    def locate(self, schedule_id: str, now: Optional[datetime] = None) -> BusLocation:
        now = now or datetime.now()
        schedule = self.route_model.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFound("Tracking information not available for this bus.")

        run_date = self._current_run(schedule, now)
        current_stop_index = -1
        is_at_stop = False

        for index, stop in enumerate(schedule.stops):
            arrives = self._arrival_at(stop, run_date)
            departs = self._departure_at(stop, run_date)

            if arrives <= now <= departs:
                current_stop_index = index
                is_at_stop = True
                break
            if now > departs:
                current_stop_index = index
            else:
                break

        return BusLocation(
            bus_id=schedule.id,
            last_updated=now,
            current_stop_index=current_stop_index,
            is_at_stop=is_at_stop,
            route_stops=[
                TrackedStop(name=stop.name, arrival=stop.arrival, departure=stop.departure)
                for stop in schedule.stops
            ]
        )

    def _current_run(self, schedule: AssembledSchedule, now: datetime) -> date:
        """The run on the road at `now`; otherwise the one starting today"""
        first, last = schedule.stops[0], schedule.stops[-1]
        for days_back in range(last.departure_day_offset + 1):
            run_date = now.date() - timedelta(days=days_back)
            if self._departure_at(first, run_date) <= now <= self._departure_at(last, run_date):
                return run_date
        return now.date()

    @staticmethod
    def _departure_at(stop: RouteStopView, run_date: date) -> datetime:
        return datetime.combine(run_date + timedelta(days=stop.departure_day_offset), stop.departure)

    @staticmethod
    def _arrival_at(stop: RouteStopView, run_date: date) -> datetime:
        if stop.arrival is None:
            return TrackingService._departure_at(stop, run_date)
        return datetime.combine(run_date + timedelta(days=stop.arrival_day_offset), stop.arrival)
