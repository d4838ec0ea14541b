import logging
import uuid
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError

from busline.models import Schedule, RouteStop, BookedSeat
from busline.exceptions import (
    BookingSystemError, InvalidSchedule, DuplicateSchedule, ScheduleNotFound,
    Unauthorized, StorageUnavailable
)
from busline.auth.schemas import CallerIdentity
from busline.routes.schemas import AssembledSchedule
from busline.routes.service import RouteModel
from busline.schedules.schemas import ParsedSchedule, ParsedStop, ScheduleUpdate

logger = logging.getLogger(__name__)

class ScheduleManagementService:
    """Operator-side creation and replacement of schedules and their stops"""

    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.now = now

    def batch_upload(self, caller: CallerIdentity, schedules: List[ParsedSchedule]) -> List[str]:
        """Create several schedules; the whole upload is rejected on any duplicate ID"""
        if not schedules:
            raise InvalidSchedule("A non-empty array of schedules is required.")

        for schedule in schedules:
            self._validate(schedule)
        self._check_districts(caller, [self._origin_of(s) for s in schedules])

        seen = set()
        for schedule in schedules:
            if schedule.id:
                if schedule.id in seen:
                    raise DuplicateSchedule(f"Schedule ID '{schedule.id}' appears more than once in the upload.")
                seen.add(schedule.id)

        created_ids = []
        try:
            for parsed in schedules:
                schedule_id = parsed.id or str(uuid.uuid4())
                if self.db.query(Schedule).filter(Schedule.id == schedule_id).first():
                    raise DuplicateSchedule(
                        f"A schedule with ID '{schedule_id}' already exists. Please use a unique schedule identifier."
                    )

                schedule = Schedule(
                    id=schedule_id,
                    bus_name=parsed.bus_name.strip(),
                    seat_layout=parsed.seat_layout.value,
                    booking_enabled=parsed.booking_enabled
                )
                schedule.stops = self._build_stops(schedule_id, parsed.stops)
                self.db.add(schedule)
                created_ids.append(schedule_id)

            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateSchedule("A schedule in this upload was created concurrently. Please retry with unique IDs.")
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure during schedule upload: %s", e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info("%d schedule(s) uploaded by %s: %s", len(created_ids), caller.user_id, ", ".join(created_ids))
        return created_ids

    def replace(self, caller: CallerIdentity, schedule_id: str, update: ScheduleUpdate) -> AssembledSchedule:
        """Replace a schedule's details and its whole stop list in one transaction"""
        self._validate(update)

        try:
            schedule = self.db.query(Schedule).filter(Schedule.id == schedule_id).with_for_update().first()
            if not schedule:
                raise ScheduleNotFound()

            current = RouteModel.assemble(schedule, list(schedule.stops))
            districts = [self._origin_of(update)]
            if current is not None:
                districts.append(current.origin)
            self._check_districts(caller, districts)

            if update.seat_layout.value != schedule.seat_layout and self._has_live_occupancies(schedule_id):
                raise InvalidSchedule(
                    "The seat layout cannot be changed while seats are booked on current or future trips."
                )

            schedule.bus_name = update.bus_name.strip()
            schedule.seat_layout = update.seat_layout.value
            schedule.booking_enabled = update.booking_enabled

            schedule.stops.clear()
            self.db.flush()
            schedule.stops.extend(self._build_stops(schedule_id, update.stops))
            self.db.flush()
            self._release_stale_occupancies(schedule)

            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure while replacing schedule %s: %s", schedule_id, e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info("Schedule %s replaced by %s with %d stops", schedule_id, caller.user_id, len(update.stops))
        return RouteModel(self.db).require(schedule_id)

    # Helpers
    @staticmethod
    def _origin_of(schedule: ScheduleUpdate) -> Optional[str]:
        ordered = ScheduleManagementService._ordered_stops(schedule.stops)
        return ordered[0].stop_name.strip() if ordered else None

    @staticmethod
    def _ordered_stops(stops: List[ParsedStop]) -> List[ParsedStop]:
        """Explicit stop orders win; otherwise the upload order is kept"""
        if all(stop.stop_order is not None for stop in stops):
            return sorted(stops, key=lambda s: s.stop_order)
        return list(stops)

    @staticmethod
    def _validate(schedule: ScheduleUpdate):
        if not schedule.bus_name or not schedule.bus_name.strip():
            raise InvalidSchedule("Bus name is required.")
        if not schedule.stops:
            raise InvalidSchedule(f"Schedule '{schedule.bus_name}' must have at least one stop.")

        ordered = ScheduleManagementService._ordered_stops(schedule.stops)
        if not ordered[0].stop_name.strip():
            raise InvalidSchedule("An updated route must have a valid origin stop.")

        explicit_orders = [s.stop_order for s in schedule.stops if s.stop_order is not None]
        if len(explicit_orders) != len(set(explicit_orders)):
            raise InvalidSchedule("Stop orders must be unique within a schedule.")

        # Decreasing cumulative fares are tolerated; segment fares are floored at zero
        for previous, stop in zip(ordered, ordered[1:]):
            if stop.fare_from_origin < previous.fare_from_origin:
                logger.warning(
                    "Schedule '%s': fare decreases from %s (%s) to %s (%s)",
                    schedule.bus_name, previous.stop_name, previous.fare_from_origin,
                    stop.stop_name, stop.fare_from_origin
                )

    @staticmethod
    def _check_districts(caller: CallerIdentity, districts: List[Optional[str]]):
        if caller.is_admin:
            return
        if not caller.assigned_districts:
            raise Unauthorized("You have no districts assigned to you.")
        for district in districts:
            if not caller.can_manage_district(district):
                raise Unauthorized(
                    f"You are not authorized to manage schedules for the district: '{district}'."
                )

    @staticmethod
    def _build_stops(schedule_id: str, stops: List[ParsedStop]) -> List[RouteStop]:
        return [
            RouteStop(
                schedule_id=schedule_id,
                stop_name=stop.stop_name.strip(),
                stop_order=order,
                arrival_time=stop.arrival_time if order > 0 else None,
                departure_time=stop.departure_time,
                fare=stop.fare_from_origin
            )
            for order, stop in enumerate(ScheduleManagementService._ordered_stops(stops))
        ]

    def _release_stale_occupancies(self, schedule: Schedule):
        """Drop the seat key of live occupancies whose segment no longer resolves on the new stops.

        Such occupancies are ignored by availability, so they must not keep
        blocking the seat in the unique constraint either.
        """
        assembled = RouteModel.assemble(schedule, list(schedule.stops))
        today = (self.now or datetime.now()).date()
        occupancies = self.db.query(BookedSeat).filter(
            BookedSeat.schedule_id == schedule.id,
            BookedSeat.travel_date >= today,
            BookedSeat.origin_key.isnot(None)
        ).all()

        for occupancy in occupancies:
            origin = assembled.index_of(occupancy.origin) if assembled else None
            destination = assembled.index_of(occupancy.destination) if assembled else None
            if origin is not None and destination is not None and origin < destination:
                continue
            logger.warning(
                "Occupancy %s (%s %s -> %s) on schedule %s no longer resolves after the stop edit",
                occupancy.id, occupancy.seat_id, occupancy.origin, occupancy.destination, schedule.id
            )
            occupancy.origin_key = None

    def _has_live_occupancies(self, schedule_id: str) -> bool:
        today = (self.now or datetime.now()).date()
        return self.db.query(BookedSeat).filter(
            BookedSeat.schedule_id == schedule_id,
            BookedSeat.travel_date >= today
        ).first() is not None
