import logging
import re
import uuid
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError

from busline.models import Booking, PassengerDetail, BookedSeat, GovtBeneficiary, User
from busline.exceptions import (
    BookingSystemError, FeatureDisabled, InvalidPassenger, InvalidSeat, SeatConflict,
    TooManySeats, EligibilityNotFound, AlreadyClaimed, BookingNotFound, StorageUnavailable,
    Unauthorized
)
from busline.admin.schemas import SystemConfig
from busline.auth.schemas import CallerIdentity
from busline.bookings.schemas import (
    PaidBookingRequest, FreeBookingRequest, SeatBookingInfo, BookingStatus, PassengerStatus
)
from busline.bookings.availability_service import SeatAvailabilityService
from busline.routes.schemas import AssembledSchedule, PassengerCategory, DiscountType
from busline.routes.service import RouteModel
from busline.routes.fare_service import FareCalculationService
from busline.routes.seat_layout import generate_seat_ids

logger = logging.getLogger(__name__)

DOCUMENT_NUMBER_PATTERN = re.compile(r"\d{12}")
DISCOUNTED_CATEGORIES = (PassengerCategory.CHILD, PassengerCategory.SENIOR)

class BookingService:
    """Creates paid and free bookings together with their seat occupancies.

    Each booking runs in one transaction: the schedule row is locked, seat
    availability is re-checked against the live occupancies, fares are
    recomputed, and booking, passenger and occupancy rows are committed
    together.
    """

    def __init__(self, db: Session, config: SystemConfig, now: Optional[datetime] = None):
        self.db = db
        self.config = config
        self.now = now
        self.route_model = RouteModel(db)
        self.availability = SeatAvailabilityService(db)
        self.fares = FareCalculationService(config)

    def _current_time(self) -> datetime:
        return self.now or datetime.now()

    # Paid bookings
    def book_paid(self, caller: CallerIdentity, request: PaidBookingRequest) -> Booking:
        self._validate_passengers(request.seats)
        seat_ids = [seat.seat_id for seat in request.seats]

        try:
            schedule = self.route_model.require(request.schedule_id, lock=True)
            self._check_booking_enabled(schedule)
            self._validate_seat_ids(schedule, seat_ids)

            origin_stop, destination_stop = schedule.resolve_segment(request.origin, request.destination)
            now = self._current_time()
            travel_date = self.availability.resolve_travel_date(
                schedule, origin_stop, request.travel_date, now
            )
            self._check_seats_free(schedule, seat_ids, origin_stop.order, destination_stop.order, travel_date)

            booking = Booking(
                id=str(uuid.uuid4()),
                user_id=caller.user_id,
                schedule_id=schedule.id,
                origin=request.origin.strip(),
                destination=request.destination.strip(),
                travel_date=travel_date,
                status=BookingStatus.CONFIRMED.value,
                is_free_ticket=False,
                booking_date=now
            )

            total_fare = Decimal("0")
            for position, seat in enumerate(request.seats):
                fare = self.fares.price_segment(
                    schedule, origin_stop, destination_stop, seat.category
                ).total_fare
                total_fare += fare
                booking.passengers.append(PassengerDetail(
                    position=position,
                    seat_id=seat.seat_id,
                    full_name=seat.full_name.strip(),
                    category=seat.category.value,
                    document_number=seat.document_number if seat.category in DISCOUNTED_CATEGORIES else None,
                    fare=fare,
                    status=PassengerStatus.BOOKED.value
                ))
                booking.occupancies.append(self._occupancy(
                    schedule, seat.seat_id, booking, origin_stop
                ))

            booking.fare = total_fare
            booking.original_fare = total_fare
            booking.discount_type = self.fares.classify_discount(
                seat.category for seat in request.seats
            ).value

            self.db.add(booking)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Seat conflict on commit for schedule %s seats %s", request.schedule_id, seat_ids)
            raise SeatConflict()
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure while booking schedule %s: %s", request.schedule_id, e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info(
            "Booking %s created: schedule=%s %s->%s run=%s seats=%s fare=%s",
            booking.id, booking.schedule_id, booking.origin, booking.destination,
            booking.travel_date, ",".join(seat_ids), booking.fare
        )
        return booking

    # Free bookings
    def book_free(self, caller: CallerIdentity, request: FreeBookingRequest) -> Booking:
        if len(request.seat_ids) != 1:
            raise TooManySeats()
        seat_id = request.seat_ids[0].strip().upper()

        if not self.config.is_free_booking_enabled:
            raise FeatureDisabled("Free booking is currently disabled by the administrator.")

        try:
            schedule = self.route_model.require(request.schedule_id, lock=True)
            self._check_booking_enabled(schedule)
            self._validate_seat_ids(schedule, [seat_id])

            beneficiary = self.db.query(GovtBeneficiary).filter(
                GovtBeneficiary.registration_number == request.registration_number.strip(),
                GovtBeneficiary.phone == request.phone.strip()
            ).with_for_update().first()
            if not beneficiary:
                raise EligibilityNotFound()
            if beneficiary.ticket_claimed:
                raise AlreadyClaimed()

            origin_stop, destination_stop = schedule.resolve_segment(request.origin, request.destination)
            now = self._current_time()
            travel_date = self.availability.resolve_travel_date(
                schedule, origin_stop, request.travel_date, now
            )
            self._check_seats_free(schedule, [seat_id], origin_stop.order, destination_stop.order, travel_date)

            booking = Booking(
                id=str(uuid.uuid4()),
                user_id=caller.user_id,
                schedule_id=schedule.id,
                origin=request.origin.strip(),
                destination=request.destination.strip(),
                travel_date=travel_date,
                fare=Decimal("0"),
                original_fare=Decimal("0"),
                status=BookingStatus.CONFIRMED.value,
                is_free_ticket=True,
                govt_exam_registration_number=beneficiary.registration_number,
                discount_type=DiscountType.NONE.value,
                booking_date=now
            )
            booking.passengers.append(PassengerDetail(
                position=0,
                seat_id=seat_id,
                full_name=caller.full_name,
                category=PassengerCategory.NORMAL.value,
                fare=Decimal("0"),
                status=PassengerStatus.BOOKED.value
            ))
            booking.occupancies.append(self._occupancy(
                schedule, seat_id, booking, origin_stop
            ))
            self.db.add(booking)

            beneficiary.ticket_claimed = True
            user = self.db.query(User).filter(User.id == caller.user_id).first()
            if user and not user.govt_exam_registration_number:
                user.govt_exam_registration_number = beneficiary.registration_number

            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Seat conflict on commit for free booking of %s on %s", seat_id, request.schedule_id)
            raise SeatConflict()
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure while booking free ticket on %s: %s", request.schedule_id, e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info(
            "Free booking %s created for beneficiary %s: schedule=%s seat=%s",
            booking.id, booking.govt_exam_registration_number, booking.schedule_id, seat_id
        )
        return booking

    # Queries
    def get_booking(self, booking_id: str, caller: Optional[CallerIdentity] = None) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise BookingNotFound()
        if caller is not None and not caller.is_admin and booking.user_id != caller.user_id:
            raise Unauthorized("You can only view your own bookings.")
        return booking

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        """All bookings of a user, newest first"""
        return self.db.query(Booking).filter(
            Booking.user_id == user_id
        ).order_by(Booking.booking_date.desc()).all()

    # Helpers
    def _check_booking_enabled(self, schedule: AssembledSchedule):
        if not self.config.is_booking_system_online:
            raise FeatureDisabled("The booking system is currently offline.")
        if not schedule.booking_enabled:
            raise FeatureDisabled(f"Booking is disabled for {schedule.bus_name}.")

    @staticmethod
    def _validate_passengers(seats: List[SeatBookingInfo]):
        for seat in seats:
            if not seat.full_name or not seat.full_name.strip():
                raise InvalidPassenger(f"Full name is required for seat {seat.seat_id}.")
            if seat.category in DISCOUNTED_CATEGORIES:
                if not seat.document_number or not DOCUMENT_NUMBER_PATTERN.fullmatch(seat.document_number):
                    raise InvalidPassenger(
                        f"A valid 12-digit document number is required for seat {seat.seat_id}."
                    )

    @staticmethod
    def _validate_seat_ids(schedule: AssembledSchedule, seat_ids: List[str]):
        if len(set(seat_ids)) != len(seat_ids):
            raise InvalidSeat("The same seat was selected more than once.")
        layout_seats = set(generate_seat_ids(schedule.seat_layout))
        unknown = [seat_id for seat_id in seat_ids if seat_id not in layout_seats]
        if unknown:
            raise InvalidSeat(
                f"Seat(s) {', '.join(unknown)} do not exist in the {schedule.seat_layout.value} layout."
            )

    def _check_seats_free(self, schedule, seat_ids, origin_order, destination_order, travel_date):
        taken = self.availability.unavailable_for_segment(
            schedule, origin_order, destination_order, travel_date
        )
        conflicts = sorted(set(seat_ids) & taken)
        if conflicts:
            raise SeatConflict(
                f"Seat(s) {', '.join(conflicts)} were just booked for this segment. Please choose other seats."
            )

    @staticmethod
    def _occupancy(schedule, seat_id, booking, origin_stop) -> BookedSeat:
        return BookedSeat(
            schedule_id=schedule.id,
            travel_date=booking.travel_date,
            seat_id=seat_id,
            origin=booking.origin,
            destination=booking.destination,
            origin_key=origin_stop.normalized_name
        )
