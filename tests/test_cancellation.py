from datetime import datetime, time, timedelta
from decimal import Decimal

import pytest

from conftest import SCHEDULE_ID, RUN_DATE
from busline.models import Booking
from busline.exceptions import (
    AlreadyCancelled, NothingToCancel, WindowClosed, FeatureDisabled, Unauthorized,
    BookingNotFound, InvalidSegment
)
from busline.routes.schemas import PassengerCategory
from busline.routes.service import RouteModel
from busline.bookings.schemas import PaidBookingRequest, SeatBookingInfo, BookingStatus
from busline.bookings.availability_service import SeatAvailabilityService
from busline.bookings.booking_service import BookingService
from busline.bookings.cancellation_service import CancellationService, derive_status

@pytest.fixture
def family_booking(db, schedule, config, now, passenger):
    """CHILD (60) + NORMAL (100) on Rohtak -> Panipat"""
    request = PaidBookingRequest(
        schedule_id=SCHEDULE_ID,
        origin="Rohtak",
        destination="Panipat",
        seats=[
            SeatBookingInfo(seat_id="A1", category=PassengerCategory.CHILD, full_name="Meena", document_number="123412341234"),
            SeatBookingInfo(seat_id="B1", full_name="Asha Devi"),
        ]
    )
    return BookingService(db, config, now=now).book_paid(passenger, request)

@pytest.fixture
def service(db, config, now):
    return CancellationService(db, config, now=now)

class TestCancellation:
    def test_partial_then_full(self, db, family_booking, service, passenger):
        assert family_booking.original_fare == Decimal("160")

        partial = service.cancel(passenger, family_booking.id, ["A1"])

        assert partial.refund_amount == Decimal("60")
        assert partial.remaining_fare == Decimal("100")
        assert partial.status == BookingStatus.PARTIALLY_CANCELLED
        assert partial.cancelled_seat_ids == ["A1"]

        full = service.cancel(passenger, family_booking.id, ["b1"])

        assert full.refund_amount == Decimal("100")
        assert full.status == BookingStatus.CANCELLED
        booking = db.query(Booking).filter_by(id=family_booking.id).one()
        assert booking.fare == Decimal("0")
        assert booking.original_fare == Decimal("160")

        with pytest.raises(AlreadyCancelled):
            service.cancel(passenger, family_booking.id, ["A1"])

    def test_cancel_everything_at_once(self, db, family_booking, service, passenger):
        result = service.cancel(passenger, family_booking.id, ["A1", "B1"])

        assert result.status == BookingStatus.CANCELLED
        assert result.refund_amount == Decimal("160")

    def test_fare_is_conserved(self, db, family_booking, service, passenger):
        service.cancel(passenger, family_booking.id, ["B1"])

        booking = db.query(Booking).filter_by(id=family_booking.id).one()
        refunded = sum(p.fare for p in booking.passengers if p.status == "CANCELLED")
        assert booking.original_fare - refunded == booking.fare

    def test_nothing_left_to_cancel(self, db, family_booking, service, passenger):
        service.cancel(passenger, family_booking.id, ["A1"])

        with pytest.raises(NothingToCancel):
            service.cancel(passenger, family_booking.id, ["A1"])
        with pytest.raises(NothingToCancel):
            service.cancel(passenger, family_booking.id, ["D9"])

        booking = db.query(Booking).filter_by(id=family_booking.id).one()
        assert booking.fare == Decimal("100")

    def test_cancelled_seat_is_freed(self, db, family_booking, service, passenger, now):
        availability = SeatAvailabilityService(db)
        assert "A1" in availability.unavailable_seats(SCHEDULE_ID, "Gohana", "Chandigarh", now=now)

        service.cancel(passenger, family_booking.id, ["A1"])

        unavailable = availability.unavailable_seats(SCHEDULE_ID, "Gohana", "Chandigarh", now=now)
        assert "A1" not in unavailable
        assert "B1" in unavailable

    def test_window_closes_an_hour_before_departure(self, db, family_booking, config, now, passenger):
        cutoff = datetime.combine(RUN_DATE, time(5, 0))

        with pytest.raises(WindowClosed):
            CancellationService(db, config, now=cutoff).cancel(passenger, family_booking.id, ["A1"])

        result = CancellationService(db, config, now=cutoff - timedelta(minutes=1)).cancel(
            passenger, family_booking.id, ["A1"]
        )
        assert result.refund_amount == Decimal("60")

    def test_only_owner_can_cancel(self, db, family_booking, service, other_passenger, admin):
        with pytest.raises(Unauthorized):
            service.cancel(other_passenger, family_booking.id, ["A1"])
        with pytest.raises(Unauthorized):
            service.cancel(admin, family_booking.id, ["A1"])

    def test_disabled(self, db, family_booking, config, now, passenger):
        disabled = config.model_copy(update={"is_cancellation_enabled": False})

        with pytest.raises(FeatureDisabled):
            CancellationService(db, disabled, now=now).cancel(passenger, family_booking.id, ["A1"])

    def test_unknown_booking(self, db, schedule, service, passenger):
        with pytest.raises(BookingNotFound):
            service.cancel(passenger, "missing", ["A1"])

    def test_renamed_origin_blocks_cancellation(self, db, schedule, family_booking, service, passenger):
        schedule.stops[0].stop_name = "Rohtak Bus Stand"
        db.commit()

        with pytest.raises(InvalidSegment):
            service.cancel(passenger, family_booking.id, ["A1"])

class TestDeadline:
    def test_booking_without_run_date_uses_next_departure(self, db, schedule, config):
        booking = Booking(
            id="legacy-1",
            user_id="user-1",
            schedule_id=SCHEDULE_ID,
            origin="Rohtak",
            destination="Panipat",
            travel_date=None,
            booking_date=datetime.combine(RUN_DATE, time(7, 0))
        )
        assembled = RouteModel(db).get(SCHEDULE_ID)

        deadline = CancellationService(db, config).cancellation_deadline(booking, assembled)

        assert deadline == datetime.combine(RUN_DATE + timedelta(days=1), time(5, 0))

    def test_deadline_for_later_stop(self, db, family_booking, schedule, config):
        booking = db.query(Booking).filter_by(id=family_booking.id).one()
        booking.origin = "Panipat"
        assembled = RouteModel(db).get(SCHEDULE_ID)

        deadline = CancellationService(db, config).cancellation_deadline(booking, assembled)

        assert deadline == datetime.combine(RUN_DATE, time(7, 0))
        db.rollback()

def test_derive_status():
    assert derive_status(["BOOKED", "BOOKED"]) == BookingStatus.CONFIRMED
    assert derive_status(["CANCELLED", "BOOKED"]) == BookingStatus.PARTIALLY_CANCELLED
    assert derive_status(["CANCELLED"]) == BookingStatus.CANCELLED
