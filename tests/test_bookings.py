from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from conftest import SCHEDULE_ID, RUN_DATE
from busline.models import Booking, BookedSeat, GovtBeneficiary, PassengerDetail, User
from busline.exceptions import (
    SeatConflict, InvalidPassenger, InvalidSeat, InvalidSegment, InvalidTravelDate,
    FeatureDisabled, TooManySeats, EligibilityNotFound, AlreadyClaimed, BookingNotFound,
    Unauthorized, ScheduleNotFound, StorageUnavailable
)
from busline.routes.schemas import PassengerCategory
from busline.bookings.schemas import (
    PaidBookingRequest, FreeBookingRequest, SeatBookingInfo, booking_to_response, mask_document_number
)
from busline.bookings.availability_service import SeatAvailabilityService, segments_overlap
from busline.bookings.booking_service import BookingService

def paid_request(origin, destination, *seats, travel_date=None):
    return PaidBookingRequest(
        schedule_id=SCHEDULE_ID,
        origin=origin,
        destination=destination,
        seats=list(seats),
        travel_date=travel_date
    )

def seat(seat_id, category=PassengerCategory.NORMAL, name="Asha Devi", document=None):
    return SeatBookingInfo(seat_id=seat_id, category=category, full_name=name, document_number=document)

def free_request(seat_ids=("B2",), registration="HR2024000001", phone="9000000003"):
    return FreeBookingRequest(
        schedule_id=SCHEDULE_ID,
        origin="Rohtak",
        destination="Chandigarh",
        seat_ids=list(seat_ids),
        registration_number=registration,
        phone=phone
    )

@pytest.fixture
def service(db, config, now):
    return BookingService(db, config, now=now)

class TestSegmentOverlap:
    def test_overlapping_segments(self):
        assert segments_overlap(0, 2, 0, 1)
        assert segments_overlap(0, 2, 1, 3)
        assert segments_overlap(1, 3, 0, 4)

    def test_touching_segments_do_not_overlap(self):
        assert not segments_overlap(0, 2, 2, 4)
        assert not segments_overlap(2, 4, 0, 2)

class TestPaidBooking:
    def test_segment_bookings_share_a_seat(self, db, schedule, service, passenger, other_passenger):
        first = service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))
        assert first.fare == Decimal("100")
        assert first.travel_date == RUN_DATE

        with pytest.raises(SeatConflict):
            service.book_paid(other_passenger, paid_request("Gohana", "Chandigarh", seat("A1")))

        second = service.book_paid(other_passenger, paid_request("Panipat", "Chandigarh", seat("A1")))
        assert second.fare == Decimal("150")
        assert db.query(BookedSeat).filter(BookedSeat.seat_id == "A1").count() == 2

    def test_overlap_rejected_inside_held_segment(self, db, schedule, service, passenger, other_passenger):
        service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("C3")))

        with pytest.raises(SeatConflict):
            service.book_paid(other_passenger, paid_request("Rohtak", "Gohana", seat("C3")))

    def test_mixed_categories(self, db, schedule, service, passenger):
        booking = service.book_paid(passenger, paid_request(
            "Rohtak", "Panipat",
            seat("A1"),
            seat("A2", PassengerCategory.CHILD, "Meena", "123412341234"),
            seat("A3", PassengerCategory.SENIOR, "Ram Lal", "999988887777")
        ))

        assert [p.fare for p in booking.passengers] == [Decimal("100"), Decimal("60"), Decimal("50")]
        assert booking.fare == Decimal("210")
        assert booking.original_fare == Decimal("210")
        assert booking.discount_type == "MIXED"
        assert booking.passengers[0].document_number is None
        assert booking.passengers[1].document_number == "123412341234"

    def test_response_masks_documents(self, db, schedule, service, passenger):
        booking = service.book_paid(passenger, paid_request(
            "Rohtak", "Panipat", seat("a5", PassengerCategory.CHILD, "Meena", "123412341234")
        ))

        response = booking_to_response(booking)

        assert response.seat_ids == ["A5"]
        assert response.passenger_details[0].document_number == "********1234"
        assert response.discount_type.value == "CHILD"

    def test_mask_document_number(self):
        assert mask_document_number(None) is None
        assert mask_document_number("123456789012") == "********9012"

    def test_discounted_passenger_needs_document(self, db, schedule, service, passenger):
        with pytest.raises(InvalidPassenger):
            service.book_paid(passenger, paid_request(
                "Rohtak", "Panipat", seat("A1", PassengerCategory.CHILD, "Meena")
            ))
        with pytest.raises(InvalidPassenger):
            service.book_paid(passenger, paid_request(
                "Rohtak", "Panipat", seat("A1", PassengerCategory.SENIOR, "Ram Lal", "12345")
            ))

    def test_passenger_needs_name(self, db, schedule, service, passenger):
        with pytest.raises(InvalidPassenger):
            service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1", name="  ")))

    def test_seat_must_exist_in_layout(self, db, schedule, service, passenger):
        with pytest.raises(InvalidSeat):
            service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("E1")))
        with pytest.raises(InvalidSeat):
            service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1"), seat("a1")))

    def test_reversed_segment(self, db, schedule, service, passenger):
        with pytest.raises(InvalidSegment):
            service.book_paid(passenger, paid_request("Panipat", "Rohtak", seat("A1")))

    def test_unknown_schedule(self, db, users, service, passenger):
        with pytest.raises(ScheduleNotFound):
            service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))

    def test_offline_system(self, db, schedule, config, now, passenger):
        offline = config.model_copy(update={"is_booking_system_online": False})

        with pytest.raises(FeatureDisabled):
            BookingService(db, offline, now=now).book_paid(
                passenger, paid_request("Rohtak", "Panipat", seat("A1"))
            )

    def test_schedule_booking_disabled(self, db, schedule, service, passenger):
        schedule.booking_enabled = False
        db.commit()

        with pytest.raises(FeatureDisabled):
            service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))

    def test_runs_are_independent(self, db, schedule, service, passenger, other_passenger):
        service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))

        next_day = service.book_paid(other_passenger, paid_request(
            "Rohtak", "Panipat", seat("A1"), travel_date=RUN_DATE + timedelta(days=1)
        ))

        assert next_day.travel_date == RUN_DATE + timedelta(days=1)

    def test_departed_or_distant_runs_rejected(self, db, schedule, service, passenger):
        with pytest.raises(InvalidTravelDate):
            service.book_paid(passenger, paid_request(
                "Rohtak", "Panipat", seat("A1"), travel_date=RUN_DATE - timedelta(days=1)
            ))
        with pytest.raises(InvalidTravelDate):
            service.book_paid(passenger, paid_request(
                "Rohtak", "Panipat", seat("A1"), travel_date=RUN_DATE + timedelta(days=31)
            ))

    def test_default_run_skips_departed_bus(self, db, schedule, config, now, passenger):
        late = BookingService(db, config, now=now.replace(hour=9))

        from_rohtak = late.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))
        from_panipat = late.book_paid(passenger, paid_request("Panipat", "Chandigarh", seat("B1")))

        assert from_rohtak.travel_date == RUN_DATE + timedelta(days=1)
        assert from_panipat.travel_date == RUN_DATE + timedelta(days=1)

class TestAvailability:
    def test_unavailable_seats_for_segment(self, db, schedule, service, passenger, now):
        service.book_paid(passenger, paid_request("Rohtak", "Gohana", seat("A1"), seat("B1")))
        service.book_paid(passenger, paid_request("Panipat", "Chandigarh", seat("C1")))
        availability = SeatAvailabilityService(db)

        assert availability.unavailable_seats(SCHEDULE_ID, "Rohtak", "Panipat", now=now) == {"A1", "B1"}
        assert availability.unavailable_seats(SCHEDULE_ID, "Gohana", "Panipat", now=now) == set()
        assert availability.unavailable_seats(SCHEDULE_ID, "Gohana", "Chandigarh", now=now) == {"C1"}

    def test_renamed_stop_occupancies_are_skipped(self, db, schedule, service, passenger, now):
        service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))
        schedule.stops[2].stop_name = "Panipat City"
        db.commit()

        assert SeatAvailabilityService(db).unavailable_seats(
            SCHEDULE_ID, "Rohtak", "Gohana", now=now
        ) == set()

class TestFreeBooking:
    def test_free_ticket_claimed_once(self, db, schedule, beneficiary, service, passenger):
        booking = service.book_free(passenger, free_request())

        assert booking.is_free_ticket is True
        assert booking.fare == Decimal("0")
        assert booking.passengers[0].full_name == "Asha Devi"
        assert db.query(GovtBeneficiary).filter_by(id="bene-1").one().ticket_claimed is True
        assert db.query(User).filter_by(id="user-1").one().govt_exam_registration_number == "HR2024000001"

        with pytest.raises(AlreadyClaimed):
            service.book_free(passenger, free_request(seat_ids=("B3",)))

    def test_single_seat_only(self, db, schedule, beneficiary, service, passenger):
        with pytest.raises(TooManySeats):
            service.book_free(passenger, free_request(seat_ids=("A1", "A2")))

    def test_phone_must_match(self, db, schedule, beneficiary, service, passenger):
        with pytest.raises(EligibilityNotFound):
            service.book_free(passenger, free_request(phone="9999999999"))

        assert db.query(GovtBeneficiary).filter_by(id="bene-1").one().ticket_claimed is False

    def test_disabled(self, db, schedule, beneficiary, config, now, passenger):
        disabled = config.model_copy(update={"is_free_booking_enabled": False})

        with pytest.raises(FeatureDisabled):
            BookingService(db, disabled, now=now).book_free(passenger, free_request())

    def test_occupied_seat_keeps_ticket_unclaimed(self, db, schedule, beneficiary, service, passenger, other_passenger):
        service.book_paid(other_passenger, paid_request("Gohana", "Panipat", seat("B2")))

        with pytest.raises(SeatConflict):
            service.book_free(passenger, free_request())

        assert db.query(GovtBeneficiary).filter_by(id="bene-1").one().ticket_claimed is False

class TestQueries:
    def test_owner_and_admin_can_read(self, db, schedule, service, passenger, other_passenger, admin):
        booking = service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))

        assert service.get_booking(booking.id, caller=passenger).id == booking.id
        assert service.get_booking(booking.id, caller=admin).id == booking.id
        with pytest.raises(Unauthorized):
            service.get_booking(booking.id, caller=other_passenger)
        with pytest.raises(BookingNotFound):
            service.get_booking("missing")

    def test_user_bookings_newest_first(self, db, schedule, config, now, passenger):
        BookingService(db, config, now=now).book_paid(passenger, paid_request("Rohtak", "Gohana", seat("A1")))
        later = BookingService(db, config, now=now + timedelta(minutes=5)).book_paid(
            passenger, paid_request("Rohtak", "Gohana", seat("A2"))
        )

        bookings = BookingService(db, config).get_user_bookings("user-1")

        assert [b.id for b in bookings][0] == later.id
        assert len(bookings) == 2

@pytest.fixture
def stale_availability(monkeypatch):
    """Availability read that misses a booking committed in the meantime"""
    monkeypatch.setattr(SeatAvailabilityService, "unavailable_for_segment", lambda self, *args: set())

def database_locked(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("database is locked"))

class TestCommitFailures:
    def test_concurrent_paid_booking_conflicts_on_commit(self, db, schedule, service, passenger, other_passenger,
                                                         stale_availability):
        service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))

        with pytest.raises(SeatConflict) as error:
            service.book_paid(other_passenger, paid_request("Rohtak", "Gohana", seat("B1"), seat("A1")))

        assert error.value.retryable is True
        assert db.query(Booking).count() == 1
        assert db.query(PassengerDetail).count() == 1
        assert db.query(BookedSeat).count() == 1

    def test_concurrent_free_booking_leaves_ticket_unclaimed(self, db, schedule, beneficiary, service, passenger,
                                                             other_passenger, stale_availability):
        service.book_paid(other_passenger, paid_request("Rohtak", "Gohana", seat("B2")))

        with pytest.raises(SeatConflict):
            service.book_free(passenger, free_request())

        assert db.query(Booking).count() == 1
        assert db.query(GovtBeneficiary).filter_by(id="bene-1").one().ticket_claimed is False
        assert db.query(User).filter_by(id="user-1").one().govt_exam_registration_number is None

    def test_storage_failure_is_retryable(self, db, schedule, service, passenger, monkeypatch):
        monkeypatch.setattr(db, "commit", database_locked)

        with pytest.raises(StorageUnavailable) as error:
            service.book_paid(passenger, paid_request("Rohtak", "Panipat", seat("A1")))

        assert error.value.retryable is True
        assert error.value.status_code == 503
        monkeypatch.undo()
        assert db.query(BookedSeat).count() == 0

    def test_storage_failure_on_free_booking(self, db, schedule, beneficiary, service, passenger, monkeypatch):
        monkeypatch.setattr(db, "commit", database_locked)

        with pytest.raises(StorageUnavailable):
            service.book_free(passenger, free_request())

        monkeypatch.undo()
        assert db.query(GovtBeneficiary).filter_by(id="bene-1").one().ticket_claimed is False
