from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, datetime

from busline.database import get_db
from busline.auth.dependencies import get_current_user
from busline.auth.schemas import CallerIdentity
from busline.admin.schemas import SystemConfig
from busline.admin.settings_service import get_system_config
from busline.bookings.schemas import (
    PaidBookingRequest, FreeBookingRequest, CancellationRequest, CancellationResponse,
    BookingResponse, AvailabilityResponse, booking_to_response
)
from busline.bookings.availability_service import SeatAvailabilityService
from busline.bookings.booking_service import BookingService
from busline.bookings.cancellation_service import CancellationService
from busline.routes.service import RouteModel

router = APIRouter()

@router.get("/availability/{schedule_id}", response_model=AvailabilityResponse)
def get_unavailable_seats(
    schedule_id: str,
    origin: str = Query(..., description="Boarding stop name"),
    destination: str = Query(..., description="Alighting stop name"),
    travel_date: Optional[date] = Query(None, description="Run date; defaults to the next departure"),
    db: Session = Depends(get_db)
):
    """Seats already held on any part of the requested segment (advisory)"""

    schedule = RouteModel(db).require(schedule_id)
    origin_stop, destination_stop = schedule.resolve_segment(origin, destination)

    availability = SeatAvailabilityService(db)
    run_date = availability.resolve_travel_date(schedule, origin_stop, travel_date, datetime.now())
    unavailable = availability.unavailable_for_segment(
        schedule, origin_stop.order, destination_stop.order, run_date
    )

    return AvailabilityResponse(
        schedule_id=schedule_id,
        origin=origin_stop.name,
        destination=destination_stop.name,
        travel_date=run_date,
        unavailable_seats=sorted(unavailable)
    )

@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: PaidBookingRequest,
    current_user: CallerIdentity = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Book one or more paid seats on a segment"""

    booking = BookingService(db, config).book_paid(current_user, request)
    return booking_to_response(booking)

@router.post("/free", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_free_booking(
    request: FreeBookingRequest,
    current_user: CallerIdentity = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Redeem a beneficiary's single free ticket"""

    booking = BookingService(db, config).book_free(current_user, request)
    return booking_to_response(booking)

@router.get("/me", response_model=List[BookingResponse])
def get_my_bookings(
    current_user: CallerIdentity = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Bookings of the current user, newest first"""

    bookings = BookingService(db, config).get_user_bookings(current_user.user_id)
    return [booking_to_response(b) for b in bookings]

@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    current_user: CallerIdentity = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Get a booking by ID"""

    booking = BookingService(db, config).get_booking(booking_id, caller=current_user)
    return booking_to_response(booking)

@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
def cancel_booking_seats(
    booking_id: str,
    request: CancellationRequest,
    current_user: CallerIdentity = Depends(get_current_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Cancel some or all seats of a booking and report the refund"""

    return CancellationService(db, config).cancel(current_user, booking_id, request.seat_ids)
