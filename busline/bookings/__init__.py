"""
Booking & Cancellation Module

Segment-based seat booking for multi-stop bus schedules. A seat can be sold
several times on the same run as long as the booked segments never overlap.

Key Components:
- availability_service.py: overlap test of live seat occupancies per run
- booking_service.py: paid and free (beneficiary) bookings
- cancellation_service.py: partial cancellation and refunds
- router.py: FastAPI endpoints for availability, booking and cancellation
- schemas.py: Pydantic models and booking/passenger status enums
"""

from .schemas import (
    BookingStatus, PassengerStatus, PaidBookingRequest, FreeBookingRequest,
    SeatBookingInfo, CancellationRequest, CancellationResponse, BookingResponse
)

__all__ = [
    "BookingStatus",
    "PassengerStatus",
    "PaidBookingRequest",
    "FreeBookingRequest",
    "SeatBookingInfo",
    "CancellationRequest",
    "CancellationResponse",
    "BookingResponse"
]
