from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from busline.routes.schemas import PassengerCategory, DiscountType

class BookingStatus(str, Enum):
    """Booking lifecycle status"""
    CONFIRMED = "CONFIRMED"
    PARTIALLY_CANCELLED = "PARTIALLY_CANCELLED"
    CANCELLED = "CANCELLED"

class PassengerStatus(str, Enum):
    """Per-seat status inside a booking"""
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"

def mask_document_number(document_number: Optional[str]) -> Optional[str]:
    """Hide all but the last four digits of an identity document"""
    if not document_number:
        return None
    return "*" * (len(document_number) - 4) + document_number[-4:]

# Request Models
class SeatBookingInfo(BaseModel):
    """One seat of a paid booking request"""
    model_config = ConfigDict(populate_by_name=True)

    seat_id: str = Field(..., alias="seatId")
    category: PassengerCategory = Field(PassengerCategory.NORMAL, alias="type")
    full_name: str = Field("", alias="fullName")
    document_number: Optional[str] = Field(None, alias="aadhaarNumber")

    @field_validator("seat_id")
    @classmethod
    def strip_seat_id(cls, v):
        return v.strip().upper()

class PaidBookingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schedule_id: str = Field(..., alias="scheduleId")
    origin: str
    destination: str
    seats: List[SeatBookingInfo]
    travel_date: Optional[date] = Field(None, alias="travelDate")

    @field_validator("seats")
    @classmethod
    def validate_seats(cls, v):
        if not v:
            raise ValueError("At least one seat is required")
        return v

class FreeBookingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schedule_id: str = Field(..., alias="scheduleId")
    origin: str
    destination: str
    seat_ids: List[str] = Field(..., alias="seatIds")
    registration_number: str = Field(..., alias="registrationNumber")
    phone: str
    travel_date: Optional[date] = Field(None, alias="travelDate")

class CancellationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    seat_ids: List[str] = Field(..., alias="seatIds")

    @field_validator("seat_ids")
    @classmethod
    def validate_seat_ids(cls, v):
        if not v:
            raise ValueError("An array of seat IDs to cancel is required")
        return [seat.strip().upper() for seat in v]

# Response Models
class PassengerDetailResponse(BaseModel):
    seat_id: str
    full_name: str
    category: PassengerCategory
    document_number: Optional[str] = None
    fare: Decimal
    status: PassengerStatus

class BookingResponse(BaseModel):
    id: str
    user_id: str
    schedule_id: str
    origin: str
    destination: str
    travel_date: Optional[date] = None
    fare: Decimal
    original_fare: Decimal
    status: BookingStatus
    is_free_ticket: bool
    discount_type: DiscountType
    booking_date: datetime
    passenger_details: List[PassengerDetailResponse]
    seat_ids: List[str]

class CancellationResponse(BaseModel):
    booking_id: str
    refund_amount: Decimal
    cancelled_seat_ids: List[str]
    status: BookingStatus
    remaining_fare: Decimal
    message: str

class AvailabilityResponse(BaseModel):
    schedule_id: str
    origin: str
    destination: str
    travel_date: date
    unavailable_seats: List[str]

def booking_to_response(booking) -> BookingResponse:
    """Serialize a Booking row; identity documents are always masked"""
    passengers = [
        PassengerDetailResponse(
            seat_id=p.seat_id,
            full_name=p.full_name,
            category=PassengerCategory(p.category),
            document_number=mask_document_number(p.document_number),
            fare=p.fare,
            status=PassengerStatus(p.status)
        )
        for p in booking.passengers
    ]
    return BookingResponse(
        id=booking.id,
        user_id=booking.user_id,
        schedule_id=booking.schedule_id,
        origin=booking.origin,
        destination=booking.destination,
        travel_date=booking.travel_date,
        fare=booking.fare,
        original_fare=booking.original_fare,
        status=BookingStatus(booking.status),
        is_free_ticket=bool(booking.is_free_ticket),
        discount_type=DiscountType(booking.discount_type),
        booking_date=booking.booking_date,
        passenger_details=passengers,
        seat_ids=[p.seat_id for p in booking.passengers if p.status == PassengerStatus.BOOKED.value]
    )
