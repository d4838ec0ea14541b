from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime, time
from decimal import Decimal

from busline.routes.schemas import SeatLayout

# Authoring payloads
class ParsedStop(BaseModel):
    """One stop of an uploaded or edited schedule"""
    model_config = ConfigDict(populate_by_name=True)

    stop_order: Optional[int] = Field(None, alias="stopOrder")
    stop_name: str = Field(..., alias="stopName")
    arrival_time: Optional[time] = Field(None, alias="arrivalTime")
    departure_time: time = Field(..., alias="departureTime")
    fare_from_origin: Decimal = Field(Decimal("0"), alias="fareFromOrigin")

class ScheduleUpdate(BaseModel):
    """Replacement content for an existing schedule"""
    model_config = ConfigDict(populate_by_name=True)

    bus_name: str = Field(..., alias="busName")
    seat_layout: SeatLayout = Field(..., alias="seatLayout")
    booking_enabled: bool = Field(True, alias="bookingEnabled")
    stops: List[ParsedStop]

class ParsedSchedule(ScheduleUpdate):
    """A schedule from the bulk upload; the ID is generated when omitted"""
    id: Optional[str] = None

class BatchUploadRequest(BaseModel):
    schedules: List[ParsedSchedule]

class BatchUploadResponse(BaseModel):
    message: str
    schedule_ids: List[str]

# Tracking
class TrackedStop(BaseModel):
    name: str
    arrival: Optional[time] = None
    departure: Optional[time] = None

class BusLocation(BaseModel):
    """Simulated position of a bus along its timetable"""
    bus_id: str
    last_updated: datetime
    current_stop_index: int
    is_at_stop: bool
    route_stops: List[TrackedStop]
