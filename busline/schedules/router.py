from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, datetime

from busline.database import get_db
from busline.auth.dependencies import get_optional_user, require_operator
from busline.auth.schemas import CallerIdentity
from busline.admin.schemas import SystemConfig
from busline.admin.settings_service import get_system_config
from busline.routes.schemas import ScheduleSummary, ScheduleDetail, SeatMapResponse
from busline.routes.service import RouteModel
from busline.routes.seat_layout import seat_rows
from busline.bookings.availability_service import SeatAvailabilityService
from busline.schedules.schemas import (
    BatchUploadRequest, BatchUploadResponse, ScheduleUpdate, BusLocation
)
from busline.schedules.service import ScheduleManagementService
from busline.schedules.tracking_service import TrackingService

router = APIRouter()

@router.get("", response_model=List[ScheduleSummary])
def list_schedules(
    current_user: Optional[CallerIdentity] = Depends(get_optional_user),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """All schedules; sub-admins only see their assigned districts"""

    return RouteModel(db).visible_to(current_user, config)

@router.post("/batch-upload", response_model=BatchUploadResponse, status_code=status.HTTP_201_CREATED)
def batch_upload_schedules(
    request: BatchUploadRequest,
    current_user: CallerIdentity = Depends(require_operator),
    db: Session = Depends(get_db)
):
    """Create schedules in bulk; rejected as a whole if any ID already exists"""

    created = ScheduleManagementService(db).batch_upload(current_user, request.schedules)
    return BatchUploadResponse(
        message=f"{len(created)} schedule(s) uploaded successfully.",
        schedule_ids=created
    )

@router.get("/{schedule_id}", response_model=ScheduleDetail)
def get_schedule(
    schedule_id: str,
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Get a schedule with its full stop list"""

    return RouteModel(db).detail(schedule_id, config)

@router.put("/{schedule_id}", response_model=ScheduleDetail)
def replace_schedule(
    schedule_id: str,
    update: ScheduleUpdate,
    current_user: CallerIdentity = Depends(require_operator),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Replace a schedule's details and stops"""

    ScheduleManagementService(db).replace(current_user, schedule_id, update)
    return RouteModel(db).detail(schedule_id, config)

@router.get("/{schedule_id}/seats", response_model=SeatMapResponse)
def get_seat_map(
    schedule_id: str,
    origin: str = Query(..., description="Boarding stop name"),
    destination: str = Query(..., description="Alighting stop name"),
    travel_date: Optional[date] = Query(None, description="Run date; defaults to the next departure"),
    db: Session = Depends(get_db)
):
    """Seat grid of the bus with the seats taken on the requested segment"""

    schedule = RouteModel(db).require(schedule_id)
    origin_stop, destination_stop = schedule.resolve_segment(origin, destination)

    availability = SeatAvailabilityService(db)
    run_date = availability.resolve_travel_date(schedule, origin_stop, travel_date, datetime.now())
    unavailable = availability.unavailable_for_segment(
        schedule, origin_stop.order, destination_stop.order, run_date
    )

    return SeatMapResponse(
        schedule_id=schedule.id,
        seat_layout=schedule.seat_layout,
        rows=seat_rows(schedule.seat_layout),
        unavailable_seats=sorted(unavailable),
        travel_date=run_date
    )

@router.get("/{schedule_id}/tracking", response_model=BusLocation)
def track_bus(
    schedule_id: str,
    db: Session = Depends(get_db)
):
    """Simulated current position of the bus along its timetable"""

    return TrackingService(db).locate(schedule_id)
