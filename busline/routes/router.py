from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from busline.database import get_db
from busline.admin.schemas import SystemConfig
from busline.admin.settings_service import get_system_config
from busline.routes.schemas import RouteSearchResult, ScheduleSummary, FareQuoteResponse
from busline.routes.service import RouteModel
from busline.routes.fare_service import FareCalculationService

router = APIRouter()

@router.get("/search", response_model=List[RouteSearchResult])
def search_routes(
    origin: str = Query(..., min_length=1, description="Boarding stop name"),
    destination: str = Query(..., min_length=1, description="Alighting stop name"),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Schedules that stop at `origin` and later at `destination`, priced for that segment"""

    return RouteModel(db).search(origin, destination, config)

@router.get("/districts", response_model=List[str])
def list_districts(db: Session = Depends(get_db)):
    """Districts that have at least one schedule starting in them"""

    return RouteModel(db).origin_districts()

@router.get("/district/{district}", response_model=List[ScheduleSummary])
def get_routes_by_district(
    district: str,
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Schedules departing from a district"""

    return RouteModel(db).by_district(district, config)

@router.get("/{schedule_id}/fare", response_model=FareQuoteResponse)
def get_fare_quote(
    schedule_id: str,
    origin: str = Query(..., description="Boarding stop name"),
    destination: str = Query(..., description="Alighting stop name"),
    config: SystemConfig = Depends(get_system_config),
    db: Session = Depends(get_db)
):
    """Per-category fares for a segment with the current discount settings"""

    schedule = RouteModel(db).require(schedule_id)
    return FareCalculationService(config).quote(schedule, origin, destination)
