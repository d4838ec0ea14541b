"""
Schedules Module

Operator management of bus schedules and the passenger-facing views of them.

Key Components:
- service.py: bulk upload and atomic replacement of schedules and stops
- tracking_service.py: timetable-based bus position simulation
- router.py: FastAPI endpoints for listing, editing, seat maps and tracking
- schemas.py: Pydantic models for uploads and tracking responses
"""

from .schemas import ParsedSchedule, ParsedStop, ScheduleUpdate, BusLocation

__all__ = [
    "ParsedSchedule",
    "ParsedStop",
    "ScheduleUpdate",
    "BusLocation"
]
