"""
Route Model Module

Read-side projection of bus schedules: ordered stops with cumulative fares,
segment resolution by stop name, seat layouts and fare calculation.

Key Components:
- service.py: RouteModel, assembling schedules and searching segments
- fare_service.py: segment fares with child/senior district discounts
- seat_layout.py: deterministic seat IDs for each bus layout
- router.py: FastAPI endpoints for route search and fare quotes
- schemas.py: Pydantic models and fare/layout enums
"""

from .schemas import (
    AssembledSchedule, RouteStopView, SeatLayout, PassengerCategory, DiscountType,
    ScheduleSummary, RouteSearchResult, FareQuoteResponse
)

__all__ = [
    "AssembledSchedule",
    "RouteStopView",
    "SeatLayout",
    "PassengerCategory",
    "DiscountType",
    "ScheduleSummary",
    "RouteSearchResult",
    "FareQuoteResponse"
]
