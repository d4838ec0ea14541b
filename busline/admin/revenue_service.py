from typing import Dict, List, Optional
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.orm import Session

from busline.models import Booking, PassengerDetail
from busline.exceptions import Unauthorized
from busline.auth.schemas import CallerIdentity, UserRole
from busline.admin.schemas import (
    RevenueAnalytics, RevenueSummary, RevenueByCategory, DetailedRevenueMetrics,
    DistrictRevenue, RouteRevenue
)
from busline.bookings.schemas import PassengerStatus
from busline.routes.schemas import PassengerCategory

CENTS = Decimal("0.01")

def _add(metrics: RevenueSummary, status: str, revenue: Decimal, tickets: int):
    if status == PassengerStatus.CANCELLED.value:
        metrics.refunded_revenue += revenue
        metrics.cancelled_tickets += tickets
    else:
        metrics.gross_revenue += revenue
        metrics.booked_tickets += tickets
    metrics.net_revenue = metrics.gross_revenue - metrics.refunded_revenue

def _add_detailed(metrics: DetailedRevenueMetrics, category: str, status: str, revenue: Decimal, tickets: int):
    _add(metrics, status, revenue, tickets)
    prefix = "cancelled" if status == PassengerStatus.CANCELLED.value else "booked"
    name = category.lower()
    revenue_field = f"{prefix}_{name}_revenue"
    tickets_field = f"{prefix}_{name}_tickets"
    setattr(metrics, revenue_field, getattr(metrics, revenue_field) + revenue)
    setattr(metrics, tickets_field, getattr(metrics, tickets_field) + tickets)

class RevenueService:
    """Booked and refunded revenue from the passenger-level ledger.

    Only paid bookings count. Cancelled passengers stay in the ledger, so
    refunds can be reported next to the revenue they reversed.
    """

    def __init__(self, db: Session):
        self.db = db

    def aggregate(
        self,
        caller: CallerIdentity,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> RevenueAnalytics:
        districts = self._scope(caller)
        if districts is not None and not districts:
            return RevenueAnalytics(summary=RevenueSummary())

        query = self.db.query(
            Booking.origin,
            Booking.destination,
            PassengerDetail.category,
            PassengerDetail.status,
            func.coalesce(func.sum(PassengerDetail.fare), 0),
            func.count(PassengerDetail.id)
        ).join(
            PassengerDetail, PassengerDetail.booking_id == Booking.id
        ).filter(
            Booking.is_free_ticket.is_(False)
        )

        if districts is not None:
            query = query.filter(Booking.origin.in_(districts))
        if date_from:
            query = query.filter(Booking.booking_date >= datetime.combine(date_from, time.min))
        if date_to:
            query = query.filter(Booking.booking_date < datetime.combine(date_to + timedelta(days=1), time.min))

        rows = query.group_by(
            Booking.origin, Booking.destination, PassengerDetail.category, PassengerDetail.status
        ).all()

        summary = RevenueSummary()
        by_category: Dict[str, RevenueByCategory] = {}
        by_district: Dict[str, DistrictRevenue] = {}
        by_route: Dict[str, RouteRevenue] = {}

        for origin, destination, category, passenger_status, revenue, tickets in rows:
            revenue = Decimal(str(revenue)).quantize(CENTS)
            tickets = int(tickets)
            route = f"{origin} -> {destination}"

            _add(summary, passenger_status, revenue, tickets)
            _add(
                by_category.setdefault(category, RevenueByCategory(category=category)),
                passenger_status, revenue, tickets
            )
            _add_detailed(
                by_district.setdefault(origin, DistrictRevenue(district=origin)),
                category, passenger_status, revenue, tickets
            )
            _add_detailed(
                by_route.setdefault(route, RouteRevenue(route=route)),
                category, passenger_status, revenue, tickets
            )

        category_order = [c.value for c in PassengerCategory]
        return RevenueAnalytics(
            summary=summary,
            by_category=sorted(
                by_category.values(),
                key=lambda c: category_order.index(c.category) if c.category in category_order else len(category_order)
            ),
            by_district=[by_district[k] for k in sorted(by_district)],
            by_route=[by_route[k] for k in sorted(by_route)]
        )

    @staticmethod
    def _scope(caller: CallerIdentity) -> Optional[List[str]]:
        """None means unrestricted; a list restricts to those origin districts"""
        if caller.role == UserRole.ADMIN:
            return None
        if caller.role == UserRole.SUB_ADMIN:
            return list(caller.assigned_districts)
        raise Unauthorized("Revenue analytics are restricted to administrators.")
