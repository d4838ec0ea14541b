from typing import Iterable, List
from decimal import Decimal, ROUND_HALF_UP

from busline.admin.schemas import SystemConfig
from busline.routes.schemas import (
    AssembledSchedule, RouteStopView, PassengerCategory, DiscountType,
    FareBreakdown, FareQuoteResponse
)

CENTS = Decimal("0.01")

class FareCalculationService:
    """Prices a segment of a schedule for a passenger category.

    The service is a pure function of the schedule projection and the
    configuration snapshot it was built with; nothing is cached between calls.
    """

    def __init__(self, config: SystemConfig):
        self.config = config

    def base_fare(self, origin_stop: RouteStopView, destination_stop: RouteStopView) -> Decimal:
        """Difference of cumulative fares, floored at zero"""
        fare = destination_stop.fare - origin_stop.fare
        return max(Decimal("0"), fare).quantize(CENTS, rounding=ROUND_HALF_UP)

    def is_discount_active(self, schedule: AssembledSchedule) -> bool:
        return (
            self.config.is_discount_system_enabled
            and schedule.origin in self.config.discount_districts
        )

    def discount_percentage(self, schedule: AssembledSchedule, category: PassengerCategory) -> Decimal:
        if not self.is_discount_active(schedule):
            return Decimal("0")
        if category == PassengerCategory.CHILD:
            return self.config.child_discount_percentage
        if category == PassengerCategory.SENIOR:
            return self.config.senior_discount_percentage
        return Decimal("0")

    def price_segment(
        self,
        schedule: AssembledSchedule,
        origin_stop: RouteStopView,
        destination_stop: RouteStopView,
        category: PassengerCategory
    ) -> FareBreakdown:
        base = self.base_fare(origin_stop, destination_stop)
        percentage = self.discount_percentage(schedule, PassengerCategory(category))
        total = (base * (Decimal("1") - percentage / Decimal("100"))).quantize(CENTS, rounding=ROUND_HALF_UP)

        return FareBreakdown(
            category=category,
            base_fare=base,
            discount_percentage=percentage,
            passenger_discount=base - total,
            total_fare=total
        )

    def price(
        self,
        schedule: AssembledSchedule,
        origin: str,
        destination: str,
        category: PassengerCategory
    ) -> Decimal:
        """Fare for one passenger travelling `origin` -> `destination`"""
        origin_stop, destination_stop = schedule.resolve_segment(origin, destination)
        return self.price_segment(schedule, origin_stop, destination_stop, category).total_fare

    def quote(self, schedule: AssembledSchedule, origin: str, destination: str) -> FareQuoteResponse:
        """Fares for every passenger category on a segment"""
        origin_stop, destination_stop = schedule.resolve_segment(origin, destination)
        fares = [
            self.price_segment(schedule, origin_stop, destination_stop, category)
            for category in PassengerCategory
        ]
        return FareQuoteResponse(
            schedule_id=schedule.id,
            origin=origin_stop.name,
            destination=destination_stop.name,
            discount_applied=self.is_discount_active(schedule),
            fares=fares
        )

    @staticmethod
    def classify_discount(categories: Iterable[PassengerCategory]) -> DiscountType:
        discounted = {
            PassengerCategory(c) for c in categories
            if PassengerCategory(c) != PassengerCategory.NORMAL
        }
        if not discounted:
            return DiscountType.NONE
        if len(discounted) > 1:
            return DiscountType.MIXED
        only: List[PassengerCategory] = list(discounted)
        return DiscountType.CHILD if only[0] == PassengerCategory.CHILD else DiscountType.SENIOR
