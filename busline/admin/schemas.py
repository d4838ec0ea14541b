from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, FrozenSet, Union
from decimal import Decimal
from enum import Enum

class SettingKey(str, Enum):
    """Known system setting keys"""
    BOOKING_SYSTEM_ONLINE = "isBookingSystemOnline"
    FREE_BOOKING_ENABLED = "isFreeBookingEnabled"
    DISCOUNT_SYSTEM_ENABLED = "isDiscountSystemEnabled"
    CANCELLATION_ENABLED = "isCancellationEnabled"
    CHILD_DISCOUNT_PERCENTAGE = "childDiscountPercentage"
    SENIOR_DISCOUNT_PERCENTAGE = "seniorDiscountPercentage"

# System Configuration
class SystemConfig(BaseModel):
    """Immutable snapshot of feature toggles and discount configuration"""
    model_config = ConfigDict(frozen=True)

    version: int = 0
    is_booking_system_online: bool = False
    is_free_booking_enabled: bool = False
    is_discount_system_enabled: bool = False
    is_cancellation_enabled: bool = False
    child_discount_percentage: Decimal = Decimal("40")
    senior_discount_percentage: Decimal = Decimal("50")
    discount_districts: FrozenSet[str] = frozenset()

class SettingValue(BaseModel):
    key: str
    value: str

class SettingUpdate(BaseModel):
    """Admin request to change a single setting"""
    key: SettingKey
    value: Union[bool, int, float, str]

class DiscountDistrictsUpdate(BaseModel):
    districts: List[str]

# Beneficiaries
class BeneficiaryRecord(BaseModel):
    """One row of a bulk beneficiary upload"""
    model_config = ConfigDict(populate_by_name=True)

    registration_number: str = Field(default="", alias="govtExamRegistrationNumber")
    phone: str = ""
    full_name: str = Field(default="", alias="fullName")
    email: Optional[str] = None

class BeneficiaryUpload(BaseModel):
    beneficiaries: List[BeneficiaryRecord]

class BulkOperationResult(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0

# Revenue Analytics
class RevenueSummary(BaseModel):
    net_revenue: Decimal = Decimal("0")
    gross_revenue: Decimal = Decimal("0")
    refunded_revenue: Decimal = Decimal("0")
    booked_tickets: int = 0
    cancelled_tickets: int = 0

class RevenueByCategory(RevenueSummary):
    category: str

class DetailedRevenueMetrics(RevenueSummary):
    """Per-category booked/cancelled figures plus bucket totals"""
    booked_normal_revenue: Decimal = Decimal("0")
    booked_child_revenue: Decimal = Decimal("0")
    booked_senior_revenue: Decimal = Decimal("0")
    cancelled_normal_revenue: Decimal = Decimal("0")
    cancelled_child_revenue: Decimal = Decimal("0")
    cancelled_senior_revenue: Decimal = Decimal("0")
    booked_normal_tickets: int = 0
    booked_child_tickets: int = 0
    booked_senior_tickets: int = 0
    cancelled_normal_tickets: int = 0
    cancelled_child_tickets: int = 0
    cancelled_senior_tickets: int = 0

class DistrictRevenue(DetailedRevenueMetrics):
    district: str

class RouteRevenue(DetailedRevenueMetrics):
    route: str

class RevenueAnalytics(BaseModel):
    summary: RevenueSummary
    by_category: List[RevenueByCategory] = []
    by_district: List[DistrictRevenue] = []
    by_route: List[RouteRevenue] = []

# Users & sub-admins
class SubAdminRequest(BaseModel):
    """Create or edit a sub-admin together with the districts they manage"""
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(..., alias="fullName")
    phone: str
    email: Optional[str] = None
    districts: List[str]

class UserView(BaseModel):
    id: str
    full_name: str
    phone: str
    email: Optional[str] = None
    role: str
    govt_exam_registration_number: Optional[str] = None
    assigned_districts: List[str] = []
