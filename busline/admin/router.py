from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from datetime import date

from busline.database import get_db
from busline.auth.dependencies import require_admin, require_operator
from busline.auth.schemas import CallerIdentity
from busline.admin.schemas import (
    SettingValue, SettingUpdate, DiscountDistrictsUpdate, BeneficiaryUpload,
    BulkOperationResult, RevenueAnalytics, SubAdminRequest, UserView
)
from busline.admin.settings_service import SettingsService
from busline.admin.beneficiary_service import BeneficiaryService
from busline.admin.revenue_service import RevenueService
from busline.admin.user_service import UserManagementService

router = APIRouter()

# Settings
@router.get("/settings", response_model=Dict[str, str])
def list_settings(db: Session = Depends(get_db)):
    """All feature toggles and discount percentages"""
    return SettingsService(db).list_settings()

@router.get("/settings/{key}", response_model=SettingValue)
def get_setting(key: str, db: Session = Depends(get_db)):
    """Get a single setting; known keys are created with their default on first read"""

    value = SettingsService(db).get_setting(key)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Setting not found."
        )
    return SettingValue(key=key, value=value)

@router.put("/settings", response_model=SettingValue)
def update_setting(
    update: SettingUpdate,
    current_user: CallerIdentity = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Change a feature toggle or discount percentage"""

    try:
        value = SettingsService(db).update_setting(update.key, update.value)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return SettingValue(key=update.key.value, value=value)

# Discount districts
@router.get("/discounts/districts", response_model=List[str])
def get_discount_districts(db: Session = Depends(get_db)):
    """Origin districts where child/senior discounts apply"""
    return SettingsService(db).get_discount_districts()

@router.put("/discounts/districts", response_model=List[str])
def update_discount_districts(
    update: DiscountDistrictsUpdate,
    current_user: CallerIdentity = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Replace the set of discount districts"""
    return SettingsService(db).set_discount_districts(update.districts)

# Beneficiaries
@router.post("/beneficiaries/bulk", response_model=BulkOperationResult, status_code=status.HTTP_201_CREATED)
def bulk_register_beneficiaries(
    upload: BeneficiaryUpload,
    current_user: CallerIdentity = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Register free-ticket beneficiaries in bulk"""

    if not upload.beneficiaries:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A non-empty array of beneficiaries is required."
        )
    return BeneficiaryService(db).bulk_register(upload.beneficiaries)

# Analytics
@router.get("/analytics/revenue", response_model=RevenueAnalytics)
def get_revenue_analytics(
    date_from: Optional[date] = Query(None, description="First booking date included"),
    date_to: Optional[date] = Query(None, description="Last booking date included"),
    current_user: CallerIdentity = Depends(require_operator),
    db: Session = Depends(get_db)
):
    """Booked, refunded and net revenue by category, district and route"""

    return RevenueService(db).aggregate(current_user, date_from=date_from, date_to=date_to)

# Users & sub-admins
@router.get("/users", response_model=List[UserView])
def list_users(
    current_user: CallerIdentity = Depends(require_operator),
    db: Session = Depends(get_db)
):
    """All accounts by role then name; sub-admins include their districts"""
    return UserManagementService(db).list_users()

@router.post("/users/subadmin", response_model=UserView, status_code=status.HTTP_201_CREATED)
def create_sub_admin(
    request: SubAdminRequest,
    current_user: CallerIdentity = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create a sub-admin; each district can belong to only one sub-admin"""

    return UserManagementService(db).create_sub_admin(request)

@router.put("/users/subadmin/{user_id}", response_model=UserView)
def update_sub_admin(
    user_id: str,
    request: SubAdminRequest,
    current_user: CallerIdentity = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Edit a sub-admin and replace their district assignments"""

    return UserManagementService(db).update_sub_admin(user_id, request)

@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    current_user: CallerIdentity = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a sub-admin account"""

    UserManagementService(db).delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
