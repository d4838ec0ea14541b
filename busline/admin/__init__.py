"""
Admin System Module

Administrator and district operator functionality.

Key Components:
- settings_service.py: feature toggles, discount percentages and districts,
  loaded per request as a versioned SystemConfig snapshot
- beneficiary_service.py: bulk registration of free-ticket beneficiaries
- revenue_service.py: booked/refunded revenue by category, district and route
- user_service.py: sub-admin accounts and their exclusive district assignments
- router.py: FastAPI endpoints for the admin settings, users and analytics screens
- schemas.py: Pydantic models for settings, users and analytics
"""

from .schemas import SystemConfig, SettingKey, RevenueAnalytics

__all__ = [
    "SystemConfig",
    "SettingKey",
    "RevenueAnalytics"
]
