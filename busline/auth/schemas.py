from pydantic import BaseModel
from typing import List, Optional
from enum import Enum

class UserRole(str, Enum):
    """Caller role enumeration"""
    USER = "USER"
    ADMIN = "ADMIN"
    SUB_ADMIN = "SUB_ADMIN"

class CallerIdentity(BaseModel):
    """Identity and role of the caller, as supplied by the auth layer"""
    user_id: str
    full_name: str
    role: UserRole = UserRole.USER
    assigned_districts: List[str] = []
    govt_exam_registration_number: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_operator(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUB_ADMIN)

    def can_manage_district(self, district: Optional[str]) -> bool:
        if self.is_admin:
            return True
        if self.role != UserRole.SUB_ADMIN or not district:
            return False
        return district in self.assigned_districts

class TokenData(BaseModel):
    user_id: Optional[str] = None
