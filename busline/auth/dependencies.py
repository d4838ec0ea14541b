from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from busline.database import get_db
from busline.auth.utils import verify_token
from busline.auth.schemas import CallerIdentity, UserRole
from busline.models import User

# Tokens are issued by the upstream identity service; this API only verifies them
bearer_scheme = HTTPBearer(auto_error=False)

def load_identity(db: Session, user_id: str) -> Optional[CallerIdentity]:
    """Build the caller identity for a user row, including assigned districts"""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        return None

    role = UserRole(user.role)
    districts = []
    if role == UserRole.SUB_ADMIN:
        districts = [d.district for d in user.assigned_districts]

    return CallerIdentity(
        user_id=user.id,
        full_name=user.full_name,
        role=role,
        assigned_districts=districts,
        govt_exam_registration_number=user.govt_exam_registration_number
    )

def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> Optional[CallerIdentity]:
    """Anonymous callers are allowed; invalid tokens are treated as anonymous"""
    token = credentials.credentials if credentials else None
    if not token:
        return None
    try:
        token_data = verify_token(token, ValueError("invalid token"))
    except ValueError:
        return None
    return load_identity(db, token_data["user_id"])

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> CallerIdentity:
    """Get current authenticated user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required. Please log in.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token = credentials.credentials if credentials else None
    if not token:
        raise credentials_exception

    token_data = verify_token(token, credentials_exception)
    identity = load_identity(db, token_data["user_id"])
    if identity is None:
        raise credentials_exception
    return identity

def require_admin(current_user: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
    """Require admin role for access"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Permission denied. Administrator access required."
        )
    return current_user

def require_operator(current_user: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
    """Require admin or sub-admin role for access"""
    if not current_user.is_operator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Permission denied. Administrator or Sub-Administrator access required."
        )
    return current_user
