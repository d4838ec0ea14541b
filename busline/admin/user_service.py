import logging
import re
import uuid
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, OperationalError

from busline.models import User, SubAdminDistrict, GovtBeneficiary, Booking
from busline.exceptions import (
    BookingSystemError, InvalidUser, UserNotFound, DuplicateUser, DistrictAlreadyAssigned,
    Unauthorized, StorageUnavailable
)
from busline.auth.schemas import UserRole
from busline.admin.schemas import SubAdminRequest, UserView

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"\d{10}")
ROLE_ORDER = {UserRole.ADMIN.value: 0, UserRole.SUB_ADMIN.value: 1, UserRole.USER.value: 2}

class UserManagementService:
    """Sub-admin accounts and their exclusive district assignments.

    Passwords and token issuance live with the upstream identity service;
    this service only keeps the roles and districts the booking core scopes by.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_users(self) -> List[UserView]:
        users = self.db.query(User).all()
        users.sort(key=lambda u: (ROLE_ORDER.get(u.role, len(ROLE_ORDER)), u.full_name.lower()))
        return [self.to_view(user) for user in users]

    def create_sub_admin(self, request: SubAdminRequest) -> UserView:
        full_name, phone, email, districts = self._validate(request)

        try:
            self._check_unique_contact(phone, email)
            self._check_districts_free(districts)

            user = User(
                id=str(uuid.uuid4()),
                full_name=full_name,
                phone=phone,
                email=email,
                role=UserRole.SUB_ADMIN.value
            )
            user.assigned_districts = [SubAdminDistrict(district=d) for d in districts]
            self.db.add(user)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateUser("The phone, email or districts were just taken by another account. Please retry.")
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure while creating sub-admin: %s", e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info("Sub-admin %s created for districts: %s", user.id, ", ".join(districts))
        return self.to_view(user)

    def update_sub_admin(self, user_id: str, request: SubAdminRequest) -> UserView:
        full_name, phone, email, districts = self._validate(request)

        try:
            user = self.db.query(User).filter(User.id == user_id).with_for_update().first()
            if not user:
                raise UserNotFound()
            if user.role != UserRole.SUB_ADMIN.value:
                raise InvalidUser("Only sub-admin accounts can be edited here.")

            self._check_unique_contact(phone, email, exclude_user_id=user_id)
            self._check_districts_free(districts, exclude_user_id=user_id)

            user.full_name = full_name
            user.phone = phone
            user.email = email
            if user.govt_exam_registration_number:
                self.db.query(GovtBeneficiary).filter(
                    GovtBeneficiary.registration_number == user.govt_exam_registration_number
                ).update({GovtBeneficiary.phone: phone}, synchronize_session=False)

            # Removals are flushed before re-inserting kept districts
            user.assigned_districts.clear()
            self.db.flush()
            user.assigned_districts.extend(SubAdminDistrict(district=d) for d in districts)

            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateUser("The phone, email or districts were just taken by another account. Please retry.")
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure while updating sub-admin %s: %s", user_id, e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info("Sub-admin %s updated, districts: %s", user_id, ", ".join(districts))
        return self.to_view(user)

    def delete_user(self, user_id: str):
        """Only sub-admin accounts can be removed; their districts go with them"""
        try:
            user = self.db.query(User).filter(User.id == user_id).first()
            if not user:
                raise UserNotFound()
            if user.role != UserRole.SUB_ADMIN.value:
                raise Unauthorized("Only sub-admin accounts can be deleted.")
            if self.db.query(Booking).filter(Booking.user_id == user_id).first():
                raise InvalidUser("Sub-admins with bookings on record cannot be deleted.")

            self.db.delete(user)
            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure while deleting user %s: %s", user_id, e)
            raise StorageUnavailable()
        except BookingSystemError:
            self.db.rollback()
            raise

        logger.info("Sub-admin %s deleted", user_id)

    @staticmethod
    def to_view(user: User) -> UserView:
        districts = []
        if user.role == UserRole.SUB_ADMIN.value:
            districts = sorted(d.district for d in user.assigned_districts)
        return UserView(
            id=user.id,
            full_name=user.full_name,
            phone=user.phone,
            email=user.email,
            role=user.role,
            govt_exam_registration_number=user.govt_exam_registration_number,
            assigned_districts=districts
        )

    # Helpers
    @staticmethod
    def _validate(request: SubAdminRequest):
        full_name = request.full_name.strip()
        phone = request.phone.strip()
        email = request.email.strip() if request.email and request.email.strip() else None
        unique = {}
        for district in request.districts:
            name = (district or "").strip()
            if name:
                unique.setdefault(name.lower(), name)
        districts = sorted(unique.values())

        if not full_name or not phone or not districts:
            raise InvalidUser("Full name, phone and at least one district are required.")
        if not PHONE_PATTERN.fullmatch(phone):
            raise InvalidUser("Phone number must be exactly 10 digits.")
        return full_name, phone, email, districts

    def _check_unique_contact(self, phone: str, email: Optional[str], exclude_user_id: Optional[str] = None):
        query = self.db.query(User).filter(User.phone == phone)
        if exclude_user_id:
            query = query.filter(User.id != exclude_user_id)
        if query.first():
            raise DuplicateUser("A user with this phone number already exists.")

        if email:
            query = self.db.query(User).filter(func.lower(User.email) == email.lower())
            if exclude_user_id:
                query = query.filter(User.id != exclude_user_id)
            if query.first():
                raise DuplicateUser("A user with this email already exists.")

    def _check_districts_free(self, districts: List[str], exclude_user_id: Optional[str] = None):
        """A district is managed by at most one sub-admin"""
        query = self.db.query(SubAdminDistrict.district).filter(
            func.lower(SubAdminDistrict.district).in_([d.lower() for d in districts])
        )
        if exclude_user_id:
            query = query.filter(SubAdminDistrict.user_id != exclude_user_id)

        taken = sorted({row.district for row in query.all()})
        if taken:
            raise DistrictAlreadyAssigned(
                f"The following districts are already assigned to another sub-admin: {', '.join(taken)}"
            )
