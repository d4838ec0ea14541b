import logging
import uuid
from typing import List
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError

from busline.models import GovtBeneficiary, User
from busline.exceptions import StorageUnavailable
from busline.auth.schemas import UserRole
from busline.admin.schemas import BeneficiaryRecord, BulkOperationResult

logger = logging.getLogger(__name__)

class BeneficiaryService:
    """Registers free-ticket beneficiaries and links them to user accounts"""

    def __init__(self, db: Session):
        self.db = db

    def bulk_register(self, records: List[BeneficiaryRecord]) -> BulkOperationResult:
        """Upsert beneficiaries; re-registering resets the claimed flag"""
        result = BulkOperationResult()

        try:
            for record in records:
                registration = record.registration_number.strip()
                phone = record.phone.strip()
                full_name = record.full_name.strip()
                if not registration or not phone or not full_name:
                    logger.info("Skipping beneficiary record with missing fields: %r", registration or phone)
                    result.skipped += 1
                    continue

                beneficiary = self.db.query(GovtBeneficiary).filter(
                    GovtBeneficiary.registration_number == registration
                ).with_for_update().first()
                if beneficiary:
                    beneficiary.phone = phone
                    beneficiary.ticket_claimed = False
                else:
                    self.db.add(GovtBeneficiary(
                        id=str(uuid.uuid4()),
                        registration_number=registration,
                        phone=phone,
                        ticket_claimed=False
                    ))

                outcome = self._link_user(registration, phone, full_name, record.email)
                setattr(result, outcome, getattr(result, outcome) + 1)
                self.db.flush()

            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            logger.error("Storage failure during beneficiary upload: %s", e)
            raise StorageUnavailable()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Beneficiary upload: %d created, %d updated, %d skipped",
            result.created, result.updated, result.skipped
        )
        return result

    def _link_user(self, registration: str, phone: str, full_name: str, email) -> str:
        """Returns which counter the record falls into: created, updated or skipped"""
        user = self.db.query(User).filter(User.govt_exam_registration_number == registration).first()
        if user:
            if user.phone != phone:
                conflict = self.db.query(User).filter(User.phone == phone, User.id != user.id).first()
                if conflict:
                    logger.info("Skipping %s: phone %s belongs to another account", registration, phone)
                    return "skipped"
            user.full_name = full_name
            user.phone = phone
            user.email = email or user.email
            user.is_free_ticket_eligible = True
            return "updated"

        user = self.db.query(User).filter(User.phone == phone).first()
        if user:
            if user.govt_exam_registration_number:
                logger.info(
                    "Skipping %s: phone %s is linked to beneficiary %s",
                    registration, phone, user.govt_exam_registration_number
                )
                return "skipped"
            user.full_name = full_name
            user.email = email or user.email
            user.govt_exam_registration_number = registration
            user.is_free_ticket_eligible = True
            return "updated"

        self.db.add(User(
            id=str(uuid.uuid4()),
            full_name=full_name,
            phone=phone,
            email=email,
            role=UserRole.USER.value,
            govt_exam_registration_number=registration,
            is_free_ticket_eligible=True
        ))
        return "created"
