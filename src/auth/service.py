import hmac
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.auth.schemas import LoginRequest, StaffPrincipal, StaffRole
from src.auth.utils import get_password_hash, verify_password
from src.config import Settings
from src.database import is_connectivity_error
from src.logger import setup_logger
from src.models import StaffUser

logger = setup_logger(__name__)

BOOTSTRAP_ADMIN_ID = "bootstrap-admin"


class StaffService:
    @staticmethod
    def get_staff_by_email(db: Session, email: str) -> Optional[StaffUser]:
        return db.query(StaffUser).filter(StaffUser.email == email.lower()).first()

    @staticmethod
    def create_staff(db: Session, name: str, email: str, password: str, role: StaffRole = StaffRole.STAFF) -> StaffUser:
        staff = StaffUser(
            name=name,
            email=email.lower(),
            password_hash=get_password_hash(password),
            role=role.value,
            is_active=True
        )
        db.add(staff)
        db.commit()
        db.refresh(staff)
        return staff

    @staticmethod
    def _bootstrap_admin(settings: Settings, login_data: LoginRequest) -> Optional[StaffPrincipal]:
        email, password = settings.BOOTSTRAP_ADMIN_EMAIL, settings.BOOTSTRAP_ADMIN_PASSWORD
        if not (email and password):
            return None
        if login_data.email.lower() != email.lower():
            return None
        if not hmac.compare_digest(login_data.password.encode(), password.encode()):
            return None
        return StaffPrincipal(id=BOOTSTRAP_ADMIN_ID, email=email, name="Administrator", role=StaffRole.ADMIN)

    @staticmethod
    def authenticate(db: Session, settings: Settings, login_data: LoginRequest) -> Optional[StaffPrincipal]:
        """Bootstrap admin from settings first, then staff accounts in the database"""
        principal = StaffService._bootstrap_admin(settings, login_data)
        if principal:
            return principal

        try:
            staff = StaffService.get_staff_by_email(db, login_data.email)
        except SQLAlchemyError as exc:
            if not is_connectivity_error(exc):
                raise
            logger.warning("Staff login for %s while database is unreachable", login_data.email)
            return None

        if not staff or not staff.is_active:
            return None
        if not verify_password(login_data.password, staff.password_hash):
            return None
        return StaffPrincipal(id=str(staff.id), email=staff.email, name=staff.name, role=StaffRole(staff.role))
