import logging
from dataclasses import dataclass, field
from typing import List, Optional
from sqlalchemy.orm import Session

from ..core.security import create_access_token, verify_password
from ..models.user import User, Role
from .roles import get_roles_for_user, is_manager

logger = logging.getLogger(__name__)

DEFAULT_ROLES = [Role.STAFF.value]


@dataclass
class LoginResult:
    success: bool
    user_id: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    redirect_path: Optional[str] = None
    access_token: Optional[str] = None
    message: Optional[str] = None


def determine_redirect(roles: List[str]) -> str:
    """Managers land on the schedule, everyone else on the report page."""
    return "/schedule" if is_manager(roles) else "/report"


def get_roles_or_default(db: Session, user_id: str) -> List[str]:
    try:
        roles = get_roles_for_user(db, user_id)
    except Exception as e:
        logger.error(f"Failed to load roles for {user_id}, defaulting to staff: {e}")
        db.rollback()
        return list(DEFAULT_ROLES)
    return roles or list(DEFAULT_ROLES)


def login_with_password(db: Session, email: str, password: str) -> LoginResult:
    user = db.query(User).filter(User.email == email.lower().strip()).first()
    if not user or not verify_password(password, user.hashed_password):
        logger.info(f"Failed login attempt for {email}")
        return LoginResult(success=False, message="Invalid login credentials")

    roles = get_roles_or_default(db, user.id)
    token = create_access_token(user.id, roles)
    logger.info(f"User {user.id} logged in with roles {roles}")
    return LoginResult(
        success=True,
        user_id=user.id,
        roles=roles,
        redirect_path=determine_redirect(roles),
        access_token=token,
    )
