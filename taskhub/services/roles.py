import logging
from typing import List
from sqlalchemy.orm import Session

from ..models.user import UserRole, Role

logger = logging.getLogger(__name__)


def get_roles_for_user(db: Session, user_id: str) -> List[str]:
    """Return the role names held by a user, in a stable order."""
    rows = (
        db.query(UserRole.role)
        .filter(UserRole.user_id == user_id)
        .order_by(UserRole.role)
        .all()
    )
    return [row.role for row in rows]


def is_manager(roles) -> bool:
    return Role.MANAGER.value in (roles or [])


def is_admin(roles) -> bool:
    return Role.ADMIN.value in (roles or [])
