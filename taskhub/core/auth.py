"""
Authentication module for Taskhub.
Resolves the bearer token on a request into the current user.
"""
import logging
from typing import Optional, List
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from .database import get_db
from .errors import NotAuthenticated
from .security import decode_access_token
from ..models.user import User
from ..services.roles import get_roles_for_user

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(
    scheme_name="Bearer Token",
    description="JWT Bearer token issued by /auth/login",
    auto_error=False
)


class CurrentUser:
    """Represents the current authenticated user."""

    def __init__(
        self,
        user_id: str,
        email: str,
        first_name: str = "",
        last_name: str = "",
        department_id: Optional[int] = None,
        roles: Optional[List[str]] = None
    ):
        self.user_id = user_id
        self.email = email
        self.first_name = first_name
        self.last_name = last_name
        self.department_id = department_id
        self.roles = list(roles or [])

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def __str__(self):
        return f"User(id={self.user_id}, email={self.email}, roles={self.roles})"

    def __repr__(self):
        return self.__str__()

    @classmethod
    def from_model(cls, user: User, roles: List[str]) -> "CurrentUser":
        return cls(
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            department_id=user.department_id,
            roles=roles,
        )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> CurrentUser:
    """
    Dependency to get current authenticated user.

    Raises:
        NotAuthenticated: If the token is missing, invalid or names an unknown user
    """
    if not credentials or not credentials.credentials:
        raise NotAuthenticated()

    payload = decode_access_token(credentials.credentials)

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if not user:
        logger.warning(f"Token subject {payload['sub']} does not match any user")
        raise NotAuthenticated()

    roles = get_roles_for_user(db, user.id)
    current_user = CurrentUser.from_model(user, roles)
    logger.debug(f"Authenticated user: {current_user}")
    return current_user


def require_roles(*roles: str):
    """Dependency factory: the caller must hold at least one of ``roles``."""

    async def checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not any(current_user.has_role(role) for role in roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden: requires one of {', '.join(roles)}"
            )
        return current_user

    return checker
